#!/usr/bin/env python3
"""
Ambient Ear - Events (Pub/Sub)
ドメイン層: イベント駆動アーキテクチャの中核
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from blinker import Signal

from .models import MusicDetectionResult, TurnDetectionResult

# ========================================
# イベント名定数
# ========================================
EVENT_MUSIC_STARTED = "music_started"
EVENT_MUSIC_STOPPED = "music_stopped"
EVENT_BEAT_DETECTED = "beat_detected"
EVENT_MUSIC_ANALYZED = "music_analyzed"
EVENT_TURN_COMPLETED = "turn_completed"
EVENT_CONFIG_CHANGED = "config_changed"
EVENT_MESSAGE_POSTED = "message_posted"


# ========================================
# イベント型定義
# ========================================


class MessageLevel(str, Enum):
    """メッセージレベル"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class MusicStartedEvent:
    """
    音楽開始イベント

    平滑化スコアが感度を超え、最小状態維持時間を満たした際に発行される。
    """

    confidence: float  # 遷移時の平滑化スコア
    timestamp_ms: int  # ストリーム時刻


@dataclass(frozen=True)
class MusicStoppedEvent:
    """
    音楽停止イベント

    平滑化スコアが 感度×stop_ratio を下回り、最小状態維持時間を満たした際に発行される。
    """

    confidence: float
    timestamp_ms: int


@dataclass(frozen=True)
class BeatDetectedEvent:
    """ビート検出イベント"""

    energy: float  # サブベース+ベース帯域のエネルギー
    timestamp_ms: int


@dataclass(frozen=True)
class MusicAnalyzedEvent:
    """
    フレーム解析イベント

    状態遷移の有無に関わらず、判定したフレームごとに発行される。
    """

    result: MusicDetectionResult


@dataclass(frozen=True)
class TurnCompletedEvent:
    """ターン完了イベント"""

    result: TurnDetectionResult
    turn_duration_ms: float


@dataclass(frozen=True)
class ConfigChangedEvent:
    """設定変更イベント（永続化は呼び出し側の責務）"""

    section: str  # 設定セクション名（"music" / "turn_detection"）
    config: dict[str, Any]  # 変更後の設定（プレーンオブジェクト）


@dataclass(frozen=True)
class MessagePostedEvent:
    """
    メッセージ投稿イベント

    システム状態の変化や診断メッセージを通知する際に発行される。
    timestampは省略時に自動的に現在時刻が設定される。
    """

    message: str  # 表示するメッセージ
    level: MessageLevel  # メッセージレベル（INFO/SUCCESS/WARNING/ERROR）
    timestamp: datetime = field(
        default_factory=datetime.now
    )  # メッセージタイムスタンプ（省略時は自動設定）


# イベント型のユニオン（型チェック用）
Event = (
    MusicStartedEvent
    | MusicStoppedEvent
    | BeatDetectedEvent
    | MusicAnalyzedEvent
    | TurnCompletedEvent
    | ConfigChangedEvent
    | MessagePostedEvent
)


# ========================================
# グローバルシグナル定義
# ========================================

# 各イベントに対応するシグナル
# senderに検出器インスタンスを渡すため、購読側はsender指定で絞り込める
music_started = Signal(EVENT_MUSIC_STARTED)  # MusicStartedEvent
music_stopped = Signal(EVENT_MUSIC_STOPPED)  # MusicStoppedEvent
beat_detected = Signal(EVENT_BEAT_DETECTED)  # BeatDetectedEvent
music_analyzed = Signal(EVENT_MUSIC_ANALYZED)  # MusicAnalyzedEvent
turn_completed = Signal(EVENT_TURN_COMPLETED)  # TurnCompletedEvent
config_changed = Signal(EVENT_CONFIG_CHANGED)  # ConfigChangedEvent
message_posted = Signal(EVENT_MESSAGE_POSTED)  # MessagePostedEvent


def post_message(sender: Any, message: str, level: MessageLevel) -> None:
    """message_postedシグナルを発行するショートカット"""
    message_posted.send(sender, event=MessagePostedEvent(message=message, level=level))
