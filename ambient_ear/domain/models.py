#!/usr/bin/env python3
"""
Ambient Ear - Domain Models
ドメイン層：音声フレーム、検出結果、コラボレータのインターフェース
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import numpy as np


@dataclass(frozen=True)
class RawAudioFrame:
    """
    1ティック分の生PCMフレーム

    同一ティックの全コンシューマで参照共有される。
    samples は書き込み不可（読み取り専用の契約）。
    """

    samples: np.ndarray  # float32 [-1, 1] モノラル
    timestamp_sec: float  # ストリーム時刻（秒）


@dataclass(frozen=True)
class AnalysisFrame:
    """
    1ティック分の解析フレーム（スペクトル、音量、ピーク周波数）

    RawAudioFrame と同じく参照共有・読み取り専用。
    """

    volume: float  # 0.0-1.0（中点からの平均絶対偏差）
    frequency_magnitudes: np.ndarray  # uint8 (0-255) 周波数ビンごとの振幅
    time_domain_samples: np.ndarray  # uint8 (0-255) 128がゼロ
    average_frequency: float  # 周波数バイト値の平均
    peak_frequency_hz: float  # 最大振幅ビンの周波数（Hz）
    timestamp_ms: int  # ストリーム時刻（ミリ秒）


@dataclass
class AudioConsumer:
    """
    共有マイクへのコンシューマ登録情報

    buffer_size は 256-16384 の2の冪。
    on_analysis_frame が None のコンシューマには解析フレームを配信しない。
    """

    id: str
    name: str
    buffer_size: int
    on_raw_frame: Callable[[RawAudioFrame], None]
    on_analysis_frame: Callable[[AnalysisFrame], None] | None = None


@dataclass(frozen=True)
class MusicDetectionResult:
    """フレームごとの音楽判定結果"""

    is_music: bool
    confidence: float  # 平滑化済み音楽スコア
    beat_detected: bool
    bpm: float  # 0.0 = 推定不可
    energy_level: float  # フレームの音量
    spectral_complexity: float
    timestamp_ms: int


class TurnReason(StrEnum):
    """ターン完了判定の根拠"""

    SILENCE = "silence"
    CONTENT = "content"
    PATTERN = "pattern"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class TurnDetectionResult:
    """ターン完了判定結果"""

    turn_complete: bool
    confidence: float  # 0.0-1.0
    reason: TurnReason
    transcript: str | None = None


@dataclass(frozen=True)
class TurnMetrics:
    """ターン検出のデバッグ用メトリクス"""

    silence_duration_ms: float
    turn_duration_ms: float
    buffered_blocks: int


@dataclass(frozen=True)
class TranscriptionResult:
    """音声認識結果"""

    text: str


class SpeechToText(Protocol):
    """音声認識コラボレータ（ターン検出の内容解析で使用）"""

    @property
    def is_ready(self) -> bool:
        """認識可能な状態かどうか"""
        ...

    def transcribe(
        self, samples: np.ndarray, sample_rate: int
    ) -> TranscriptionResult:
        """float32モノラル音声を文字起こしする"""
        ...
