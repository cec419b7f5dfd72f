#!/usr/bin/env python3
"""
Ambient Ear - Domain Layer
ドメイン層：音声フレーム、検出結果、イベント、設定
"""

# モデルとデータ構造
from .models import (
    AnalysisFrame,
    AudioConsumer,
    MusicDetectionResult,
    RawAudioFrame,
    SpeechToText,
    TranscriptionResult,
    TurnDetectionResult,
    TurnMetrics,
    TurnReason,
)

# イベント（Pub/Sub）
from .events import (
    BeatDetectedEvent,
    ConfigChangedEvent,
    MessageLevel,
    MessagePostedEvent,
    MusicAnalyzedEvent,
    MusicStartedEvent,
    MusicStoppedEvent,
    TurnCompletedEvent,
    beat_detected,
    config_changed,
    message_posted,
    music_analyzed,
    music_started,
    music_stopped,
    post_message,
    turn_completed,
)

# 設定スキーマ（Pydantic）
from .settings import (
    AnalyserSettings,
    AppSettings,
    AudioSettings,
    MicrophoneSettings,
    MusicDetectorSettings,
    Settings,
    TurnDetectionSettings,
    VADDetectionSettings,
    VADModelSettings,
    VADSettings,
    WhisperSettings,
    is_valid_buffer_size,
)

__all__ = [
    # モデル
    "AnalysisFrame",
    "AudioConsumer",
    "MusicDetectionResult",
    "RawAudioFrame",
    "SpeechToText",
    "TranscriptionResult",
    "TurnDetectionResult",
    "TurnMetrics",
    "TurnReason",
    # イベント
    "BeatDetectedEvent",
    "ConfigChangedEvent",
    "MessageLevel",
    "MessagePostedEvent",
    "MusicAnalyzedEvent",
    "MusicStartedEvent",
    "MusicStoppedEvent",
    "TurnCompletedEvent",
    "beat_detected",
    "config_changed",
    "message_posted",
    "music_analyzed",
    "music_started",
    "music_stopped",
    "post_message",
    "turn_completed",
    # 設定
    "AnalyserSettings",
    "AppSettings",
    "AudioSettings",
    "MicrophoneSettings",
    "MusicDetectorSettings",
    "Settings",
    "TurnDetectionSettings",
    "VADDetectionSettings",
    "VADModelSettings",
    "VADSettings",
    "WhisperSettings",
    "is_valid_buffer_size",
]
