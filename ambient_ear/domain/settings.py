#!/usr/bin/env python3
"""
Ambient Ear - Settings Schema
設定のスキーマ定義（Pydanticモデル）
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings
from typing_extensions import Self

from .constants import MAX_BUFFER_SIZE, MIN_BEAT_INTERVAL_FLOOR_MS, MIN_BUFFER_SIZE


# ========================================
# Helper Functions
# ========================================
def is_valid_buffer_size(size: int) -> bool:
    """256-16384 の2の冪かどうか"""
    return MIN_BUFFER_SIZE <= size <= MAX_BUFFER_SIZE and size & (size - 1) == 0


def _check_buffer_size(size: int) -> int:
    if not is_valid_buffer_size(size):
        raise ValueError(
            f"buffer size must be a power of two in [{MIN_BUFFER_SIZE}, {MAX_BUFFER_SIZE}], got {size}"
        )
    return size


# ========================================
# Microphone Configuration
# ========================================
class MicrophoneSettings(BaseSettings):
    """マイク入力設定（デバイス要求時の制約）"""

    device_id: int | None = Field(
        default=None,
        description="入力デバイスID - Noneでデフォルトデバイス",
    )
    echo_cancellation: bool = Field(
        default=True,
        description="エコーキャンセルを要求するか",
    )
    noise_suppression: bool = Field(
        default=True,
        description="ノイズ抑制を要求するか",
    )
    auto_gain_control: bool = Field(
        default=True,
        description="自動ゲイン調整を要求するか",
    )


# ========================================
# Analyser Configuration
# ========================================
class AnalyserSettings(BaseSettings):
    """スペクトルアナライザ設定"""

    fft_size: int = Field(
        default=2048,
        description="FFTサイズ - 周波数ビン数はこの半分（帯域インデックスは2048点で校正済み）",
    )
    smoothing_time_constant: float = Field(
        default=0.8,
        description="スペクトルの時間平滑化係数（0.0-1.0）",
    )
    min_decibels: float = Field(
        default=-100.0,
        description="バイト値0に対応するdB",
    )
    max_decibels: float = Field(
        default=-30.0,
        description="バイト値255に対応するdB",
    )

    @field_validator("fft_size")
    @classmethod
    def validate_fft_size(cls, value: int) -> int:
        """FFTサイズは32-32768の2の冪"""
        if not (32 <= value <= 32768 and value & (value - 1) == 0):
            raise ValueError(f"analyser.fft_size must be a power of two, got {value}")
        return value

    @field_validator("smoothing_time_constant")
    @classmethod
    def validate_smoothing(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("analyser.smoothing_time_constant must be in [0, 1]")
        return value

    @model_validator(mode="after")
    def validate_decibel_range(self) -> Self:
        """dB範囲の整合性を検証"""
        if self.min_decibels >= self.max_decibels:
            raise ValueError("analyser.min_decibels must be lower than max_decibels")
        return self

    @property
    def frequency_bin_count(self) -> int:
        """周波数ビン数"""
        return self.fft_size // 2


# ========================================
# Audio Configuration
# ========================================
class AudioSettings(BaseSettings):
    """音声ソース設定"""

    file_realtime_simulation: bool = Field(
        default=True,
        description="ファイル入力を実時間で再生するか",
    )
    playback_shutdown_timeout_sec: float = Field(
        default=2.0,
        description="ファイル再生スレッド停止タイムアウト（秒）",
    )


# ========================================
# Music Detector Configuration
# ========================================
class MusicDetectorSettings(BaseSettings):
    """音楽判定設定"""

    enabled: bool = Field(
        default=True,
        description="音楽判定の有効/無効",
    )
    sensitivity: float = Field(
        default=0.6,
        description="音楽開始閾値（0.0-1.0、低いほど音楽と判定しやすい）",
    )
    stop_ratio: float = Field(
        default=0.7,
        description="音楽停止閾値の係数（停止閾値 = sensitivity × stop_ratio）",
    )
    beat_detection_enabled: bool = Field(
        default=True,
        description="ビート検出の有効/無効",
    )
    mute_idle_speech_on_music: bool = Field(
        default=True,
        description="音楽再生中にアイドル発話を抑制するか（アプリケーション層が参照）",
    )
    beat_threshold_stddev: float = Field(
        default=1.5,
        description="ビート閾値 = 平均 + 標準偏差 × この値",
    )
    min_state_change_ms: int = Field(
        default=2000,
        ge=0,
        description="状態遷移の最小間隔（ミリ秒） - ちらつき防止",
    )
    min_beat_interval_ms: int = Field(
        default=250,
        ge=MIN_BEAT_INTERVAL_FLOOR_MS,
        description="ビート間の最小間隔（ミリ秒） - 240BPM上限",
    )
    max_beat_interval_ms: int = Field(
        default=2000,
        description="BPM算出に使うビート間隔の上限（ミリ秒） - 外れ値除外",
    )
    consumer_buffer_size: int = Field(
        default=4096,
        description="共有マイクに要求するバッファサイズ",
    )

    @field_validator("sensitivity", "stop_ratio")
    @classmethod
    def validate_unit_interval(cls, value: float) -> float:
        if not 0.0 < value <= 1.0:
            raise ValueError("music.sensitivity and music.stop_ratio must be in (0, 1]")
        return value

    @field_validator("consumer_buffer_size")
    @classmethod
    def validate_consumer_buffer_size(cls, value: int) -> int:
        return _check_buffer_size(value)

    @model_validator(mode="after")
    def validate_beat_intervals(self) -> Self:
        """ビート間隔の整合性を検証"""
        if self.min_beat_interval_ms >= self.max_beat_interval_ms:
            raise ValueError(
                "music.min_beat_interval_ms must be lower than max_beat_interval_ms"
            )
        return self


# ========================================
# Turn Detection Configuration
# ========================================
class TurnDetectionSettings(BaseSettings):
    """ターン完了検出設定"""

    enabled: bool = Field(
        default=True,
        description="ターン検出の有効/無効（無効時は単純な無音判定）",
    )
    silence_threshold_ms: int = Field(
        default=1200,
        description="ターン完了とみなす無音時間（ミリ秒） - 単純なVADより保守的",
    )
    use_content_analysis: bool = Field(
        default=True,
        description="文字起こし内容でターン完了を判定するか",
    )
    min_turn_duration_ms: int = Field(
        default=500,
        description="有効なターンの最小長（ミリ秒）",
    )
    fallback_silence_ms: int = Field(
        default=800,
        description="無効時の無音判定時間（ミリ秒）",
    )
    max_buffer_sec: float = Field(
        default=30.0,
        description="発話バッファの上限（秒）",
    )
    consumer_buffer_size: int = Field(
        default=1024,
        description="共有マイクに要求するバッファサイズ",
    )

    @field_validator("consumer_buffer_size")
    @classmethod
    def validate_consumer_buffer_size(cls, value: int) -> int:
        return _check_buffer_size(value)


# ========================================
# VAD Configuration
# ========================================
class VADModelSettings(BaseSettings):
    """Silero VADモデル設定"""

    url: str = Field(
        default="https://github.com/snakers4/silero-vad/raw/v5.0/files/silero_vad.onnx",
        description="モデルダウンロードURL",
    )

    @property
    def model_dir(self) -> Path:
        """モデル保存ディレクトリ"""
        return Path.home() / ".cache" / "silero-vad"

    @property
    def model_path(self) -> Path:
        """モデルファイルパス"""
        return self.model_dir / "silero_vad.onnx"


class VADDetectionSettings(BaseSettings):
    """VAD発話区間検出設定"""

    start_threshold: float = Field(
        default=0.5,
        description="発話開始閾値（高め=誤検知防止）",
    )
    end_threshold: float = Field(
        default=0.3,
        description="発話終了閾値（低め=語尾切れ防止）",
    )
    min_speech_chunks: int = Field(
        default=3,
        description="最小発話チャンク数（32ms*3=96ms、相槌を拾う）",
    )
    max_silence_chunks: int = Field(
        default=8,
        description="最大無音チャンク数（32ms*8=256ms、無音判定はターン検出側で行う）",
    )
    idle_reset_chunks: int = Field(
        default=1000,
        description="待機中の無音リセット閾値（32ms*1000=約32秒）",
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> Self:
        """ヒステリシス閾値の整合性を検証"""
        if self.end_threshold > self.start_threshold:
            raise ValueError(
                "vad.detection.end_threshold must not exceed start_threshold"
            )
        return self


class VADSettings(BaseSettings):
    """VAD全体設定"""

    model: VADModelSettings = Field(default_factory=VADModelSettings)
    detection: VADDetectionSettings = Field(default_factory=VADDetectionSettings)


# ========================================
# Whisper Configuration
# ========================================
class WhisperSettings(BaseSettings):
    """Whisperモデル設定（ターン検出の内容解析用）"""

    model: str = Field(
        default="mlx-community/whisper-large-v3-turbo",
        description="Whisperモデル名",
    )
    language: str | None = Field(
        default="en",
        description="言語コード - Noneで自動判定（完了/継続パターンは英語）",
    )
    preload: bool = Field(
        default=True,
        description="起動時にモデルを事前読み込みするか",
    )


# ========================================
# Application Configuration
# ========================================
class AppSettings(BaseSettings):
    """アプリケーション全体設定"""

    input_poll_interval_sec: float = Field(
        default=0.1,
        description="終了待機ループのポーリング間隔（秒）",
    )
    turn_worker_shutdown_timeout_sec: float = Field(
        default=5.0,
        description="ターン判定ワーカー停止タイムアウト（秒）",
    )
    show_analysis: bool = Field(
        default=False,
        description="フレームごとの解析結果を表示するか",
    )
    status_update_interval_sec: float = Field(
        default=0.1,
        description="ステータスバー更新間隔（秒）",
    )
    status_update_shutdown_timeout_sec: float = Field(
        default=1.0,
        description="ステータスバー更新スレッド停止タイムアウト（秒）",
    )


# ========================================
# Main Settings Class
# ========================================
class Settings(BaseSettings):
    """
    Ambient Ear全体設定

    設定の読み込み優先順位（後勝ち）:
    1. デフォルト値（各Settingsクラス内）
    2. config.toml（プロジェクトルート）
    3. config.local.toml（プロジェクトルート）
    """

    microphone: MicrophoneSettings = Field(default_factory=MicrophoneSettings)
    analyser: AnalyserSettings = Field(default_factory=AnalyserSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    music: MusicDetectorSettings = Field(default_factory=MusicDetectorSettings)
    turn_detection: TurnDetectionSettings = Field(
        default_factory=TurnDetectionSettings
    )
    vad: VADSettings = Field(default_factory=VADSettings)
    whisper: WhisperSettings = Field(default_factory=WhisperSettings)
    app: AppSettings = Field(default_factory=AppSettings)
