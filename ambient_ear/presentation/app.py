#!/usr/bin/env python3
"""
Ambient Ear - Core Application
プレゼンテーション層：AmbientEarAppコアロジック（コンポーネントの組み立てとライフサイクル）
"""

from ambient_ear.domain import (
    ConfigChangedEvent,
    MessageLevel,
    Settings,
    SpeechToText,
    config_changed,
    post_message,
)
from ambient_ear.infrastructure import settings_from_dict
from ambient_ear.infrastructure.analysis import (
    MusicDetectionConsumer,
    MusicDetector,
    TurnDetectionConsumer,
    TurnDetector,
)
from ambient_ear.infrastructure.audio import (
    AudioSource,
    FileAudioSource,
    SharedMicrophone,
    SpeechActivityTracker,
    VADDetector,
)


class AmbientEarApp:
    """
    Ambient Earコアアプリケーション

    責務:
    - 共有マイク、音楽判別器、ターン検出器の初期化と依存性注入
    - コンシューマの登録/解除
    - 設定変更イベントの反映

    Note:
    - 検出結果はblinkerのSignalで通知され、UI層が直接subscribeして表示する
    """

    def __init__(
        self,
        audio_source: AudioSource,
        settings: Settings,
        enable_turn_detection: bool = True,
    ) -> None:
        """
        Args:
            audio_source: 音声入力ソース
            settings: アプリケーション設定
            enable_turn_detection: ターン検出（VAD + Whisper）を使うか
        """
        self.settings = settings
        self.audio_source = audio_source
        self.is_file_mode = not audio_source.is_realtime

        # 1. 共有マイク
        self.microphone = SharedMicrophone(
            audio_source=audio_source,
            analyser_settings=settings.analyser,
            microphone_settings=settings.microphone,
        )

        # 2. 音楽判別
        self.music_detector = MusicDetector(settings.music)
        self.music_consumer = MusicDetectionConsumer(
            self.music_detector, buffer_size=settings.music.consumer_buffer_size
        )

        # 3. ターン検出（VAD + 音声認識）
        self.turn_detector: TurnDetector | None = None
        self.turn_consumer: TurnDetectionConsumer | None = None
        self.speech_activity: SpeechActivityTracker | None = None
        if enable_turn_detection:
            self._setup_turn_detection()

        # 4. 設定変更の反映（検出器からの変更のみ購読）
        self._config_sources: list[object] = [self.music_detector]
        if self.turn_detector is not None:
            self._config_sources.append(self.turn_detector)
        for source in self._config_sources:
            config_changed.connect(self._on_config_changed, sender=source)

    def _setup_turn_detection(self) -> None:
        """VAD、音声認識、ターン検出器を初期化"""
        vad = VADDetector(self.settings.vad.model)
        self.speech_activity = SpeechActivityTracker(vad, self.settings.vad.detection)

        self.turn_detector = TurnDetector(
            settings=self.settings.turn_detection,
            speech_to_text=self._create_speech_to_text(),
        )
        self.turn_consumer = TurnDetectionConsumer(
            self.turn_detector,
            self.speech_activity,
            buffer_size=self.settings.turn_detection.consumer_buffer_size,
            music_detector=self.music_detector,
            shutdown_timeout_sec=self.settings.app.turn_worker_shutdown_timeout_sec,
        )

    def _create_speech_to_text(self) -> SpeechToText | None:
        """
        内容解析用の音声認識を生成

        mlx-whisper は Apple Silicon 専用。利用できない環境では
        ターン検出は無音時間のみで判定する。
        """
        if not self.settings.turn_detection.use_content_analysis:
            return None

        try:
            from ambient_ear.infrastructure.ml import WhisperSpeechToText
        except ImportError as e:
            post_message(
                self,
                f"Whisper unavailable ({e}), turn detection will rely on silence only",
                MessageLevel.WARNING,
            )
            return None

        return WhisperSpeechToText(self.settings.whisper)

    # ========== イベントハンドラ ==========

    def _on_config_changed(self, _sender: object, event: ConfigChangedEvent) -> None:
        """検出器の設定変更をアプリケーション設定へ反映"""
        self.settings = settings_from_dict({event.section: event.config}, base=self.settings)

    # ========== ライフサイクル ==========

    def start(self) -> bool:
        """
        マイクアクセスを要求し、コンシューマを登録する

        Returns:
            bool: 開始できた場合True
        """
        if not self.microphone.request_access():
            return False

        if self.settings.music.enabled:
            self.music_consumer.attach(self.microphone)
        if self.turn_consumer is not None:
            self.turn_consumer.attach(self.microphone)
        return True

    @property
    def is_finished(self) -> bool:
        """ファイル入力を最後まで処理し終えたかどうか"""
        source = self.audio_source
        if not isinstance(source, FileAudioSource):
            return False
        if not source.is_finished:
            return False
        return not self.turn_detector_busy

    @property
    def turn_detector_busy(self) -> bool:
        """ターン判定（文字起こし）が実行中かどうか"""
        return self.turn_detector is not None and self.turn_detector.is_analyzing

    def shutdown(self) -> None:
        """コンシューマを解除し、音声入力を解放"""
        for source in self._config_sources:
            config_changed.disconnect(self._on_config_changed, sender=source)

        if self.turn_consumer is not None:
            self.turn_consumer.detach()
        self.music_consumer.detach()
        self.microphone.cleanup()
