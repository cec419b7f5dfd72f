#!/usr/bin/env python3
"""
Ambient Ear - Shared Microphone Module
1つの音声入力を複数コンシューマへ配信するマルチプレクサ
"""

import numpy as np

from ambient_ear.domain import (
    AnalyserSettings,
    AnalysisFrame,
    AudioConsumer,
    MessageLevel,
    MicrophoneSettings,
    RawAudioFrame,
    is_valid_buffer_size,
    post_message,
)
from ambient_ear.domain.constants import DEFAULT_BUFFER_SIZE

from .analyser import SpectrumAnalyser
from .sources import AudioAccessError, AudioSource, CaptureConstraints


class SharedMicrophone:
    """
    共有マイクマネージャ

    機能:
    - 音声入力（AudioSource）とアナライザを1つだけ保持
    - 生フレーム/解析フレームを登録済みコンシューマへ配信
    - 処理バッファサイズ = 全コンシューマの要求サイズの最小値
    - 録音中のコンシューマがいる間はバッファサイズ変更を保留

    明示的に生成して各コンシューマへ注入する（グローバルなシングルトンは持たない）。
    ティック処理は音声ソースのコールバックスレッドで完結し、
    コンシューマは1ティック内で直列に呼ばれる。
    """

    def __init__(
        self,
        audio_source: AudioSource,
        analyser_settings: AnalyserSettings,
        microphone_settings: MicrophoneSettings | None = None,
    ) -> None:
        """
        Args:
            audio_source: 音声入力（マイクまたはファイル）
            analyser_settings: スペクトルアナライザ設定
            microphone_settings: 入力要求時の制約（Noneの場合は全て有効）
        """
        self.audio_source = audio_source
        self.analyser = SpectrumAnalyser(analyser_settings)

        mic = microphone_settings or MicrophoneSettings()
        self.constraints = CaptureConstraints(
            echo_cancellation=mic.echo_cancellation,
            noise_suppression=mic.noise_suppression,
            auto_gain_control=mic.auto_gain_control,
        )

        self._consumers: dict[str, AudioConsumer] = {}
        self._active_recordings: set[str] = set()
        self._permission_granted = False
        self._sample_rate: int | None = None
        self._buffer_size: int | None = None  # 処理中のバッファサイズ
        self._samples_delivered = 0  # ストリーム時刻の基準

    # ========== アクセス管理 ==========

    def request_access(self) -> bool:
        """
        音声入力へのアクセスを要求する（冪等）

        入力が開いたままなら即座にTrue。閉じられていた場合は解放してから開き直す。
        サンプルレートは入力のネイティブ値を採用する。

        Returns:
            bool: アクセスできた場合True（権限拒否やハードウェアエラーはFalse）
        """
        if self._permission_granted and self.audio_source.is_open:
            return True

        if self._permission_granted:
            post_message(
                self,
                "Audio source was closed, reinitializing...",
                MessageLevel.WARNING,
            )
            self._release_source()

        try:
            sample_rate = self.audio_source.open(self.constraints)
        except AudioAccessError as e:
            post_message(
                self, f"Failed to access microphone: {e}", MessageLevel.ERROR
            )
            self._permission_granted = False
            return False

        self._sample_rate = sample_rate
        self._permission_granted = True
        post_message(
            self,
            f"Microphone access granted, sample rate: {sample_rate}Hz",
            MessageLevel.SUCCESS,
        )

        # アクセス前に登録されたコンシューマがいれば処理を開始
        if self._consumers and not self.is_active:
            self._start_processing()

        return True

    def get_sample_rate(self) -> int | None:
        """入力のサンプルレート（アクセス前はNone）"""
        return self._sample_rate

    # ========== コンシューマ管理 ==========

    def register_consumer(self, consumer: AudioConsumer) -> bool:
        """
        コンシューマを登録する

        Returns:
            bool: ID重複または不正なバッファサイズの場合False（状態は変更しない）
        """
        if consumer.id in self._consumers:
            post_message(
                self,
                f"Consumer {consumer.id} already registered",
                MessageLevel.WARNING,
            )
            return False

        if not is_valid_buffer_size(consumer.buffer_size):
            post_message(
                self,
                f"Consumer {consumer.id} requested invalid buffer size {consumer.buffer_size}",
                MessageLevel.WARNING,
            )
            return False

        self._consumers[consumer.id] = consumer
        post_message(
            self,
            f"Registered consumer: {consumer.name} ({consumer.id}) with buffer size {consumer.buffer_size}",
            MessageLevel.INFO,
        )

        if not self.is_active:
            self._start_processing()
        else:
            self._restart_processing_if_needed()

        return True

    def unregister_consumer(self, consumer_id: str) -> bool:
        """
        コンシューマの登録を解除する

        Returns:
            bool: 登録されていた場合True
        """
        removed = self._consumers.pop(consumer_id, None) is not None
        if removed:
            self._active_recordings.discard(consumer_id)
            post_message(
                self, f"Unregistered consumer: {consumer_id}", MessageLevel.INFO
            )

        if not self._consumers and self.is_active:
            self._stop_processing()
        elif self._consumers and self.is_active:
            self._restart_processing_if_needed()

        return removed

    def mark_recording_start(self, consumer_id: str) -> None:
        """録音開始を宣言（録音中はバッファサイズを変更しない）"""
        self._active_recordings.add(consumer_id)
        post_message(
            self,
            f"Recording started for consumer {consumer_id}. Active recordings: {len(self._active_recordings)}",
            MessageLevel.INFO,
        )

    def mark_recording_stop(self, consumer_id: str) -> None:
        """録音終了を宣言（最後の録音が終われば保留中のサイズ変更を適用）"""
        self._active_recordings.discard(consumer_id)
        post_message(
            self,
            f"Recording stopped for consumer {consumer_id}. Active recordings: {len(self._active_recordings)}",
            MessageLevel.INFO,
        )
        if not self._active_recordings:
            self._restart_processing_if_needed()

    def get_optimal_buffer_size(self) -> int:
        """全コンシューマの要求サイズの最小値"""
        if not self._consumers:
            return DEFAULT_BUFFER_SIZE
        return min(consumer.buffer_size for consumer in self._consumers.values())

    # ========== 処理制御 ==========

    def _restart_processing_if_needed(self) -> None:
        """
        バッファサイズが変わった場合に処理を再起動

        録音中のコンシューマがいる場合は再起動しない（サンプル連続性の保証）
        """
        if not self.is_active:
            return

        if self._active_recordings:
            post_message(
                self,
                f"Active recordings in progress ({len(self._active_recordings)}), deferring buffer size change",
                MessageLevel.INFO,
            )
            return

        optimal_buffer_size = self.get_optimal_buffer_size()
        if self._buffer_size != optimal_buffer_size:
            post_message(
                self,
                f"Buffer size changed from {self._buffer_size} to {optimal_buffer_size}, restarting...",
                MessageLevel.INFO,
            )
            self._stop_processing()
            self._start_processing()

    def _start_processing(self) -> None:
        """現在の最適バッファサイズで音声ソースを開始"""
        if not self._permission_granted:
            post_message(
                self,
                "Cannot start processing - audio source not initialized",
                MessageLevel.WARNING,
            )
            return

        buffer_size = self.get_optimal_buffer_size()
        try:
            self.audio_source.start(buffer_size, self._on_audio_block)
        except AudioAccessError as e:
            post_message(
                self, f"Failed to start audio processing: {e}", MessageLevel.ERROR
            )
            return

        self._buffer_size = buffer_size
        post_message(
            self,
            f"Audio processing started with buffer size {buffer_size}",
            MessageLevel.INFO,
        )

    def _stop_processing(self) -> None:
        """音声ソースのブロック配信を停止"""
        self.audio_source.stop()
        self._buffer_size = None
        post_message(self, "Audio processing stopped", MessageLevel.INFO)

    # ========== ティック処理 ==========

    def _on_audio_block(self, samples: np.ndarray) -> None:
        """
        1ティック分の処理（音声ソースのコールバックスレッドで実行）

        生フレームを全コンシューマへ配信した後、解析を要求するコンシューマがいれば
        解析フレームを1つだけ生成して配信する。
        """
        sample_rate = self._sample_rate
        if sample_rate is None:
            return

        samples.flags.writeable = False
        timestamp_sec = self._samples_delivered / sample_rate
        self._samples_delivered += len(samples)
        self.analyser.push(samples)

        # 登録/解除が別スレッドから来てもティックが壊れないようスナップショットで回す
        consumers = tuple(self._consumers.values())

        raw_frame = RawAudioFrame(samples=samples, timestamp_sec=timestamp_sec)
        for consumer in consumers:
            try:
                consumer.on_raw_frame(raw_frame)
            except Exception as e:
                post_message(
                    self, f"Error in consumer {consumer.id}: {e!r}", MessageLevel.ERROR
                )

        analysis_consumers = [c for c in consumers if c.on_analysis_frame is not None]
        if not analysis_consumers:
            return

        analysis_frame = self._generate_analysis_frame(timestamp_sec, sample_rate)
        for consumer in analysis_consumers:
            try:
                consumer.on_analysis_frame(analysis_frame)  # type: ignore[misc]
            except Exception as e:
                post_message(
                    self,
                    f"Error in consumer analysis {consumer.id}: {e!r}",
                    MessageLevel.ERROR,
                )

    def _generate_analysis_frame(
        self, timestamp_sec: float, sample_rate: int
    ) -> AnalysisFrame:
        """アナライザの現在値から解析フレームを生成"""
        frequency_data = self.analyser.byte_frequency_data()
        time_domain_data = self.analyser.byte_time_domain_data()
        frequency_data.flags.writeable = False
        time_domain_data.flags.writeable = False

        return AnalysisFrame(
            volume=SpectrumAnalyser.volume(time_domain_data),
            frequency_magnitudes=frequency_data,
            time_domain_samples=time_domain_data,
            average_frequency=float(np.mean(frequency_data)),
            peak_frequency_hz=SpectrumAnalyser.peak_frequency(
                frequency_data, sample_rate
            ),
            timestamp_ms=int(round(timestamp_sec * 1000)),
        )

    # ========== 後片付け ==========

    def _release_source(self) -> None:
        """処理を止めて音声入力を閉じる（コンシューマ登録は保持）"""
        if self.is_active:
            self._stop_processing()
        self.audio_source.close()
        self.analyser.reset()
        self._permission_granted = False
        self._sample_rate = None
        self._samples_delivered = 0

    def cleanup(self) -> None:
        """音声入力を解放し、全コンシューマ状態をクリア（複数回呼んでも安全）"""
        self._release_source()
        self._consumers.clear()
        self._active_recordings.clear()
        post_message(self, "Cleanup complete", MessageLevel.INFO)

    # ========== 状態取得 ==========

    @property
    def is_active(self) -> bool:
        """ブロック配信中かどうか"""
        return self._buffer_size is not None

    @property
    def buffer_size(self) -> int | None:
        """処理中のバッファサイズ（停止中はNone）"""
        return self._buffer_size

    @property
    def has_active_recordings(self) -> bool:
        return bool(self._active_recordings)

    @property
    def consumer_ids(self) -> list[str]:
        """登録済みコンシューマID（登録順）"""
        return list(self._consumers)
