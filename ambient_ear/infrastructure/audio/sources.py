#!/usr/bin/env python3
"""
Ambient Ear - Audio Sources Module
音声入力（ハードウェアストリーム）の抽象化とアダプタを提供するモジュール
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np
import sounddevice as sd  # type: ignore[import-untyped]
import soundfile as sf  # type: ignore[import-untyped]

from ambient_ear.domain import MessageLevel, post_message
from ambient_ear.domain.constants import FALLBACK_SAMPLE_RATE

# ブロックコールバック: float32モノラルの1ブロックを受け取る
BlockCallback = Callable[[np.ndarray], None]


class AudioAccessError(Exception):
    """音声入力へのアクセス失敗（権限拒否、デバイス不在、ファイル不正）"""


@dataclass(frozen=True)
class CaptureConstraints:
    """音声入力要求時の制約"""

    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


@dataclass(frozen=True)
class AudioDevice:
    """オーディオデバイス情報"""

    id: int
    name: str
    max_input_channels: int
    default_sample_rate: float
    is_default: bool = False


class AudioSource(ABC):
    """
    音声入力の抽象基底クラス

    open() でデバイスのネイティブサンプルレートを確定し、
    start() で指定ブロックサイズのfloat32モノラルブロックをコールバックへ push する。
    コールバックは1ブロックずつ直列に呼ばれる（前のブロックの処理完了後に次が届く）。
    """

    @abstractmethod
    def open(self, constraints: CaptureConstraints) -> int:
        """
        音声入力を開き、ネイティブサンプルレートを返す

        Raises:
            AudioAccessError: 権限拒否やハードウェアエラーの場合
        """

    @abstractmethod
    def start(self, block_size: int, callback: BlockCallback) -> None:
        """ブロック配信を開始"""

    @abstractmethod
    def stop(self) -> None:
        """ブロック配信を停止（入力は開いたまま）"""

    @abstractmethod
    def close(self) -> None:
        """入力を閉じる（複数回呼んでも安全）"""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """入力が開いているかどうか"""

    @property
    @abstractmethod
    def is_realtime(self) -> bool:
        """リアルタイム入力ソースかどうか"""


class MicrophoneAudioSource(AudioSource):
    """
    マイク入力からの音声ソース

    sounddevice の InputStream をデバイスのネイティブサンプルレートで開く。
    任意のサンプルレートはデバイスに拒否され得るため要求しない。
    コールバックは PortAudio のスレッドから呼ばれる。
    """

    @staticmethod
    def list_devices() -> list[AudioDevice]:
        """
        利用可能な入力デバイス一覧を取得する

        Returns:
            list[AudioDevice]: 入力可能なオーディオデバイスのリスト
        """
        raw_devices = sd.query_devices()

        # デバイスが存在しない場合
        if not isinstance(raw_devices, sd.DeviceList) or len(raw_devices) == 0:
            return []

        default_input_device_id: int | None = sd.default.device[0]

        return [
            AudioDevice(
                id=device_id,
                name=device_info["name"],
                max_input_channels=device_info["max_input_channels"],
                default_sample_rate=device_info["default_samplerate"],
                is_default=(device_id == default_input_device_id),
            )
            for device_id, device_info in enumerate(raw_devices)
            if device_info["max_input_channels"] > 0
        ]

    def __init__(self, device_id: int | None = None) -> None:
        """
        Args:
            device_id: 使用するオーディオデバイスのID（Noneの場合はデフォルトデバイス）
        """
        self._device_id = device_id
        self._stream: sd.InputStream | None = None
        self._callback: BlockCallback | None = None
        self._sample_rate: int | None = None
        self.constraints: CaptureConstraints | None = None

    def open(self, constraints: CaptureConstraints) -> int:
        """デバイス情報を取得し、ネイティブサンプルレートで入力可能か検証する"""
        if self._sample_rate is not None:
            return self._sample_rate

        try:
            device_info = sd.query_devices(self._device_id, kind="input")
            sample_rate = int(device_info["default_samplerate"] or FALLBACK_SAMPLE_RATE)
            sd.check_input_settings(
                device=self._device_id,
                channels=1,
                dtype="float32",
                samplerate=sample_rate,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise AudioAccessError(f"Microphone unavailable: {e}") from e

        # エコーキャンセル等はOSのオーディオスタックに委ねる（PortAudioに該当APIなし）
        self.constraints = constraints
        self._sample_rate = sample_rate
        return sample_rate

    def _audio_callback(
        self,
        indata: np.ndarray,
        _frames: int,
        _time_info: Any,
        status: sd.CallbackFlags,
    ) -> None:
        """sounddeviceコールバック（PortAudioスレッド）"""
        if status:
            post_message(self, f"Audio Error: {status}", MessageLevel.ERROR)

        callback = self._callback
        if callback is not None:
            # モノラル化してコピー（indataはコールバック後に再利用される）
            callback(indata[:, 0].copy())

    def start(self, block_size: int, callback: BlockCallback) -> None:
        """指定ブロックサイズで入力ストリームを開始"""
        if self._sample_rate is None:
            raise AudioAccessError("Microphone is not open")

        self._callback = callback
        self._stream = sd.InputStream(
            device=self._device_id,
            samplerate=self._sample_rate,
            channels=1,
            dtype=np.float32,
            blocksize=block_size,
            callback=self._audio_callback,
        )
        self._stream.start()

    def stop(self) -> None:
        """入力ストリームを停止"""
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        self._callback = None

    def close(self) -> None:
        """ストリームを停止し、デバイスを解放"""
        self.stop()
        self._sample_rate = None

    @property
    def is_open(self) -> bool:
        return self._sample_rate is not None

    @property
    def is_realtime(self) -> bool:
        """マイク入力はリアルタイムソース"""
        return True


class FileAudioSource(AudioSource):
    """
    音声ファイルからの音声ソース

    mp3/wav 等をファイル本来のサンプルレートのまま読み込み（リサンプリングしない）、
    再生スレッドからブロック単位でコールバックへ push する。
    stop()→start() で再生位置を引き継ぐため、ブロックサイズ変更でサンプルは欠落しない。
    """

    def __init__(
        self,
        file_path: str,
        realtime_simulation: bool = False,
        shutdown_timeout_sec: float = 2.0,
    ) -> None:
        """
        Args:
            file_path: 音声ファイルのパス (mp3/wav 等)
            realtime_simulation: True の場合、実時間に合わせて sleep を入れる
            shutdown_timeout_sec: 再生スレッド停止のタイムアウト（秒）
        """
        self.file_path = file_path
        self.realtime_simulation = realtime_simulation
        self.shutdown_timeout_sec = shutdown_timeout_sec
        self._audio_data: np.ndarray | None = None
        self._sample_rate: int | None = None
        self._position = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def open(self, constraints: CaptureConstraints) -> int:
        """音声ファイルを読み込み、モノラルに変換"""
        if self._audio_data is not None and self._sample_rate is not None:
            return self._sample_rate

        try:
            audio_data, sample_rate = sf.read(self.file_path, dtype="float32")
        except (sf.SoundFileError, OSError) as e:
            raise AudioAccessError(f"Cannot read {self.file_path}: {e}") from e

        # ステレオの場合はモノラルに変換
        if len(audio_data.shape) > 1:
            audio_data = np.mean(audio_data, axis=1)

        self._audio_data = np.asarray(audio_data, dtype=np.float32)
        self._sample_rate = int(sample_rate)
        self._position = 0
        return self._sample_rate

    def start(self, block_size: int, callback: BlockCallback) -> None:
        """再生スレッドを開始"""
        if self._audio_data is None:
            raise AudioAccessError("Audio file is not open")
        if self._thread and self._thread.is_alive():
            return  # すでに再生中

        # 再生ごとに停止イベントを分ける（コールバック内からの再起動に対応）
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._playback_loop,
            args=(block_size, callback, self._stop_event),
            daemon=True,
            name="FilePlaybackThread",
        )
        self._thread.start()

    def _playback_loop(
        self, block_size: int, callback: BlockCallback, stop_event: threading.Event
    ) -> None:
        """再生ループ（別スレッドで実行）"""
        audio_data = self._audio_data
        sample_rate = self._sample_rate
        if audio_data is None or sample_rate is None:
            return

        block_duration = block_size / sample_rate
        total_samples = len(audio_data)

        while not stop_event.is_set() and self._position < total_samples:
            block = audio_data[self._position : self._position + block_size]
            self._position += block_size

            # 最後のブロックが短い場合はゼロパディング
            if len(block) < block_size:
                block = np.pad(
                    block, (0, block_size - len(block)), mode="constant"
                ).astype(np.float32)

            callback(block)

            if self.realtime_simulation:
                time.sleep(block_duration)

    def stop(self) -> None:
        """再生スレッドを停止（再生位置は保持）"""
        self._stop_event.set()
        if (
            self._thread
            and self._thread.is_alive()
            and self._thread is not threading.current_thread()
        ):
            self._thread.join(timeout=self.shutdown_timeout_sec)
        self._thread = None

    def close(self) -> None:
        """リソースのクリーンアップ"""
        self.stop()
        self._audio_data = None
        self._sample_rate = None
        self._position = 0

    def wait(self, timeout: float | None = None) -> bool:
        """
        再生完了を待機

        Returns:
            bool: 再生スレッドが終了していればTrue
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    @property
    def is_finished(self) -> bool:
        """全サンプルを配信し終えたかどうか"""
        return self._audio_data is None or self._position >= len(self._audio_data)

    @property
    def is_open(self) -> bool:
        return self._audio_data is not None

    @property
    def is_realtime(self) -> bool:
        """ファイル入力は非リアルタイムソース"""
        return False

    @property
    def duration(self) -> float:
        """音声ファイルの長さ（秒）"""
        if self._audio_data is None or not self._sample_rate:
            return 0.0
        return len(self._audio_data) / self._sample_rate
