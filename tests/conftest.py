"""共通フィクスチャ（音声ソースのフェイク、時計、フレーム生成）"""

import sys
from unittest.mock import MagicMock

import numpy as np
import pytest

# sounddevice が利用できない環境（Linux CI等）ではモックする
if "sounddevice" not in sys.modules:
    sys.modules["sounddevice"] = MagicMock()

from ambient_ear.domain import AnalysisFrame  # noqa: E402
from ambient_ear.infrastructure.audio import (  # noqa: E402
    AudioAccessError,
    AudioSource,
    CaptureConstraints,
)
from ambient_ear.infrastructure.audio.sources import BlockCallback  # noqa: E402


class FakeAudioSource(AudioSource):
    """テスト用の音声ソース（emit()で任意のブロックを配信）"""

    def __init__(self, sample_rate: int = 48000, fail_open: bool = False) -> None:
        self.sample_rate = sample_rate
        self.fail_open = fail_open
        self.constraints: CaptureConstraints | None = None
        self.open_calls = 0
        self.close_calls = 0
        self.started_block_sizes: list[int] = []
        self.stop_calls = 0
        self._open = False
        self._callback: BlockCallback | None = None

    def open(self, constraints: CaptureConstraints) -> int:
        self.open_calls += 1
        if self.fail_open:
            raise AudioAccessError("Permission denied")
        self.constraints = constraints
        self._open = True
        return self.sample_rate

    def start(self, block_size: int, callback: BlockCallback) -> None:
        self.started_block_sizes.append(block_size)
        self._callback = callback

    def stop(self) -> None:
        self.stop_calls += 1
        self._callback = None

    def close(self) -> None:
        self.close_calls += 1
        self.stop()
        self._open = False

    def emit(self, samples: np.ndarray) -> None:
        """開始中ならブロックを配信"""
        if self._callback is not None:
            self._callback(np.asarray(samples, dtype=np.float32))

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def is_running(self) -> bool:
        return self._callback is not None

    @property
    def is_realtime(self) -> bool:
        return True


class FakeClock:
    """手動で進める単調時計（秒）"""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_frame(
    spectrum: np.ndarray,
    timestamp_ms: int,
    volume: float = 0.3,
    peak_frequency_hz: float | None = None,
) -> AnalysisFrame:
    """スペクトルから解析フレームを生成（ピーク周波数は省略時argmaxから算出）"""
    frequency = np.asarray(spectrum, dtype=np.uint8)
    if peak_frequency_hz is None:
        peak_frequency_hz = int(np.argmax(frequency)) * 48000 / (2 * len(frequency))
    return AnalysisFrame(
        volume=volume,
        frequency_magnitudes=frequency,
        time_domain_samples=np.full(len(frequency), 128, dtype=np.uint8),
        average_frequency=float(np.mean(frequency)),
        peak_frequency_hz=peak_frequency_hz,
        timestamp_ms=timestamp_ms,
    )


def music_spectrum(beat: bool = False) -> np.ndarray:
    """
    音楽らしいスペクトル（1024ビン）

    平坦な100の上に40ビン間隔の倍音ピーク（250）。beat=Trueで低域（0-11）を強調。
    """
    spectrum = np.full(1024, 100, dtype=np.uint8)
    spectrum[20::40] = 250
    if beat:
        spectrum[:12] = 240
    return spectrum


@pytest.fixture
def fake_source() -> FakeAudioSource:
    return FakeAudioSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
