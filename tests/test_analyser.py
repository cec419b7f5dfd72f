"""SpectrumAnalyserのテスト"""

import numpy as np
import pytest
from pydantic import ValidationError

from ambient_ear.domain import AnalyserSettings
from ambient_ear.infrastructure.audio import SpectrumAnalyser

SAMPLE_RATE = 48000


def sine(bin_index: int, length: int = 2048, amplitude: float = 0.5) -> np.ndarray:
    """FFTビンの中心周波数に一致する正弦波"""
    frequency = bin_index * SAMPLE_RATE / 2048
    t = np.arange(length) / SAMPLE_RATE
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


@pytest.fixture
def analyser() -> SpectrumAnalyser:
    return SpectrumAnalyser(AnalyserSettings())


class TestFrequencyData:
    """周波数データのテスト"""

    def test_bin_count_is_half_fft_size(self, analyser: SpectrumAnalyser) -> None:
        assert len(analyser.byte_frequency_data()) == 1024

    def test_silence_maps_to_zero(self, analyser: SpectrumAnalyser) -> None:
        analyser.push(np.zeros(2048, dtype=np.float32))
        data = analyser.byte_frequency_data()
        assert data.dtype == np.uint8
        assert not data.any()

    def test_sine_peaks_at_its_bin(self, analyser: SpectrumAnalyser) -> None:
        analyser.push(sine(64))
        data = analyser.byte_frequency_data()

        assert int(np.argmax(data)) == 64
        assert SpectrumAnalyser.peak_frequency(data, SAMPLE_RATE) == pytest.approx(
            1500.0
        )

    def test_smoothing_accumulates_over_calls(self, analyser: SpectrumAnalyser) -> None:
        """同じ入力でも呼び出しごとに平滑化値が近づく"""
        analyser.push(sine(64))
        first = analyser.byte_frequency_data()
        second = analyser.byte_frequency_data()
        assert second[64] > first[64]

    def test_no_smoothing(self) -> None:
        analyser = SpectrumAnalyser(AnalyserSettings(smoothing_time_constant=0.0))
        analyser.push(sine(64))
        first = analyser.byte_frequency_data()
        second = analyser.byte_frequency_data()
        np.testing.assert_array_equal(first, second)

    def test_reset_clears_smoothing(self, analyser: SpectrumAnalyser) -> None:
        analyser.push(sine(64))
        analyser.byte_frequency_data()

        analyser.reset()

        assert not analyser.byte_frequency_data().any()


class TestTimeDomainData:
    """時間波形データのテスト"""

    def test_zero_is_midpoint(self, analyser: SpectrumAnalyser) -> None:
        data = analyser.byte_time_domain_data()
        assert len(data) == 1024
        assert (data == 128).all()

    def test_scaling_and_clipping(self, analyser: SpectrumAnalyser) -> None:
        samples = np.concatenate(
            (np.full(1024, 0.5, dtype=np.float32), np.full(1024, 1.5, dtype=np.float32))
        )
        analyser.push(samples[:1024])
        assert (analyser.byte_time_domain_data() == 192).all()

        analyser.push(samples[1024:])
        assert (analyser.byte_time_domain_data() == 255).all()

    def test_push_keeps_latest_samples(self, analyser: SpectrumAnalyser) -> None:
        """fft_sizeより長い入力は末尾だけ保持"""
        samples = np.concatenate(
            (np.full(4096, 0.5, dtype=np.float32), np.full(1024, -0.5, dtype=np.float32))
        )
        analyser.push(samples)
        assert (analyser.byte_time_domain_data() == 64).all()

    def test_short_pushes_shift_buffer(self, analyser: SpectrumAnalyser) -> None:
        analyser.push(np.full(512, 0.5, dtype=np.float32))
        data = analyser.byte_time_domain_data()
        assert (data[:512] == 128).all()
        assert (data[512:] == 192).all()


class TestStaticHelpers:
    """音量とピーク周波数のテスト"""

    def test_volume(self) -> None:
        assert SpectrumAnalyser.volume(np.full(1024, 128, dtype=np.uint8)) == 0.0
        assert SpectrumAnalyser.volume(np.full(1024, 192, dtype=np.uint8)) == 0.5
        assert SpectrumAnalyser.volume(np.array([0, 255], dtype=np.uint8)) == (
            pytest.approx((128 + 127) / 2 / 128)
        )
        assert SpectrumAnalyser.volume(np.zeros(0, dtype=np.uint8)) == 0.0

    def test_peak_frequency_of_empty_data(self) -> None:
        assert SpectrumAnalyser.peak_frequency(np.zeros(0, dtype=np.uint8), 48000) == 0.0


class TestSettings:
    """アナライザ設定の検証テスト"""

    @pytest.mark.parametrize("fft_size", [1000, 16, 65536])
    def test_invalid_fft_size(self, fft_size: int) -> None:
        with pytest.raises(ValidationError):
            AnalyserSettings(fft_size=fft_size)

    def test_decibel_range_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            AnalyserSettings(min_decibels=-30.0, max_decibels=-100.0)

    def test_custom_fft_size(self) -> None:
        analyser = SpectrumAnalyser(AnalyserSettings(fft_size=512))
        assert len(analyser.byte_frequency_data()) == 256
