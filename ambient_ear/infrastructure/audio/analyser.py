#!/usr/bin/env python3
"""
Ambient Ear - Spectrum Analyser Module
FFTスペクトルと時間波形をバイト配列で提供するアナライザ
"""

import numpy as np

from ambient_ear.domain import AnalyserSettings
from ambient_ear.domain.constants import TIME_DOMAIN_MIDPOINT, TIME_DOMAIN_SCALE


class SpectrumAnalyser:
    """
    リアルタイムスペクトルアナライザ

    機能:
    - 直近 fft_size サンプルのリングバッファ
    - Blackman窓 + FFT、フレーム間の指数平滑化
    - dB値を min_decibels..max_decibels で 0-255 に写像
    """

    def __init__(self, settings: AnalyserSettings) -> None:
        """
        Args:
            settings: アナライザ設定（FFTサイズ、平滑化係数、dB範囲）
        """
        self.settings = settings
        self.fft_size = settings.fft_size
        self.frequency_bin_count = settings.frequency_bin_count
        self._window = np.blackman(self.fft_size).astype(np.float32)
        self.reset()

    def reset(self) -> None:
        """バッファと平滑化状態をクリア"""
        self._buffer = np.zeros(self.fft_size, dtype=np.float32)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)

    def push(self, samples: np.ndarray) -> None:
        """
        サンプルをリングバッファへ追加

        Args:
            samples: float32モノラル音声（任意長）
        """
        if len(samples) >= self.fft_size:
            self._buffer = np.asarray(samples[-self.fft_size :], dtype=np.float32)
            return
        self._buffer = np.concatenate(
            (self._buffer[len(samples) :], np.asarray(samples, dtype=np.float32))
        )

    def byte_frequency_data(self) -> np.ndarray:
        """
        平滑化済みスペクトルをバイト配列で返す

        呼び出すたびに平滑化状態が1ステップ進む（1ティック1回）。

        Returns:
            np.ndarray: uint8 (frequency_bin_count,)
        """
        spectrum = np.fft.rfft(self._buffer * self._window)
        magnitude = np.abs(spectrum[: self.frequency_bin_count]) / self.fft_size

        tau = self.settings.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        # ゼロ振幅は -inf dB → 0 に写像
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)

        min_db = self.settings.min_decibels
        db_range = self.settings.max_decibels - min_db
        scaled = np.floor(255.0 / db_range * (decibels - min_db))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def byte_time_domain_data(self) -> np.ndarray:
        """
        直近の時間波形をバイト配列で返す（128がゼロ）

        Returns:
            np.ndarray: uint8 (frequency_bin_count,)
        """
        recent = self._buffer[-self.frequency_bin_count :]
        scaled = np.floor(TIME_DOMAIN_SCALE * (1.0 + recent))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    @staticmethod
    def volume(time_domain: np.ndarray) -> float:
        """時間波形バイト列の中点からの平均絶対偏差（0.0-1.0）"""
        if len(time_domain) == 0:
            return 0.0
        deviation = np.abs(time_domain.astype(np.int16) - TIME_DOMAIN_MIDPOINT)
        return float(np.mean(deviation) / TIME_DOMAIN_SCALE)

    @staticmethod
    def peak_frequency(frequency_data: np.ndarray, sample_rate: int) -> float:
        """最大振幅ビンの周波数（Hz）"""
        if len(frequency_data) == 0:
            return 0.0
        peak_index = int(np.argmax(frequency_data))
        return peak_index * sample_rate / (2 * len(frequency_data))
