#!/usr/bin/env python3
"""
Ambient Ear - Feature Extractors
スペクトル/時系列から音楽らしさの特徴量を算出する純粋関数群
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ambient_ear.domain.constants import (
    BASS_SHARE_RANGE,
    COMPLEXITY_CENTROID_WEIGHT,
    COMPLEXITY_PEAK_WEIGHT,
    DISTRIBUTION_BASS_BONUS,
    DISTRIBUTION_HIGH_BONUS,
    DISTRIBUTION_VARIATION_WEIGHT,
    HIGH_SHARE_RANGE,
    MIN_TEMPORAL_HISTORY,
    MIN_TEMPORAL_VOLUME,
    SILENCE_ENERGY_THRESHOLD,
    SPECTRAL_PEAK_CAP,
    SPECTRAL_PEAK_THRESHOLD,
)


@dataclass(frozen=True)
class FrequencyBand:
    """周波数ビンの半開区間 [start, end)"""

    name: str
    start: int
    end: int


# 2048点FFT（1024ビン）で校正したビン範囲
SUB_BASS = FrequencyBand("sub_bass", 0, 4)  # 0-80 Hz
BASS = FrequencyBand("bass", 4, 12)  # 80-250 Hz
LOW_MID = FrequencyBand("low_mid", 12, 25)  # 250-500 Hz
MID = FrequencyBand("mid", 25, 50)  # 500-1000 Hz
HIGH_MID = FrequencyBand("high_mid", 50, 100)  # 1-2 kHz
PRESENCE = FrequencyBand("presence", 100, 200)  # 2-4 kHz
BRILLIANCE = FrequencyBand("brilliance", 200, 400)  # 4-8 kHz

BANDS: tuple[FrequencyBand, ...] = (
    SUB_BASS,
    BASS,
    LOW_MID,
    MID,
    HIGH_MID,
    PRESENCE,
    BRILLIANCE,
)


def band_energy(spectrum: np.ndarray, band: FrequencyBand) -> float:
    """
    帯域内の平均振幅

    範囲はスペクトル長で切り詰める。空になった場合は0。
    """
    values = spectrum[band.start : min(band.end, len(spectrum))]
    if len(values) == 0:
        return 0.0
    return float(np.mean(values, dtype=np.float64))


def frequency_distribution_score(spectrum: np.ndarray) -> float:
    """
    帯域エネルギー分布の音楽らしさ（0.0-1.0）

    音楽は帯域間のエネルギーが均等で、低域と高域を適度に含む。
    発話は中域に集中する。
    """
    energies = np.array([band_energy(spectrum, band) for band in BANDS])
    total = float(np.sum(energies))
    if total < SILENCE_ENERGY_THRESHOLD:
        return 0.0

    mean = total / len(energies)
    coefficient_of_variation = float(np.std(energies)) / mean if mean > 0 else 1.0

    bass_share = (band_energy(spectrum, SUB_BASS) + band_energy(spectrum, BASS)) / total
    high_share = (
        band_energy(spectrum, PRESENCE) + band_energy(spectrum, BRILLIANCE)
    ) / total

    score = max(0.0, 1.0 - coefficient_of_variation) * DISTRIBUTION_VARIATION_WEIGHT
    if BASS_SHARE_RANGE[0] < bass_share < BASS_SHARE_RANGE[1]:
        score += DISTRIBUTION_BASS_BONUS
    if HIGH_SHARE_RANGE[0] < high_share < HIGH_SHARE_RANGE[1]:
        score += DISTRIBUTION_HIGH_BONUS
    return min(1.0, score)


def _consistency(values: np.ndarray) -> float:
    """1 - 変動係数（0未満は0、平均が0以下なら0）"""
    mean = float(np.mean(values))
    if mean <= 0:
        return 0.0
    return max(0.0, 1.0 - float(np.std(values)) / mean)


def temporal_consistency_score(
    volumes: Sequence[float], peaks: Sequence[float]
) -> float:
    """
    音量とピーク周波数の時間的一貫性（0.0-1.0）

    Args:
        volumes: 直近フレームの音量
        peaks: 直近フレームのピーク周波数（Hz）

    Returns:
        float: 履歴不足（15フレーム未満）または無音なら0
    """
    if len(volumes) < MIN_TEMPORAL_HISTORY:
        return 0.0

    volume_array = np.asarray(volumes, dtype=np.float64)
    if float(np.mean(volume_array)) < MIN_TEMPORAL_VOLUME:
        return 0.0

    peak_array = np.asarray(peaks, dtype=np.float64)
    return 0.5 * _consistency(volume_array) + 0.5 * _consistency(peak_array)


def count_spectral_peaks(
    spectrum: np.ndarray, threshold: int = SPECTRAL_PEAK_THRESHOLD
) -> int:
    """
    前後2ビンより厳密に大きい局所最大の数

    Args:
        spectrum: 周波数振幅（0-255）
        threshold: ピークとみなす最小振幅（この値を超える必要がある）
    """
    if len(spectrum) < 5:
        return 0

    values = spectrum.astype(np.int16)
    center = values[2:-2]
    is_peak = (
        (center > threshold)
        & (center > values[1:-3])
        & (center > values[:-4])
        & (center > values[3:-1])
        & (center > values[4:])
    )
    return int(np.count_nonzero(is_peak))


def spectral_centroid(spectrum: np.ndarray) -> float:
    """振幅で重み付けした平均ビン番号（総振幅0なら0）"""
    magnitudes = spectrum.astype(np.float64)
    total = float(np.sum(magnitudes))
    if total <= 0:
        return 0.0
    return float(np.dot(magnitudes, np.arange(len(magnitudes)))) / total


def spectral_complexity_score(spectrum: np.ndarray) -> float:
    """ピーク数と重心から見たスペクトルの豊かさ（0.0-1.0）"""
    if len(spectrum) == 0:
        return 0.0

    peak_score = min(1.0, count_spectral_peaks(spectrum) / SPECTRAL_PEAK_CAP)
    centroid_score = min(1.0, 2.0 * spectral_centroid(spectrum) / len(spectrum))
    return (
        peak_score * COMPLEXITY_PEAK_WEIGHT + centroid_score * COMPLEXITY_CENTROID_WEIGHT
    )
