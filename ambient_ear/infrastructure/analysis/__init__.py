#!/usr/bin/env python3
"""
Ambient Ear - Analysis Infrastructure
音楽判別、ターン完了検出、共有マイクへの登録
"""

# 特徴量
from .features import (
    BANDS,
    FrequencyBand,
    band_energy,
    count_spectral_peaks,
    frequency_distribution_score,
    spectral_centroid,
    spectral_complexity_score,
    temporal_consistency_score,
)

# 検出器
from .music_detector import MusicDetector
from .turn_detector import TurnDetector, classify_transcript

# コンシューマ
from .consumers import MusicDetectionConsumer, TurnDetectionConsumer

__all__ = [
    # 特徴量
    "BANDS",
    "FrequencyBand",
    "band_energy",
    "count_spectral_peaks",
    "frequency_distribution_score",
    "spectral_centroid",
    "spectral_complexity_score",
    "temporal_consistency_score",
    # 検出器
    "MusicDetector",
    "TurnDetector",
    "classify_transcript",
    # コンシューマ
    "MusicDetectionConsumer",
    "TurnDetectionConsumer",
]
