#!/usr/bin/env python3
"""
Ambient Ear - Constants
固定パラメータを管理するモジュール（設定で変更しない値）
"""

# ========================================
# 共有マイク（バッファサイズ調停）
# ========================================
MIN_BUFFER_SIZE = 256  # コンシューマが要求できる最小バッファサイズ
MAX_BUFFER_SIZE = 16384  # コンシューマが要求できる最大バッファサイズ
DEFAULT_BUFFER_SIZE = 4096  # コンシューマ不在時の処理バッファサイズ
FALLBACK_SAMPLE_RATE = 48000  # デバイスがサンプルレートを報告しない場合

# ========================================
# アナライザ
# ========================================
TIME_DOMAIN_MIDPOINT = 128  # 時間領域バイト値のゼロ点
TIME_DOMAIN_SCALE = 128.0  # 時間領域バイト値のスケール

# ========================================
# 音楽判定：履歴サイズ
# ========================================
ANALYSIS_HISTORY_SIZE = 30  # 解析フレーム履歴（約0.5秒 @ 60fps相当）
MUSIC_SCORE_HISTORY_SIZE = 20  # 音楽スコア履歴
BASS_ENERGY_HISTORY_SIZE = 10  # 低域エネルギー履歴（ビート検出）
BPM_HISTORY_SIZE = 8  # 瞬時BPM履歴

MIN_ANALYSIS_HISTORY = 10  # 判定に必要な最小フレーム数
MIN_TEMPORAL_HISTORY = 15  # 時間的一貫性の判定に必要な最小フレーム数
MIN_BEAT_HISTORY = 5  # ビート判定に必要な最小サンプル数
MIN_BPM_SAMPLES = 3  # BPM推定に必要な最小サンプル数
MIN_BEAT_INTERVAL_FLOOR_MS = 250  # ビート間隔の下限（240BPM上限）

# ========================================
# 音楽判定：特徴量
# ========================================
SILENCE_ENERGY_THRESHOLD = 10.0  # これ未満の総帯域エネルギーは無音扱い
MIN_TEMPORAL_VOLUME = 0.01  # これ未満の平均音量は無音扱い
SPECTRAL_PEAK_THRESHOLD = 50  # スペクトルピークとみなす最小振幅
SPECTRAL_PEAK_CAP = 10  # 正規化に使うピーク数の上限

# 帯域比率の許容範囲（開区間）
BASS_SHARE_RANGE = (0.15, 0.5)
HIGH_SHARE_RANGE = (0.1, 0.4)

# 周波数分布スコアの重み
DISTRIBUTION_VARIATION_WEIGHT = 0.4
DISTRIBUTION_BASS_BONUS = 0.3
DISTRIBUTION_HIGH_BONUS = 0.3

# スペクトル複雑度の重み
COMPLEXITY_PEAK_WEIGHT = 0.6
COMPLEXITY_CENTROID_WEIGHT = 0.4

# 総合音楽スコアの重み
FREQUENCY_SCORE_WEIGHT = 0.35
TEMPORAL_SCORE_WEIGHT = 0.25
SPECTRAL_SCORE_WEIGHT = 0.25
BEAT_SCORE_WEIGHT = 0.15

MS_PER_MINUTE = 60000.0

# ========================================
# VAD（Silero VADの入力仕様）
# ========================================
VAD_SAMPLE_RATE = 16000  # Silero VADのサンプルレート
VAD_CHUNK_SIZE = 512  # Silero VADの推論チャンク（32ミリ秒）
