#!/usr/bin/env python3
"""
Ambient Ear - Music Detector Module
解析フレームから音楽/発話を判別し、ビートとBPMを推定するモジュール
"""

from collections import deque
from collections.abc import Callable
from typing import Any, TypeVar

import numpy as np
from blinker import Signal

from ambient_ear.domain import (
    AnalysisFrame,
    BeatDetectedEvent,
    ConfigChangedEvent,
    MusicAnalyzedEvent,
    MusicDetectionResult,
    MusicDetectorSettings,
    MusicStartedEvent,
    MusicStoppedEvent,
    beat_detected,
    config_changed,
    music_analyzed,
    music_started,
    music_stopped,
)
from ambient_ear.domain.constants import (
    ANALYSIS_HISTORY_SIZE,
    BASS_ENERGY_HISTORY_SIZE,
    BEAT_SCORE_WEIGHT,
    BPM_HISTORY_SIZE,
    FREQUENCY_SCORE_WEIGHT,
    MIN_ANALYSIS_HISTORY,
    MIN_BEAT_HISTORY,
    MIN_BPM_SAMPLES,
    MS_PER_MINUTE,
    MUSIC_SCORE_HISTORY_SIZE,
    SPECTRAL_SCORE_WEIGHT,
    TEMPORAL_SCORE_WEIGHT,
)

from .features import (
    BASS,
    SUB_BASS,
    band_energy,
    frequency_distribution_score,
    spectral_complexity_score,
    temporal_consistency_score,
)

E = TypeVar("E")

# 購読解除関数
Unsubscribe = Callable[[], None]


def _subscribe(
    signal: Signal, sender: Any, handler: Callable[[E], None]
) -> Unsubscribe:
    """sender を限定してハンドラを接続し、解除関数を返す"""

    def receiver(_sender: Any, event: E) -> None:
        handler(event)

    signal.connect(receiver, sender=sender, weak=False)
    return lambda: signal.disconnect(receiver, sender=sender)


class MusicDetector:
    """
    音楽判別器

    機能:
    - 帯域分布・時間的一貫性・スペクトル複雑度・ビートの重み付きスコア
    - 直近20フレームの平均スコアにヒステリシス（開始 > 感度、停止 < 感度×stop_ratio）
    - 状態遷移は最低2秒間隔（ちらつき防止）
    - 低域エネルギーのスパイクによるビート検出と中央値BPM

    時刻はフレームのストリーム時刻（timestamp_ms）を使う。
    1つの音声スレッドから呼ばれる前提で、内部状態はロックしない。
    """

    def __init__(self, settings: MusicDetectorSettings | None = None) -> None:
        """
        Args:
            settings: 音楽判定設定（Noneの場合はデフォルト値）
        """
        self._settings = settings or MusicDetectorSettings()

        self._analysis_history: deque[AnalysisFrame] = deque(
            maxlen=ANALYSIS_HISTORY_SIZE
        )
        self._music_score_history: deque[float] = deque(
            maxlen=MUSIC_SCORE_HISTORY_SIZE
        )
        self._bass_energy_history: deque[float] = deque(
            maxlen=BASS_ENERGY_HISTORY_SIZE
        )
        self._bpm_history: deque[float] = deque(maxlen=BPM_HISTORY_SIZE)

        self._is_music = False
        self._last_transition_ms: int | None = None  # None = 遷移なし
        self._last_beat_ms: int | None = None  # None = ビートなし

    # ========== 判定 ==========

    def process_audio_analysis(self, frame: AnalysisFrame) -> MusicDetectionResult:
        """
        1フレームを解析して判定結果を返す

        無効時は履歴を変更せずゼロ結果を返す。
        履歴が10フレーム未満の間もゼロ結果（履歴には追加する）。

        Args:
            frame: 共有マイクからの解析フレーム

        Returns:
            MusicDetectionResult: このフレームの判定結果
        """
        if not self._settings.enabled:
            return self._empty_result(frame.timestamp_ms)

        self._analysis_history.append(frame)
        if len(self._analysis_history) < MIN_ANALYSIS_HISTORY:
            return self._empty_result(frame.timestamp_ms)

        spectrum = frame.frequency_magnitudes
        frequency_score = frequency_distribution_score(spectrum)
        temporal_score = temporal_consistency_score(
            [f.volume for f in self._analysis_history],
            [f.peak_frequency_hz for f in self._analysis_history],
        )
        spectral_complexity = spectral_complexity_score(spectrum)

        is_beat = (
            self._detect_beat(spectrum, frame.timestamp_ms)
            if self._settings.beat_detection_enabled
            else False
        )
        bpm = self._estimate_bpm()

        music_score = (
            frequency_score * FREQUENCY_SCORE_WEIGHT
            + temporal_score * TEMPORAL_SCORE_WEIGHT
            + spectral_complexity * SPECTRAL_SCORE_WEIGHT
            + (BEAT_SCORE_WEIGHT if is_beat else 0.0)
        )
        self._music_score_history.append(music_score)
        average_score = sum(self._music_score_history) / len(self._music_score_history)

        self._update_music_state(average_score, frame.timestamp_ms)

        result = MusicDetectionResult(
            is_music=self._is_music,
            confidence=average_score,
            beat_detected=is_beat,
            bpm=bpm,
            energy_level=frame.volume,
            spectral_complexity=spectral_complexity,
            timestamp_ms=frame.timestamp_ms,
        )
        music_analyzed.send(self, event=MusicAnalyzedEvent(result=result))
        return result

    def _update_music_state(self, average_score: float, now_ms: int) -> None:
        """ヒステリシスと最小状態維持時間で音楽状態を遷移"""
        if not self._dwell_elapsed(now_ms):
            return

        sensitivity = self._settings.sensitivity
        if not self._is_music and average_score > sensitivity:
            self._is_music = True
            self._last_transition_ms = now_ms
            music_started.send(
                self,
                event=MusicStartedEvent(confidence=average_score, timestamp_ms=now_ms),
            )
        elif self._is_music and average_score < sensitivity * self._settings.stop_ratio:
            self._is_music = False
            self._last_transition_ms = now_ms
            music_stopped.send(
                self,
                event=MusicStoppedEvent(confidence=average_score, timestamp_ms=now_ms),
            )

    def _dwell_elapsed(self, now_ms: int) -> bool:
        if self._last_transition_ms is None:
            return True
        return now_ms - self._last_transition_ms >= self._settings.min_state_change_ms

    def _detect_beat(self, spectrum: np.ndarray, now_ms: int) -> bool:
        """
        低域エネルギーのスパイクでビートを検出

        閾値 = 直近10フレームの平均 + 標準偏差 × beat_threshold_stddev。
        前回ビートから min_beat_interval_ms 以上空いている必要がある。
        """
        energy = band_energy(spectrum, SUB_BASS) + band_energy(spectrum, BASS)
        self._bass_energy_history.append(energy)
        if len(self._bass_energy_history) < MIN_BEAT_HISTORY:
            return False

        history = np.asarray(self._bass_energy_history, dtype=np.float64)
        threshold = float(np.mean(history)) + float(np.std(history)) * (
            self._settings.beat_threshold_stddev
        )
        if energy <= threshold:
            return False

        last_beat_ms = self._last_beat_ms
        if last_beat_ms is not None:
            interval_ms = now_ms - last_beat_ms
            if interval_ms < self._settings.min_beat_interval_ms:
                return False
            if 0 < interval_ms < self._settings.max_beat_interval_ms:
                self._bpm_history.append(MS_PER_MINUTE / interval_ms)

        self._last_beat_ms = now_ms
        beat_detected.send(
            self, event=BeatDetectedEvent(energy=energy, timestamp_ms=now_ms)
        )
        return True

    def _estimate_bpm(self) -> float:
        """瞬時BPM履歴の中央値（3サンプル未満は0）"""
        if len(self._bpm_history) < MIN_BPM_SAMPLES:
            return 0.0
        return float(np.median(np.asarray(self._bpm_history)))

    def _empty_result(self, timestamp_ms: int) -> MusicDetectionResult:
        return MusicDetectionResult(
            is_music=False,
            confidence=0.0,
            beat_detected=False,
            bpm=0.0,
            energy_level=0.0,
            spectral_complexity=0.0,
            timestamp_ms=timestamp_ms,
        )

    # ========== 状態管理 ==========

    def reset(self) -> None:
        """全履歴と状態フラグをクリア"""
        self._analysis_history.clear()
        self._music_score_history.clear()
        self._bass_energy_history.clear()
        self._bpm_history.clear()
        self._is_music = False
        self._last_transition_ms = None
        self._last_beat_ms = None

    def update_config(self, **changes: Any) -> MusicDetectorSettings:
        """
        設定を部分更新する（検証済みの新しい設定で置き換え）

        Raises:
            pydantic.ValidationError: 値が不正な場合
        """
        self._settings = MusicDetectorSettings(
            **{**self._settings.model_dump(), **changes}
        )
        config_changed.send(
            self,
            event=ConfigChangedEvent(
                section="music", config=self._settings.model_dump(mode="json")
            ),
        )
        return self._settings

    @property
    def config(self) -> MusicDetectorSettings:
        return self._settings

    @property
    def is_music(self) -> bool:
        return self._is_music

    # ========== 購読 ==========

    def on_music_start(self, handler: Callable[[MusicStartedEvent], None]) -> Unsubscribe:
        """この検出器の音楽開始を購読"""
        return _subscribe(music_started, self, handler)

    def on_music_stop(self, handler: Callable[[MusicStoppedEvent], None]) -> Unsubscribe:
        """この検出器の音楽停止を購読"""
        return _subscribe(music_stopped, self, handler)

    def on_beat(self, handler: Callable[[BeatDetectedEvent], None]) -> Unsubscribe:
        """この検出器のビートを購読"""
        return _subscribe(beat_detected, self, handler)

    def on_analysis(self, handler: Callable[[MusicAnalyzedEvent], None]) -> Unsubscribe:
        """この検出器のフレームごとの判定結果を購読"""
        return _subscribe(music_analyzed, self, handler)
