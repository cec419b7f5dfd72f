#!/usr/bin/env python3
"""
Ambient Ear - Turn Detector Module
発話区間の無音時間と発話内容から話者のターン完了を判定するモジュール
"""

import re
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any

import numpy as np

from ambient_ear.domain import (
    ConfigChangedEvent,
    MessageLevel,
    SpeechToText,
    TurnDetectionResult,
    TurnDetectionSettings,
    TurnMetrics,
    TurnReason,
    config_changed,
    post_message,
)
from ambient_ear.domain.constants import VAD_SAMPLE_RATE

# 文が完結していることを示すパターン
COMPLETION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[.!?]$"),
    re.compile(
        r"(thank you|thanks|okay|alright|got it|that's all|that is all)$",
        re.IGNORECASE,
    ),
    re.compile(r"(right\?|okay\?|correct\?)$", re.IGNORECASE),
)

# 発話が続くことを示すパターン
CONTINUATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(and|but|so|because|however|therefore|although|while|since)\s*$",
        re.IGNORECASE,
    ),
    re.compile(r"\b(to|from|with|in|on|at|by|for)\s*$", re.IGNORECASE),
    re.compile(r"\b(than|like|as)\s*$", re.IGNORECASE),
    re.compile(r",\s*$"),
)

SHORT_UTTERANCE_MAX_WORDS = 3


def classify_transcript(transcript: str) -> TurnDetectionResult:
    """
    文字起こし結果からターン完了を判定

    優先順位: 完結パターン > 継続パターン > 短い発話 > 既定（無音時間を信頼）
    """
    text = transcript.strip()

    if any(pattern.search(text) for pattern in COMPLETION_PATTERNS):
        return TurnDetectionResult(True, 0.95, TurnReason.PATTERN, text)

    if any(pattern.search(text) for pattern in CONTINUATION_PATTERNS):
        return TurnDetectionResult(False, 0.9, TurnReason.PATTERN, text)

    if len(text.split()) <= SHORT_UTTERANCE_MAX_WORDS:
        return TurnDetectionResult(True, 0.85, TurnReason.CONTENT, text)

    return TurnDetectionResult(True, 0.75, TurnReason.HYBRID, text)


class TurnDetector:
    """
    ターン完了検出器

    機能:
    - 無音時間と最小ターン長による判定（単純なVADより保守的）
    - 発話音声のローリングバッファ（上限30秒）
    - 音声認識結果の完結/継続パターンによる内容解析

    process_audio は音声スレッド、detect_turn_completion はワーカースレッドから
    呼ばれ得るため、バッファはロックで保護する。
    内容解析は同時に1つだけ実行し、実行中の要求は待たずに中立結果を返す。
    """

    def __init__(
        self,
        settings: TurnDetectionSettings | None = None,
        speech_to_text: SpeechToText | None = None,
        sample_rate: int = VAD_SAMPLE_RATE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            settings: ターン検出設定（Noneの場合はデフォルト値）
            speech_to_text: 内容解析に使う音声認識（Noneの場合は無音判定にフォールバック）
            sample_rate: process_audio に渡される音声のサンプルレート
            clock: 単調増加の時計（秒）
        """
        self._settings = settings or TurnDetectionSettings()
        self.speech_to_text = speech_to_text
        self.sample_rate = sample_rate
        self._clock = clock

        self._buffer: deque[np.ndarray] = deque()
        self._buffered_samples = 0
        self._buffer_lock = threading.Lock()
        self._analysis_lock = threading.Lock()

        now = clock()
        self._last_speech_time = now
        self._turn_start_time = now

    # ========== 音声入力 ==========

    def process_audio(self, samples: np.ndarray, is_speaking: bool) -> None:
        """
        1ブロック分の音声を処理する

        発話中はブロックのコピーをバッファへ追加し、最終発話時刻を更新する。
        バッファが上限を超えたら古いブロックから捨てる。
        """
        if not self._settings.enabled or not is_speaking:
            return

        self._last_speech_time = self._clock()
        max_samples = int(self._settings.max_buffer_sec * self.sample_rate)

        with self._buffer_lock:
            self._buffer.append(np.array(samples, dtype=np.float32))
            self._buffered_samples += len(samples)
            while self._buffered_samples > max_samples and self._buffer:
                self._buffered_samples -= len(self._buffer.popleft())

    # ========== 判定 ==========

    def detect_turn_completion(self, is_speaking: bool) -> TurnDetectionResult | None:
        """
        ターンが完了したか判定する

        Args:
            is_speaking: 現在のVAD状態

        Returns:
            TurnDetectionResult | None: 判定結果（ターンが短すぎる/無音が足りない場合はNone）
        """
        now = self._clock()
        silence_ms = (now - self._last_speech_time) * 1000.0

        if not self._settings.enabled:
            return TurnDetectionResult(
                turn_complete=not is_speaking
                and silence_ms >= self._settings.fallback_silence_ms,
                confidence=1.0,
                reason=TurnReason.SILENCE,
            )

        if is_speaking:
            return TurnDetectionResult(False, 1.0, TurnReason.SILENCE)

        turn_ms = (now - self._turn_start_time) * 1000.0
        if turn_ms < self._settings.min_turn_duration_ms:
            return None
        if silence_ms < self._settings.silence_threshold_ms:
            return None

        if not self._settings.use_content_analysis:
            return TurnDetectionResult(True, 0.8, TurnReason.SILENCE)

        return self._analyze_content()

    def _analyze_content(self) -> TurnDetectionResult:
        """バッファ音声を文字起こしして内容から判定"""
        neutral = TurnDetectionResult(False, 0.5, TurnReason.CONTENT)

        if not self._analysis_lock.acquire(blocking=False):
            return neutral

        try:
            with self._buffer_lock:
                blocks = list(self._buffer)
            if not blocks:
                return neutral

            stt = self.speech_to_text
            if stt is None or not stt.is_ready:
                return TurnDetectionResult(True, 0.7, TurnReason.SILENCE)

            audio = np.concatenate(blocks)
            try:
                transcription = stt.transcribe(audio, self.sample_rate)
            except Exception as e:
                post_message(
                    self, f"Turn content analysis failed: {e}", MessageLevel.WARNING
                )
                return TurnDetectionResult(True, 0.6, TurnReason.SILENCE)

            return classify_transcript(transcription.text)
        finally:
            self._analysis_lock.release()

    # ========== 状態管理 ==========

    def reset(self) -> None:
        """バッファをクリアし、ターン開始/最終発話時刻を現在時刻にする"""
        with self._buffer_lock:
            self._buffer.clear()
            self._buffered_samples = 0
        now = self._clock()
        self._turn_start_time = now
        self._last_speech_time = now

    def get_metrics(self) -> TurnMetrics:
        """デバッグ用メトリクス"""
        now = self._clock()
        return TurnMetrics(
            silence_duration_ms=(now - self._last_speech_time) * 1000.0,
            turn_duration_ms=(now - self._turn_start_time) * 1000.0,
            buffered_blocks=len(self._buffer),
        )

    def update_config(self, **changes: Any) -> TurnDetectionSettings:
        """
        設定を部分更新し、config_changed を発行する

        永続化は購読側（呼び出し元）の責務。

        Raises:
            pydantic.ValidationError: 値が不正な場合
        """
        self._settings = TurnDetectionSettings(
            **{**self._settings.model_dump(), **changes}
        )
        config_changed.send(
            self,
            event=ConfigChangedEvent(
                section="turn_detection", config=self._settings.model_dump(mode="json")
            ),
        )
        return self._settings

    @property
    def config(self) -> TurnDetectionSettings:
        return self._settings

    @property
    def is_analyzing(self) -> bool:
        """内容解析が実行中かどうか"""
        return self._analysis_lock.locked()

    @property
    def buffered_samples(self) -> int:
        return self._buffered_samples
