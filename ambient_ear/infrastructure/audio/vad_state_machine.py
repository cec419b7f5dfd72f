#!/usr/bin/env python3
"""
Ambient Ear - VAD State Machine Module
発話確率から発話区間の開始/終了を判定するステートマシン
"""

from enum import Enum, auto

from ambient_ear.domain import VADDetectionSettings


class SpeechTransition(Enum):
    """チャンク処理によって発生する遷移"""

    NONE = auto()
    SPEECH_STARTED = auto()
    SPEECH_ENDED = auto()
    RESET_MODEL = auto()


class VadStateMachine:
    """
    発話区間のヒステリシス判定

    - 開始: start_threshold 以上が min_speech_chunks 連続
    - 終了: end_threshold 未満が max_silence_chunks 連続
    - 待機中の無音が idle_reset_chunks 続いたらモデル状態のリセットを要求
    """

    def __init__(self, settings: VADDetectionSettings) -> None:
        self.settings = settings
        self.is_speaking = False
        self.speech_chunks = 0
        self.silence_chunks = 0
        self.idle_silence_chunks = 0

    def process(self, probability: float) -> SpeechTransition:
        """
        発話確率を1チャンク分処理する

        Args:
            probability: VADの発話確率 (0.0-1.0)

        Returns:
            SpeechTransition: このチャンクで発生した遷移
        """
        if self._is_speech(probability):
            return self._handle_speech()
        return self._handle_silence()

    def reset(self) -> None:
        """全カウンタと発話状態をクリア"""
        self.is_speaking = False
        self.speech_chunks = 0
        self.silence_chunks = 0
        self.idle_silence_chunks = 0

    def _is_speech(self, probability: float) -> bool:
        # 発話中は低い閾値で語尾を保護
        if self.is_speaking:
            return probability >= self.settings.end_threshold
        return probability >= self.settings.start_threshold

    def _handle_speech(self) -> SpeechTransition:
        self.silence_chunks = 0
        self.idle_silence_chunks = 0
        self.speech_chunks += 1

        if not self.is_speaking and self.speech_chunks >= self.settings.min_speech_chunks:
            self.is_speaking = True
            return SpeechTransition.SPEECH_STARTED
        return SpeechTransition.NONE

    def _handle_silence(self) -> SpeechTransition:
        self.speech_chunks = 0

        if self.is_speaking:
            self.silence_chunks += 1
            if self.silence_chunks >= self.settings.max_silence_chunks:
                self.is_speaking = False
                self.silence_chunks = 0
                return SpeechTransition.SPEECH_ENDED
            return SpeechTransition.NONE

        self.idle_silence_chunks += 1
        if self.idle_silence_chunks >= self.settings.idle_reset_chunks:
            self.idle_silence_chunks = 0
            return SpeechTransition.RESET_MODEL
        return SpeechTransition.NONE
