#!/usr/bin/env python3
"""
Ambient Ear - Transcriber Module
MLX Whisperによる文字起こし（ターン検出の内容解析用）
"""

import threading
from enum import Enum

import mlx_whisper  # type: ignore[import-untyped]
import numpy as np

from ambient_ear.domain import (
    MessageLevel,
    TranscriptionResult,
    WhisperSettings,
    post_message,
)
from ambient_ear.domain.constants import VAD_SAMPLE_RATE
from ambient_ear.infrastructure.audio import resample_linear

# Whisperの入力サンプルレート
WHISPER_SAMPLE_RATE = VAD_SAMPLE_RATE


class ModelState(str, Enum):
    """モデルの読み込み状態"""

    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class WhisperSpeechToText:
    """
    MLX Whisperによる音声認識アダプタ（SpeechToText）

    機能:
    - 起動時のモデル事前読み込み（無音1秒で初期化）
    - 任意サンプルレートの入力を16kHzへ変換
    - 推論の直列化（MLXは同時推論に対応しない）
    """

    def __init__(self, settings: WhisperSettings) -> None:
        self.settings = settings
        self._state = ModelState.LOADING
        self._lock = threading.Lock()

        if settings.preload:
            self.preload()
        else:
            # 初回の文字起こしでモデルを読み込む
            self._state = ModelState.READY

    def preload(self) -> bool:
        """
        モデルを事前読み込みする

        Returns:
            bool: 読み込みに成功した場合True
        """
        self._state = ModelState.LOADING
        post_message(
            self, f"Loading Whisper model: {self.settings.model}", MessageLevel.INFO
        )

        dummy_audio = np.zeros(WHISPER_SAMPLE_RATE, dtype=np.float32)
        try:
            with self._lock:
                self._run(dummy_audio)
        except Exception as e:
            self._state = ModelState.FAILED
            post_message(
                self, f"Whisper model preload failed: {e}", MessageLevel.WARNING
            )
            return False

        self._state = ModelState.READY
        post_message(self, "Whisper model ready.", MessageLevel.SUCCESS)
        return True

    def _run(self, audio: np.ndarray) -> str:
        result = mlx_whisper.transcribe(
            audio,
            path_or_hf_repo=self.settings.model,
            language=self.settings.language,
            condition_on_previous_text=False,
            verbose=None,
        )
        text = result.get("text", "")
        return str(text).strip() if text else ""

    def transcribe(
        self, samples: np.ndarray, sample_rate: int
    ) -> TranscriptionResult:
        """
        音声を文字起こしする

        Args:
            samples: float32モノラル音声
            sample_rate: samples のサンプルレート

        Returns:
            TranscriptionResult: 認識結果（前後の空白は除去済み）

        Raises:
            RuntimeError: モデルが利用できない場合
        """
        if self._state == ModelState.FAILED:
            raise RuntimeError("Whisper model is not available")

        audio = resample_linear(samples, sample_rate, WHISPER_SAMPLE_RATE)
        with self._lock:
            return TranscriptionResult(text=self._run(audio))

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_ready(self) -> bool:
        """文字起こし可能な状態かどうか"""
        return self._state == ModelState.READY
