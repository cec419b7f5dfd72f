#!/usr/bin/env python3
"""
Ambient Ear - Speech Activity Module
共有マイクの生フレームから発話中かどうかを追跡するモジュール
"""

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from ambient_ear.domain import VADDetectionSettings
from ambient_ear.domain.constants import VAD_CHUNK_SIZE, VAD_SAMPLE_RATE

from .vad_state_machine import SpeechTransition, VadStateMachine


class SpeechProbabilityModel(Protocol):
    """16kHz / 512サンプルのチャンクから発話確率を返すモデル"""

    def __call__(self, audio_chunk: np.ndarray) -> float: ...

    def reset_states(self) -> None: ...


@dataclass(frozen=True)
class SpeechActivityStatus:
    """発話追跡の状態"""

    probability: float  # 直近チャンクのVAD確率
    is_speaking: bool
    speech_chunks: int  # 連続発話チャンク数


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """
    線形補間でリサンプリング

    Args:
        samples: float32モノラル音声
        source_rate: 入力サンプルレート
        target_rate: 出力サンプルレート

    Returns:
        np.ndarray: float32 リサンプリング後の音声
    """
    if source_rate == target_rate or len(samples) == 0:
        return np.asarray(samples, dtype=np.float32)

    target_length = int(round(len(samples) * target_rate / source_rate))
    if target_length == 0:
        return np.zeros(0, dtype=np.float32)

    source_positions = np.arange(len(samples))
    target_positions = np.linspace(0, len(samples) - 1, target_length)
    return np.interp(target_positions, source_positions, samples).astype(np.float32)


class SpeechActivityTracker:
    """
    発話区間トラッカー

    機能:
    - デバイスのサンプルレートから16kHzへリサンプリング
    - 512サンプルのチャンクに切り出してVAD推論
    - ヒステリシス（VadStateMachine）で発話開始/終了を判定
    """

    def __init__(
        self, model: SpeechProbabilityModel, settings: VADDetectionSettings
    ) -> None:
        """
        Args:
            model: 発話確率モデル（通常は VADDetector）
            settings: 発話区間検出設定
        """
        self.model = model
        self.state_machine = VadStateMachine(settings)
        self._pending = np.zeros(0, dtype=np.float32)
        self._probability = 0.0

    def process(self, samples: np.ndarray, sample_rate: int) -> list[SpeechTransition]:
        """
        1ブロック分の音声を処理する

        Args:
            samples: float32モノラル音声（デバイスのサンプルレート）
            sample_rate: samples のサンプルレート

        Returns:
            list[SpeechTransition]: このブロックで発生した開始/終了遷移（発生順）
        """
        resampled = resample_linear(samples, sample_rate, VAD_SAMPLE_RATE)
        self._pending = np.concatenate((self._pending, resampled))

        transitions: list[SpeechTransition] = []
        while len(self._pending) >= VAD_CHUNK_SIZE:
            chunk = self._pending[:VAD_CHUNK_SIZE]
            self._pending = self._pending[VAD_CHUNK_SIZE:]

            self._probability = self.model(chunk)
            transition = self.state_machine.process(self._probability)

            if transition == SpeechTransition.RESET_MODEL:
                self.model.reset_states()
            elif transition != SpeechTransition.NONE:
                transitions.append(transition)

        return transitions

    def reset(self) -> None:
        """未処理サンプル、モデル状態、発話状態をクリア"""
        self._pending = np.zeros(0, dtype=np.float32)
        self._probability = 0.0
        self.state_machine.reset()
        self.model.reset_states()

    @property
    def is_speaking(self) -> bool:
        return self.state_machine.is_speaking

    def get_status(self) -> SpeechActivityStatus:
        """現在の状態を取得"""
        return SpeechActivityStatus(
            probability=self._probability,
            is_speaking=self.state_machine.is_speaking,
            speech_chunks=self.state_machine.speech_chunks,
        )
