"""SpeechActivityTrackerのテスト"""

import numpy as np
import pytest

from ambient_ear.domain import VADDetectionSettings
from ambient_ear.infrastructure.audio import (
    SpeechActivityTracker,
    SpeechTransition,
    resample_linear,
)


class ScriptedModel:
    """あらかじめ決めた確率を順に返す発話確率モデル"""

    def __init__(self, probabilities: list[float], default: float = 0.0) -> None:
        self.probabilities = list(probabilities)
        self.default = default
        self.chunk_lengths: list[int] = []
        self.reset_count = 0

    def __call__(self, audio_chunk: np.ndarray) -> float:
        self.chunk_lengths.append(len(audio_chunk))
        if self.probabilities:
            return self.probabilities.pop(0)
        return self.default

    def reset_states(self) -> None:
        self.reset_count += 1


class TestResample:
    """線形リサンプリングのテスト"""

    def test_same_rate_is_passthrough(self) -> None:
        samples = np.arange(10, dtype=np.float32)
        np.testing.assert_array_equal(resample_linear(samples, 16000, 16000), samples)

    def test_downsample_length(self) -> None:
        samples = np.zeros(4800, dtype=np.float32)
        assert len(resample_linear(samples, 48000, 16000)) == 1600

    def test_linear_ramp_is_preserved(self) -> None:
        samples = np.linspace(0.0, 1.0, 300, dtype=np.float32)
        resampled = resample_linear(samples, 48000, 16000)
        assert resampled[0] == pytest.approx(0.0)
        assert resampled[-1] == pytest.approx(1.0)
        assert np.all(np.diff(resampled) > 0)
        assert resampled.dtype == np.float32

    def test_empty_input(self) -> None:
        assert len(resample_linear(np.zeros(0, dtype=np.float32), 48000, 16000)) == 0


class TestChunking:
    """512サンプルチャンクへの切り出しテスト"""

    def test_leftover_samples_carry_over(self) -> None:
        model = ScriptedModel([])
        tracker = SpeechActivityTracker(model, VADDetectionSettings())

        tracker.process(np.zeros(1000, dtype=np.float32), 16000)
        assert model.chunk_lengths == [512]

        tracker.process(np.zeros(100, dtype=np.float32), 16000)
        assert model.chunk_lengths == [512, 512]

    def test_device_rate_is_resampled(self) -> None:
        """48kHzの4096サンプルは16kHzで約1365サンプル = 2チャンク"""
        model = ScriptedModel([])
        tracker = SpeechActivityTracker(model, VADDetectionSettings())

        tracker.process(np.zeros(4096, dtype=np.float32), 48000)

        assert model.chunk_lengths == [512, 512]


class TestTransitions:
    """発話開始/終了の通知テスト"""

    def test_start_and_end_within_blocks(self) -> None:
        settings = VADDetectionSettings(min_speech_chunks=2, max_silence_chunks=2)
        model = ScriptedModel([0.9, 0.9, 0.9, 0.1, 0.1])
        tracker = SpeechActivityTracker(model, settings)

        transitions = tracker.process(np.zeros(512 * 3, dtype=np.float32), 16000)
        assert transitions == [SpeechTransition.SPEECH_STARTED]
        assert tracker.is_speaking is True

        transitions = tracker.process(np.zeros(512 * 2, dtype=np.float32), 16000)
        assert transitions == [SpeechTransition.SPEECH_ENDED]
        assert tracker.is_speaking is False

    def test_idle_reset_resets_model_without_transition(self) -> None:
        model = ScriptedModel([])
        tracker = SpeechActivityTracker(model, VADDetectionSettings(idle_reset_chunks=3))

        transitions = tracker.process(np.zeros(512 * 3, dtype=np.float32), 16000)

        assert transitions == []
        assert model.reset_count == 1

    def test_status(self) -> None:
        model = ScriptedModel([0.8, 0.7])
        tracker = SpeechActivityTracker(model, VADDetectionSettings())

        tracker.process(np.zeros(1024, dtype=np.float32), 16000)

        status = tracker.get_status()
        assert status.probability == pytest.approx(0.7)
        assert status.speech_chunks == 2
        assert status.is_speaking is False

    def test_reset(self) -> None:
        settings = VADDetectionSettings(min_speech_chunks=1)
        model = ScriptedModel([0.9])
        tracker = SpeechActivityTracker(model, settings)
        tracker.process(np.zeros(700, dtype=np.float32), 16000)
        assert tracker.is_speaking is True

        tracker.reset()

        assert tracker.is_speaking is False
        assert tracker.get_status().probability == 0.0
        assert model.reset_count == 1
        # 端数サンプルも破棄される
        tracker.process(np.zeros(400, dtype=np.float32), 16000)
        assert model.chunk_lengths == [512]
