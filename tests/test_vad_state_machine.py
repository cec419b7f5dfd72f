"""VadStateMachineのテスト"""

import pytest
from pydantic import ValidationError

from ambient_ear.domain import VADDetectionSettings
from ambient_ear.infrastructure.audio import SpeechTransition, VadStateMachine

SETTINGS = VADDetectionSettings()
SPEECH = SETTINGS.start_threshold + 0.1
BETWEEN = (SETTINGS.start_threshold + SETTINGS.end_threshold) / 2
SILENCE = SETTINGS.end_threshold - 0.1


@pytest.fixture
def state_machine() -> VadStateMachine:
    """新しいVadStateMachineインスタンスを作成"""
    return VadStateMachine(SETTINGS)


def start_speech(state_machine: VadStateMachine) -> None:
    for _ in range(SETTINGS.min_speech_chunks):
        state_machine.process(SPEECH)
    assert state_machine.is_speaking is True


class TestInitialState:
    """初期状態のテスト"""

    def test_initial_state(self, state_machine: VadStateMachine) -> None:
        assert state_machine.is_speaking is False
        assert state_machine.speech_chunks == 0
        assert state_machine.silence_chunks == 0
        assert state_machine.idle_silence_chunks == 0


class TestHysteresisThresholds:
    """ヒステリシス閾値の動作テスト"""

    def test_uses_start_threshold_when_idle(
        self, state_machine: VadStateMachine
    ) -> None:
        """待機中は開始閾値で判定"""
        state_machine.process(SETTINGS.start_threshold - 0.01)
        assert state_machine.speech_chunks == 0

        state_machine.process(SETTINGS.start_threshold)
        assert state_machine.speech_chunks == 1

    def test_uses_end_threshold_when_speaking(
        self, state_machine: VadStateMachine
    ) -> None:
        """発話中は終了閾値で判定（語尾を保護）"""
        start_speech(state_machine)

        state_machine.process(BETWEEN)
        assert state_machine.silence_chunks == 0

        state_machine.process(SILENCE)
        assert state_machine.silence_chunks == 1

    def test_end_threshold_above_start_rejected(self) -> None:
        with pytest.raises(ValidationError):
            VADDetectionSettings(start_threshold=0.3, end_threshold=0.5)


class TestSpeechStart:
    """発話開始のテスト"""

    def test_starts_after_min_speech_chunks(
        self, state_machine: VadStateMachine
    ) -> None:
        transitions = [
            state_machine.process(SPEECH) for _ in range(SETTINGS.min_speech_chunks)
        ]
        assert transitions[:-1] == [SpeechTransition.NONE] * (
            SETTINGS.min_speech_chunks - 1
        )
        assert transitions[-1] == SpeechTransition.SPEECH_STARTED

    def test_silence_resets_speech_counter(
        self, state_machine: VadStateMachine
    ) -> None:
        """短い発話（ノイズ）は開始しない"""
        for _ in range(SETTINGS.min_speech_chunks - 1):
            state_machine.process(SPEECH)
        state_machine.process(SILENCE)
        assert state_machine.speech_chunks == 0

        state_machine.process(SPEECH)
        assert state_machine.is_speaking is False

    def test_continued_speech_returns_none(
        self, state_machine: VadStateMachine
    ) -> None:
        start_speech(state_machine)
        assert state_machine.process(SPEECH) == SpeechTransition.NONE


class TestSpeechEnd:
    """発話終了のテスト"""

    def test_ends_after_max_silence_chunks(
        self, state_machine: VadStateMachine
    ) -> None:
        start_speech(state_machine)

        for _ in range(SETTINGS.max_silence_chunks - 1):
            assert state_machine.process(SILENCE) == SpeechTransition.NONE
        assert state_machine.process(SILENCE) == SpeechTransition.SPEECH_ENDED
        assert state_machine.is_speaking is False
        assert state_machine.silence_chunks == 0

    def test_speech_resets_silence_counter(
        self, state_machine: VadStateMachine
    ) -> None:
        start_speech(state_machine)
        for _ in range(SETTINGS.max_silence_chunks - 1):
            state_machine.process(SILENCE)

        state_machine.process(SPEECH)

        assert state_machine.silence_chunks == 0
        assert state_machine.process(SILENCE) == SpeechTransition.NONE
        assert state_machine.is_speaking is True


class TestIdleReset:
    """待機中のモデルリセット要求のテスト"""

    def test_requests_reset_after_idle_silence(self) -> None:
        state_machine = VadStateMachine(VADDetectionSettings(idle_reset_chunks=5))

        transitions = [state_machine.process(0.0) for _ in range(5)]

        assert transitions[-1] == SpeechTransition.RESET_MODEL
        assert state_machine.idle_silence_chunks == 0

    def test_no_reset_while_speaking(self) -> None:
        settings = VADDetectionSettings(idle_reset_chunks=3, max_silence_chunks=10)
        state_machine = VadStateMachine(settings)
        for _ in range(settings.min_speech_chunks):
            state_machine.process(SPEECH)

        transitions = [state_machine.process(0.0) for _ in range(5)]

        assert SpeechTransition.RESET_MODEL not in transitions
        assert state_machine.idle_silence_chunks == 0

    def test_speech_resets_idle_counter(self) -> None:
        state_machine = VadStateMachine(VADDetectionSettings(idle_reset_chunks=5))
        for _ in range(4):
            state_machine.process(0.0)

        state_machine.process(SPEECH)

        assert state_machine.idle_silence_chunks == 0


class TestReset:
    """リセットのテスト"""

    def test_reset_clears_state(self, state_machine: VadStateMachine) -> None:
        start_speech(state_machine)
        state_machine.process(SILENCE)

        state_machine.reset()

        assert state_machine.is_speaking is False
        assert state_machine.speech_chunks == 0
        assert state_machine.silence_chunks == 0
        assert state_machine.idle_silence_chunks == 0

    def test_full_cycle(self, state_machine: VadStateMachine) -> None:
        """発話開始から終了、再開始までの一連の流れ"""
        events = []
        pattern = (
            [SPEECH] * SETTINGS.min_speech_chunks
            + [SPEECH] * 5
            + [SILENCE] * SETTINGS.max_silence_chunks
            + [SPEECH] * SETTINGS.min_speech_chunks
        )
        for probability in pattern:
            transition = state_machine.process(probability)
            if transition != SpeechTransition.NONE:
                events.append(transition)

        assert events == [
            SpeechTransition.SPEECH_STARTED,
            SpeechTransition.SPEECH_ENDED,
            SpeechTransition.SPEECH_STARTED,
        ]
