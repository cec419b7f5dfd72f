"""SharedMicrophoneのテスト"""

from collections.abc import Callable

import numpy as np
import pytest

from ambient_ear.domain import (
    AnalyserSettings,
    AnalysisFrame,
    AudioConsumer,
    MessageLevel,
    MessagePostedEvent,
    MicrophoneSettings,
    RawAudioFrame,
    message_posted,
)
from ambient_ear.infrastructure.audio import SharedMicrophone
from conftest import FakeAudioSource

BLOCK = np.full(4800, 0.25, dtype=np.float32)  # 48kHzで100ms


def consumer(
    consumer_id: str,
    buffer_size: int = 4096,
    on_raw: Callable[[RawAudioFrame], None] | None = None,
    on_analysis: Callable[[AnalysisFrame], None] | None = None,
) -> AudioConsumer:
    return AudioConsumer(
        id=consumer_id,
        name=consumer_id,
        buffer_size=buffer_size,
        on_raw_frame=on_raw or (lambda frame: None),
        on_analysis_frame=on_analysis,
    )


@pytest.fixture
def mic(fake_source: FakeAudioSource) -> SharedMicrophone:
    return SharedMicrophone(fake_source, AnalyserSettings())


@pytest.fixture
def messages(mic: SharedMicrophone):
    """マイクが投稿したメッセージを収集"""
    received: list[MessagePostedEvent] = []

    def handler(_sender: object, event: MessagePostedEvent) -> None:
        received.append(event)

    message_posted.connect(handler, sender=mic)
    yield received
    message_posted.disconnect(handler, sender=mic)


class TestAccess:
    """入力アクセスのテスト"""

    def test_access_granted(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        assert mic.get_sample_rate() is None
        assert mic.request_access() is True
        assert mic.get_sample_rate() == 48000
        assert fake_source.constraints is not None
        assert fake_source.constraints.echo_cancellation is True

    def test_access_is_idempotent(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        mic.request_access()
        mic.request_access()
        assert fake_source.open_calls == 1

    def test_constraints_follow_settings(self, fake_source: FakeAudioSource) -> None:
        mic = SharedMicrophone(
            fake_source,
            AnalyserSettings(),
            MicrophoneSettings(echo_cancellation=False, auto_gain_control=False),
        )
        mic.request_access()
        assert fake_source.constraints is not None
        assert fake_source.constraints.echo_cancellation is False
        assert fake_source.constraints.noise_suppression is True
        assert fake_source.constraints.auto_gain_control is False

    def test_reopens_closed_source_and_keeps_consumers(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        """入力が外部で閉じられたら開き直し、登録済みコンシューマで処理を再開"""
        mic.request_access()
        mic.register_consumer(consumer("a", 2048))
        fake_source.close()

        assert mic.request_access() is True

        assert fake_source.open_calls == 2
        assert mic.consumer_ids == ["a"]
        assert mic.is_active is True
        assert fake_source.started_block_sizes[-1] == 2048


class TestAccessDenied:
    """アクセス拒否のテスト"""

    def test_denied_returns_false_and_posts_error(self) -> None:
        source = FakeAudioSource(fail_open=True)
        mic = SharedMicrophone(source, AnalyserSettings())
        received: list[MessagePostedEvent] = []

        def handler(_sender: object, event: MessagePostedEvent) -> None:
            received.append(event)

        message_posted.connect(handler, sender=mic)
        try:
            assert mic.request_access() is False
        finally:
            message_posted.disconnect(handler, sender=mic)

        assert mic.get_sample_rate() is None
        assert received[-1].level == MessageLevel.ERROR
        assert "Permission denied" in received[-1].message

    def test_consumers_wait_for_access(self) -> None:
        """アクセス前の登録は受け付け、処理はアクセス後に開始"""
        source = FakeAudioSource()
        mic = SharedMicrophone(source, AnalyserSettings())

        assert mic.register_consumer(consumer("a", 1024)) is True
        assert mic.is_active is False
        assert source.started_block_sizes == []

        mic.request_access()

        assert mic.is_active is True
        assert source.started_block_sizes == [1024]


class TestRegistration:
    """コンシューマ登録とバッファサイズ調停のテスト"""

    def test_buffer_size_is_minimum_of_consumers(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        mic.request_access()
        assert mic.get_optimal_buffer_size() == 4096

        mic.register_consumer(consumer("a", 4096))
        mic.register_consumer(consumer("b", 1024))
        mic.register_consumer(consumer("c", 2048))

        assert mic.buffer_size == 1024
        assert fake_source.started_block_sizes == [4096, 1024]

        mic.unregister_consumer("b")

        assert mic.buffer_size == 2048
        assert fake_source.started_block_sizes == [4096, 1024, 2048]

    def test_buffer_change_deferred_while_recording(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        """録音中は再起動せず、最後の録音終了時に適用"""
        mic.request_access()
        mic.register_consumer(consumer("a", 4096))
        mic.register_consumer(consumer("b", 1024))
        mic.mark_recording_start("a")
        assert mic.has_active_recordings is True

        mic.unregister_consumer("b")
        assert mic.buffer_size == 1024

        mic.mark_recording_stop("a")
        assert mic.has_active_recordings is False
        assert mic.buffer_size == 4096

    def test_unregister_clears_recording_mark(self, mic: SharedMicrophone) -> None:
        mic.request_access()
        mic.register_consumer(consumer("a", 4096))
        mic.register_consumer(consumer("b", 1024))
        mic.mark_recording_start("b")

        mic.unregister_consumer("b")

        assert mic.has_active_recordings is False
        assert mic.buffer_size == 4096

    def test_duplicate_id_rejected(
        self, mic: SharedMicrophone, messages: list[MessagePostedEvent]
    ) -> None:
        mic.request_access()
        assert mic.register_consumer(consumer("a", 2048)) is True
        assert mic.register_consumer(consumer("a", 512)) is False

        assert mic.buffer_size == 2048
        assert messages[-1].level == MessageLevel.WARNING

    @pytest.mark.parametrize("size", [128, 1000, 32768])
    def test_invalid_buffer_size_rejected(
        self, mic: SharedMicrophone, size: int
    ) -> None:
        mic.request_access()
        assert mic.register_consumer(consumer("a", size)) is False
        assert mic.consumer_ids == []
        assert mic.is_active is False

    def test_last_unregister_stops_processing(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        mic.request_access()
        mic.register_consumer(consumer("a"))

        assert mic.unregister_consumer("a") is True
        assert mic.unregister_consumer("a") is False

        assert mic.is_active is False
        assert fake_source.is_running is False
        assert fake_source.is_open is True


class TestDelivery:
    """ティックごとのフレーム配信テスト"""

    def test_raw_frames_precede_analysis_frames(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        calls: list[str] = []
        mic.request_access()
        for name in ("a", "b"):
            mic.register_consumer(
                consumer(
                    name,
                    on_raw=lambda frame, n=name: calls.append(f"raw:{n}"),
                    on_analysis=lambda frame, n=name: calls.append(f"analysis:{n}"),
                )
            )

        fake_source.emit(BLOCK)

        assert calls == ["raw:a", "raw:b", "analysis:a", "analysis:b"]

    def test_frames_are_shared_and_read_only(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        raw: list[RawAudioFrame] = []
        analysis: list[AnalysisFrame] = []
        mic.request_access()
        mic.register_consumer(consumer("a", on_raw=raw.append, on_analysis=analysis.append))
        mic.register_consumer(consumer("b", on_raw=raw.append, on_analysis=analysis.append))

        fake_source.emit(BLOCK)

        assert raw[0] is raw[1]
        assert analysis[0] is analysis[1]
        with pytest.raises(ValueError):
            raw[0].samples[0] = 1.0
        with pytest.raises(ValueError):
            analysis[0].frequency_magnitudes[0] = 1

    def test_stream_timestamps(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        raw: list[RawAudioFrame] = []
        analysis: list[AnalysisFrame] = []
        mic.request_access()
        mic.register_consumer(consumer("a", on_raw=raw.append, on_analysis=analysis.append))

        fake_source.emit(BLOCK)
        fake_source.emit(BLOCK)

        assert [f.timestamp_sec for f in raw] == pytest.approx([0.0, 0.1])
        assert [f.timestamp_ms for f in analysis] == [0, 100]

    def test_analysis_frame_contents(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        analysis: list[AnalysisFrame] = []
        mic.request_access()
        mic.register_consumer(consumer("a", on_analysis=analysis.append))

        fake_source.emit(BLOCK)

        frame = analysis[0]
        assert len(frame.frequency_magnitudes) == 1024
        assert len(frame.time_domain_samples) == 1024
        assert frame.volume == pytest.approx(0.25, abs=0.01)
        assert frame.frequency_magnitudes.dtype == np.uint8

    def test_analysis_skipped_without_analysis_consumers(
        self,
        mic: SharedMicrophone,
        fake_source: FakeAudioSource,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        generated: list[float] = []
        original = mic._generate_analysis_frame

        def counting(timestamp_sec: float, sample_rate: int) -> AnalysisFrame:
            generated.append(timestamp_sec)
            return original(timestamp_sec, sample_rate)

        monkeypatch.setattr(mic, "_generate_analysis_frame", counting)
        raw: list[RawAudioFrame] = []
        mic.request_access()
        mic.register_consumer(consumer("a", on_raw=raw.append))

        fake_source.emit(BLOCK)

        assert len(raw) == 1
        assert generated == []

    def test_consumer_errors_are_isolated(
        self,
        mic: SharedMicrophone,
        fake_source: FakeAudioSource,
        messages: list[MessagePostedEvent],
    ) -> None:
        """1つのコンシューマの例外で他への配信は止まらない"""

        def broken(frame: object) -> None:
            raise RuntimeError("boom")

        raw: list[RawAudioFrame] = []
        analysis: list[AnalysisFrame] = []
        mic.request_access()
        mic.register_consumer(consumer("broken", on_raw=broken, on_analysis=broken))
        mic.register_consumer(consumer("ok", on_raw=raw.append, on_analysis=analysis.append))

        fake_source.emit(BLOCK)

        assert len(raw) == 1
        assert len(analysis) == 1
        errors = [m for m in messages if m.level == MessageLevel.ERROR]
        assert len(errors) == 2
        assert all("broken" in m.message for m in errors)


class TestCleanup:
    """後片付けのテスト"""

    def test_cleanup_is_idempotent(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        mic.request_access()
        mic.register_consumer(consumer("a"))
        mic.mark_recording_start("a")

        mic.cleanup()
        mic.cleanup()

        assert mic.consumer_ids == []
        assert mic.is_active is False
        assert mic.has_active_recordings is False
        assert mic.get_sample_rate() is None
        assert fake_source.is_open is False

    def test_access_after_cleanup_reopens(
        self, mic: SharedMicrophone, fake_source: FakeAudioSource
    ) -> None:
        mic.request_access()
        mic.cleanup()

        assert mic.request_access() is True
        assert fake_source.open_calls == 2
