"""CLIViewのテスト"""

from collections.abc import Iterator
from types import SimpleNamespace

import pytest

from ambient_ear.domain import MusicStartedEvent, Settings, music_started
from ambient_ear.presentation.cli import CLIView


@pytest.fixture
def view() -> Iterator[CLIView]:
    cli_view = CLIView(Settings())
    yield cli_view
    cli_view.stop()


def status_app(is_music: bool) -> SimpleNamespace:
    """ステータスバー構築に必要な属性だけを持つアプリケーション"""
    return SimpleNamespace(
        speech_activity=None,
        music_detector=SimpleNamespace(is_music=is_music),
        turn_consumer=SimpleNamespace(in_turn=True),
        turn_detector_busy=False,
        microphone=SimpleNamespace(buffer_size=1024),
    )


class TestStatusBar:
    """ステータスバーのテスト"""

    def test_no_music_indicator_while_music_plays(self, view: CLIView) -> None:
        left, right = view._build_status_sections(status_app(is_music=True))  # type: ignore[arg-type]

        assert "Music" not in left
        assert "♪" not in left
        assert "TURN" in left
        assert "Buffer: 1024" in right


class TestEventLines:
    """検出イベントの行表示テスト"""

    def test_music_started_is_printed_as_text(
        self, view: CLIView, capsys: pytest.CaptureFixture[str]
    ) -> None:
        music_started.send(
            object(), event=MusicStartedEvent(confidence=0.75, timestamp_ms=1500)
        )

        out = capsys.readouterr().out
        assert "Music started" in out
        assert "confidence: 0.75" in out
        assert "t=1.5s" in out
