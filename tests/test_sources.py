"""FileAudioSourceのテスト"""

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from ambient_ear.infrastructure.audio import (
    AudioAccessError,
    CaptureConstraints,
    FileAudioSource,
)


@pytest.fixture
def wav_path(tmp_path: Path) -> Path:
    """8kHz・1秒のステレオWAV（左0.5、右-0.1）"""
    path = tmp_path / "tone.wav"
    frames = np.column_stack(
        (np.full(8000, 0.5, dtype=np.float32), np.full(8000, -0.1, dtype=np.float32))
    )
    sf.write(path, frames, 8000, subtype="FLOAT")
    return path


class TestOpen:
    """ファイル読み込みのテスト"""

    def test_native_rate_and_mono_mixdown(self, wav_path: Path) -> None:
        source = FileAudioSource(str(wav_path))

        assert source.open(CaptureConstraints()) == 8000
        assert source.is_open is True
        assert source.is_realtime is False
        assert source.duration == pytest.approx(1.0)

    def test_missing_file_raises_access_error(self, tmp_path: Path) -> None:
        source = FileAudioSource(str(tmp_path / "missing.wav"))
        with pytest.raises(AudioAccessError):
            source.open(CaptureConstraints())
        assert source.is_open is False

    def test_start_before_open_raises(self, wav_path: Path) -> None:
        source = FileAudioSource(str(wav_path))
        with pytest.raises(AudioAccessError):
            source.start(1024, lambda block: None)


class TestPlayback:
    """再生スレッドのテスト"""

    def test_delivers_padded_blocks(self, wav_path: Path) -> None:
        source = FileAudioSource(str(wav_path))
        source.open(CaptureConstraints())
        blocks: list[np.ndarray] = []

        source.start(3000, blocks.append)
        assert source.wait(timeout=5.0)

        assert [len(b) for b in blocks] == [3000, 3000, 3000]
        assert blocks[0][0] == pytest.approx(0.2)
        assert blocks[-1][2000:].max() == 0.0
        assert source.is_finished is True

    def test_restart_resumes_position(self, wav_path: Path) -> None:
        """stop→startで再生位置を引き継ぐ（サンプル欠落なし）"""
        source = FileAudioSource(str(wav_path))
        source.open(CaptureConstraints())
        blocks: list[np.ndarray] = []

        def on_block(block: np.ndarray) -> None:
            blocks.append(block)
            if len(blocks) == 1:
                source.stop()

        source.start(2000, on_block)
        source.wait(timeout=5.0)
        assert len(blocks) == 1

        source.start(1000, blocks.append)
        assert source.wait(timeout=5.0)

        assert sum(len(b) for b in blocks) == 8000
        assert source.is_finished is True

    def test_close_releases_audio(self, wav_path: Path) -> None:
        source = FileAudioSource(str(wav_path))
        source.open(CaptureConstraints())

        source.close()
        source.close()

        assert source.is_open is False
        assert source.duration == 0.0
