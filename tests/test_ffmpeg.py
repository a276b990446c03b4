"""Tests for the ffmpeg chunk backend."""
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from framestream.config import AutoEncodeConfig, OutputMode
from framestream.ledger import FrameOrderLedger
from framestream.orchestrator import AutoEncoder
from framestream.utils.ffmpeg import (
    FFmpegChunkBackend,
    FFmpegError,
    check_ffmpeg_installed,
    run_ffmpeg,
    write_frames_concat_file,
)

from tests.fixtures.fakes import FakeProducer, frame_name, write_frames, write_manifest


class FakeFFmpeg:
    """Stands in for subprocess.run: writes the output file and keeps the concat list."""

    def __init__(self):
        self.commands = []
        self.concat_lists = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        concat_file = Path(cmd[cmd.index("-i") + 1])
        self.concat_lists.append(concat_file.read_text(encoding="utf-8"))
        Path(cmd[-1]).write_bytes(b"video")
        return MagicMock(returncode=0)


@pytest.fixture
def fake_ffmpeg():
    fake = FakeFFmpeg()
    with patch("framestream.utils.ffmpeg.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def names():
    return [frame_name(n) for n in (1, 2, 2, 3)]


@pytest.fixture
def backend(names, frames_dir, manifest_path):
    write_manifest(manifest_path, names, frames_dir)
    write_frames(frames_dir, names)
    return FFmpegChunkBackend(frames_dir, manifest_path, AutoEncodeConfig(fps=50))


class TestCheckFFmpeg:
    """Tests for check_ffmpeg_installed()."""

    def test_missing(self):
        with patch("framestream.utils.ffmpeg.shutil.which", return_value=None):
            with pytest.raises(FFmpegError, match="FFmpeg not found"):
                check_ffmpeg_installed()

    def test_present(self):
        with patch("framestream.utils.ffmpeg.shutil.which", return_value="/usr/bin/ffmpeg"):
            assert check_ffmpeg_installed() is True


class TestRunFFmpeg:
    """Tests for run_ffmpeg()."""

    def test_failure_carries_stderr(self):
        error = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="Invalid data")
        with patch("framestream.utils.ffmpeg.subprocess.run", side_effect=error):
            with pytest.raises(FFmpegError) as exc_info:
                run_ffmpeg(["ffmpeg"], "encode")

        assert exc_info.value.return_code == 1
        assert exc_info.value.stderr == "Invalid data"
        assert exc_info.value.command == ["ffmpeg"]

    def test_timeout(self):
        error = subprocess.TimeoutExpired(["ffmpeg"], 5)
        with patch("framestream.utils.ffmpeg.subprocess.run", side_effect=error):
            with pytest.raises(FFmpegError, match="Timed out"):
                run_ffmpeg(["ffmpeg"], "encode", timeout=5)


class TestConcatFiles:
    """Tests for ffconcat list writing."""

    def test_frames_concat_file(self, tmp_path):
        concat = tmp_path / "list.ffconcat"
        frames = [tmp_path / "00000001.png", tmp_path / "00000001.png"]

        write_frames_concat_file(concat, frames, fps=25)

        lines = concat.read_text(encoding="utf-8").splitlines()
        assert lines[0] == f"file '{frames[0].resolve()}'"
        assert lines[1] == "duration 0.04000000"
        assert len(lines) == 4


class TestEncodeChunk:
    """Tests for FFmpegChunkBackend.encode_chunk()."""

    def test_encodes_ledger_range(self, backend, fake_ffmpeg, frames_dir, work_dir):
        output = work_dir / "vchunks" / "chunks" / "0001.mp4"

        result = backend.encode_chunk(output, OutputMode.MP4, 1, 3)

        assert result == output
        assert output.exists()
        assert not output.with_name("0001.part.mp4").exists()
        assert not output.with_suffix(".ffconcat").exists()

        listed = [l for l in fake_ffmpeg.concat_lists[0].splitlines() if l.startswith("file ")]
        assert listed == [
            f"file '{(frames_dir / name).resolve()}'"
            for name in (frame_name(2), frame_name(2), frame_name(3))
        ]

    def test_command(self, backend, fake_ffmpeg, work_dir):
        backend.encode_chunk(work_dir / "chunks" / "0001.mp4", OutputMode.MP4, 0, 2)

        cmd = fake_ffmpeg.commands[0]
        assert cmd[:2] == ["ffmpeg", "-y"]
        assert cmd[cmd.index("-r") + 1] == "50"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert "+faststart" in cmd
        assert cmd[-1].endswith("0001.part.mp4")

    def test_no_faststart_for_mkv(self, backend, fake_ffmpeg, work_dir):
        backend.encode_chunk(work_dir / "chunks" / "0001.mkv", OutputMode.MKV, 0, 2)
        assert "-movflags" not in fake_ffmpeg.commands[0]

    def test_failure_leaves_no_chunk(self, backend, work_dir):
        output = work_dir / "chunks" / "0001.mp4"
        error = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="Conversion failed!")
        with patch("framestream.utils.ffmpeg.subprocess.run", side_effect=error):
            with pytest.raises(FFmpegError):
                backend.encode_chunk(output, OutputMode.MP4, 0, 2)

        assert not output.exists()
        assert not output.with_suffix(".ffconcat").exists()

    def test_ledger_loaded_lazily(self, frames_dir, manifest_path, names):
        backend = FFmpegChunkBackend(frames_dir, manifest_path)
        write_manifest(manifest_path, names, frames_dir)
        assert backend.ledger.filenames == names

    def test_explicit_ledger(self, frames_dir, tmp_path):
        ledger = FrameOrderLedger(["a.png"])
        backend = FFmpegChunkBackend(frames_dir, tmp_path / "missing.ini", ledger=ledger)
        assert backend.ledger is ledger


class TestChunksToVideo:
    """Tests for FFmpegChunkBackend.chunks_to_video()."""

    @pytest.fixture
    def chunks_dir(self, work_dir):
        path = work_dir / "vchunks" / "chunks"
        path.mkdir(parents=True)
        for name in ("0002.mp4", "0001.mp4", "0010.mp4", "notes.mp4"):
            (path / name).write_bytes(b"chunk")
        return path

    def test_final_merge(self, backend, fake_ffmpeg, chunks_dir, work_dir):
        out = work_dir / "output.mp4"

        backend.chunks_to_video(work_dir, chunks_dir, out)

        assert out.exists()
        listed = fake_ffmpeg.concat_lists[0].splitlines()
        assert [Path(l.split("'")[1]).name for l in listed] == ["0001.mp4", "0002.mp4", "0010.mp4"]
        assert sorted(p.name for p in chunks_dir.iterdir()) == ["notes.mp4"]
        assert not (work_dir / "chunks-final.ffconcat").exists()

    def test_final_merge_keeps_chunks(self, frames_dir, manifest_path, fake_ffmpeg, chunks_dir, work_dir):
        backend = FFmpegChunkBackend(frames_dir, manifest_path, AutoEncodeConfig(keep_chunks=True))

        backend.chunks_to_video(work_dir, chunks_dir, work_dir / "output.mp4")

        assert (chunks_dir / "0001.mp4").exists()

    def test_backup_merge(self, backend, fake_ffmpeg, chunks_dir, work_dir):
        """Test backups replace the output atomically and keep the chunks."""
        out = work_dir / "output.mp4"

        backend.chunks_to_video(work_dir, chunks_dir, out, backup=True)

        assert fake_ffmpeg.commands[0][-1] == str(work_dir / "output.partial.mp4")
        assert out.exists()
        assert not (work_dir / "output.partial.mp4").exists()
        assert (chunks_dir / "0001.mp4").exists()

    def test_no_chunks(self, backend, work_dir):
        empty = work_dir / "empty"
        empty.mkdir()
        with pytest.raises(FFmpegError, match="No chunks"):
            backend.chunks_to_video(work_dir, empty, work_dir / "output.mp4")


class TestBackendInAutoEncodeRun:
    """FFmpegChunkBackend driven by the auto-encode loop."""

    def test_leftover_chunks_are_not_merged(
        self, fake_ffmpeg, run_options, fast_config, finished_job, work_dir, frames_dir, manifest_path
    ):
        """Test chunk files from an earlier run never reach the final output."""
        finished_job(200)
        chunks_dir = work_dir / "vchunks" / "chunks"
        chunks_dir.mkdir(parents=True)
        (chunks_dir / "0007.mp4").write_bytes(b"old chunk")
        (chunks_dir / "0003.part.mp4").write_bytes(b"old partial chunk")
        backend = FFmpegChunkBackend(frames_dir, manifest_path, fast_config)

        result = AutoEncoder(run_options, fast_config, FakeProducer(), backend).run()

        assert result.completed
        assert [c.output_path.name for c in result.chunks] == ["0001.mp4", "0002.mp4"]
        merged = fake_ffmpeg.concat_lists[-1].splitlines()
        assert [Path(l.split("'")[1]).name for l in merged] == ["0001.mp4", "0002.mp4"]
        assert not (chunks_dir / "0007.mp4").exists()
