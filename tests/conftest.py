"""Shared pytest fixtures for FrameStream tests."""
import logging
from pathlib import Path
from typing import List

import pytest

from framestream.config import AutoEncMode, AutoEncodeConfig, RunOptions

# Fakes shared with individual test modules
from tests.fixtures.fakes import frame_name, write_frames, write_manifest


@pytest.fixture(autouse=True)
def reset_framestream_logger():
    """Undo configure_logging() so caplog keeps seeing records."""
    yield
    root = logging.getLogger("framestream")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "job"
    path.mkdir()
    return path


@pytest.fixture
def frames_dir(work_dir) -> Path:
    path = work_dir / "interp"
    path.mkdir()
    return path


@pytest.fixture
def manifest_path(work_dir) -> Path:
    return work_dir / "frames-2x.ini"


@pytest.fixture
def fast_config() -> AutoEncodeConfig:
    """Configuration with all delays at zero and frames kept."""
    return AutoEncodeConfig(
        auto_enc_mode=AutoEncMode.KEEP_FRAMES,
        tick_interval=0,
        paused_interval=0.01,
        missing_frame_retry_delay=0,
        startup_poll_interval=0,
    )


@pytest.fixture
def run_options(work_dir, frames_dir, manifest_path) -> RunOptions:
    return RunOptions(
        frames_dir=frames_dir,
        manifest_path=manifest_path,
        work_dir=work_dir,
        output_path=work_dir / "output.mp4",
        input_frame_count=250,
        interp_factor=2.0,
        backend="rife-ncnn",
    )


@pytest.fixture
def numbered_frames():
    """Factory for ledger names 00000001.png .. N."""
    def _make(count: int) -> List[str]:
        return [frame_name(i) for i in range(1, count + 1)]
    return _make


@pytest.fixture
def finished_job(frames_dir, manifest_path, numbered_frames):
    """Factory: manifest plus all frame files for a producer that already exited."""
    def _make(count: int) -> List[str]:
        names = numbered_frames(count)
        write_manifest(manifest_path, names, frames_dir)
        write_frames(frames_dir, names)
        return names
    return _make
