"""
FFmpeg Helper Functions
Chunk encoding and chunk concatenation using FFmpeg.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import AutoEncodeConfig, OutputMode
from ..ledger import FrameOrderLedger, load_ledger

logger = logging.getLogger(__name__)


class FFmpegError(Exception):
    """Custom exception for FFmpeg-related errors."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        stderr: Optional[str] = None,
        return_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.command = command
        self.stderr = stderr
        self.return_code = return_code


def check_ffmpeg_installed() -> bool:
    """
    Check if FFmpeg is installed and available.

    Returns:
        bool: True if FFmpeg is installed

    Raises:
        FFmpegError: If FFmpeg is not found
    """
    if not shutil.which('ffmpeg'):
        raise FFmpegError(
            "FFmpeg not found. Please install FFmpeg:\n"
            "  Ubuntu/Debian: sudo apt-get install ffmpeg\n"
            "  macOS: brew install ffmpeg\n"
            "  Windows: Download from https://ffmpeg.org/download.html"
        )
    return True


def _escape_concat_path(path: Path) -> str:
    return str(Path(path).resolve()).replace("'", "'\\''")


def write_frames_concat_file(
    concat_file: Path,
    frame_paths: Iterable[Path],
    fps: float,
) -> Path:
    """
    Write an ffconcat list showing each frame for one output frame duration.

    Repeated paths are written once per occurrence so duplicated frames keep
    their timing.
    """
    duration = 1.0 / fps
    with open(concat_file, 'w', encoding='utf-8') as f:
        for frame_path in frame_paths:
            f.write(f"file '{_escape_concat_path(frame_path)}'\n")
            f.write(f"duration {duration:.8f}\n")
    return concat_file


def write_videos_concat_file(concat_file: Path, video_paths: Iterable[Path]) -> Path:
    """Write an ffconcat list of video files."""
    with open(concat_file, 'w', encoding='utf-8') as f:
        for video_path in video_paths:
            f.write(f"file '{_escape_concat_path(video_path)}'\n")
    return concat_file


def run_ffmpeg(cmd: List[str], description: str, timeout: Optional[float] = None) -> None:
    """
    Run an ffmpeg command, raising FFmpegError with its stderr on failure.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as e:
        raise FFmpegError(
            f"Failed to {description}: {e.stderr}",
            command=cmd,
            stderr=e.stderr,
            return_code=e.returncode,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise FFmpegError(f"Timed out trying to {description}", command=cmd) from e
    except FileNotFoundError as e:
        raise FFmpegError("FFmpeg not found", command=cmd) from e


class FFmpegChunkBackend:
    """
    Encoder and merge collaborator built on ffmpeg.

    Frames are looked up through the frame-order ledger, so a chunk covering
    ledger lines ``[start_line, start_line + frame_count)`` encodes exactly
    the frames (including repeated ones) the producer listed there.
    """

    def __init__(
        self,
        frames_dir: Path,
        manifest_path: Path,
        config: Optional[AutoEncodeConfig] = None,
        ledger: Optional[FrameOrderLedger] = None,
    ) -> None:
        self.frames_dir = Path(frames_dir)
        self.manifest_path = Path(manifest_path)
        self.config = config or AutoEncodeConfig()
        self._ledger = ledger

    @property
    def ledger(self) -> FrameOrderLedger:
        if self._ledger is None:
            self._ledger = load_ledger(self.manifest_path)
        return self._ledger

    def encode_chunk(
        self,
        output_path: Path,
        output_mode: OutputMode,
        start_line: int,
        frame_count: int,
    ) -> Path:
        """
        Encode ``frame_count`` ledger entries starting at ``start_line``.

        Args:
            output_path: Chunk file to write
            output_mode: Output container
            start_line: First ledger line of the chunk
            frame_count: Number of ledger lines in the chunk

        Returns:
            Path to the written chunk

        Raises:
            FFmpegError: If encoding fails
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        frame_paths = [
            self.ledger.frame_path(self.frames_dir, i)
            for i in range(start_line, start_line + frame_count)
        ]
        concat_file = output_path.with_suffix('.ffconcat')
        write_frames_concat_file(concat_file, frame_paths, self.config.fps)

        cmd = [
            'ffmpeg',
            '-y',
            '-f', 'concat',
            '-safe', '0',
            '-i', str(concat_file),
            '-r', f'{self.config.fps:g}',
            '-c:v', self.config.codec,
            '-crf', str(self.config.crf),
            '-preset', self.config.preset,
            '-pix_fmt', self.config.pix_fmt,
        ]
        if output_mode == OutputMode.MP4:
            cmd.extend(['-movflags', '+faststart'])

        # Chunks only appear under their final name once complete
        partial = output_path.with_name(f"{output_path.stem}.part{output_path.suffix}")
        cmd.append(str(partial))

        try:
            run_ffmpeg(cmd, f"encode chunk {output_path.name}", timeout=3600)
            os.replace(partial, output_path)
        finally:
            if concat_file.exists():
                concat_file.unlink()

        return output_path

    def chunks_to_video(
        self,
        temp_folder: Path,
        chunks_folder: Path,
        out_path: Path,
        backup: bool = False,
    ) -> Path:
        """
        Concatenate the chunk files in ``chunks_folder`` into ``out_path``.

        Backup merges write to a temporary file first and replace the target
        atomically, and never delete chunks. Final merges remove the chunks
        unless the configuration keeps them.

        Raises:
            FFmpegError: If there are no chunks or merging fails
        """
        chunks_folder = Path(chunks_folder)
        out_path = Path(out_path)
        ext = self.config.output_mode.extension
        chunks = sorted(p for p in chunks_folder.glob(f"*{ext}") if p.stem.isdigit())

        if not chunks:
            raise FFmpegError(f"No chunks to merge in {chunks_folder}")

        Path(temp_folder).mkdir(parents=True, exist_ok=True)
        out_path.parent.mkdir(parents=True, exist_ok=True)

        label = "backup" if backup else "final"
        concat_file = Path(temp_folder) / f"chunks-{label}.ffconcat"
        write_videos_concat_file(concat_file, chunks)

        target = out_path.with_name(f"{out_path.stem}.partial{out_path.suffix}") if backup else out_path
        cmd = [
            'ffmpeg',
            '-y',
            '-f', 'concat',
            '-safe', '0',
            '-i', str(concat_file),
            '-c', 'copy',
            str(target),
        ]

        logger.info(f"Merging {len(chunks)} chunks into {out_path} ({label})")
        try:
            run_ffmpeg(cmd, f"merge chunks into {out_path.name}", timeout=3600)
        finally:
            if concat_file.exists():
                concat_file.unlink()

        if backup:
            os.replace(target, out_path)
        elif not self.config.keep_chunks:
            for chunk in chunks:
                if chunk.exists():
                    chunk.unlink()

        return out_path
