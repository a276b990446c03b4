"""Cutting the pending window into chunks and encoding them."""
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from .config import OutputMode
from .errors import EncodeChunkError, MissingFrameFileError, create_error_context
from .ledger import FrameOrderLedger
from .tracker import PendingWindow

logger = logging.getLogger(__name__)


class ChunkBackend(Protocol):
    """Encoder/muxer collaborator (see ``utils.ffmpeg.FFmpegChunkBackend``)."""

    def encode_chunk(
        self,
        output_path: Path,
        output_mode: OutputMode,
        start_line: int,
        frame_count: int,
    ) -> Path:
        ...

    def chunks_to_video(
        self,
        temp_folder: Path,
        chunks_folder: Path,
        out_path: Path,
        backup: bool = False,
    ) -> Path:
        ...


@dataclass(frozen=True)
class Chunk:
    """One encoded, contiguous ledger range ``[first, last]``."""
    index: int
    first: int
    last: int
    output_path: Path
    duration_seconds: float = 0.0

    @property
    def frame_count(self) -> int:
        return self.last - self.first + 1

    @property
    def lines(self) -> range:
        return range(self.first, self.last + 1)


def chunk_filename(index: int, output_mode: OutputMode) -> str:
    """Chunk files are named by a 4-digit zero-padded index."""
    return f"{index:04d}{output_mode.extension}"


def remove_stale_chunks(chunks_dir: Path) -> int:
    """Delete chunk files (and unfinished ``.part`` files) left by an earlier run.

    Merges concatenate every chunk file in the folder, so anything not
    written by the current run has to go before the first chunk is cut.

    Returns:
        Number of files removed
    """
    chunks_dir = Path(chunks_dir)
    if not chunks_dir.is_dir():
        return 0

    removed = 0
    for path in chunks_dir.iterdir():
        stem = path.stem
        if stem.endswith(".part"):
            stem = stem[:-len(".part")]
        if stem.isdigit() and path.is_file():
            path.unlink()
            removed += 1
    return removed


class ChunkEncoder:
    """Plans chunk ranges and drives the encoder collaborator.

    Owns the sequential chunk index. The cursor itself belongs to the
    orchestrator; ``encode`` only returns the committed Chunk.
    """

    def __init__(
        self,
        ledger: FrameOrderLedger,
        backend: ChunkBackend,
        frames_dir: Path,
        chunks_dir: Path,
        chunk_size: int,
        encode_trigger: int,
        output_mode: OutputMode = OutputMode.MP4,
    ) -> None:
        self.ledger = ledger
        self.backend = backend
        self.frames_dir = Path(frames_dir)
        self.chunks_dir = Path(chunks_dir)
        self.chunk_size = chunk_size
        self.encode_trigger = encode_trigger
        self.output_mode = output_mode
        self.next_index = 1
        self.busy = False

    def plan(self, window: PendingWindow) -> Optional[range]:
        """Ledger lines for the next chunk, or None if it is too early.

        While the producer runs a chunk is only cut once the window holds a
        full chunk plus the safety buffer. After exit anything pending is
        taken, one chunk at a time.
        """
        pending = len(window)
        if pending == 0:
            return None
        if window.producer_running and pending < self.encode_trigger:
            return None
        count = min(self.chunk_size, pending)
        return range(window.start, window.start + count)

    def check_last_frame(self, lines: range) -> Path:
        """Raise MissingFrameFileError if the chunk's last frame is not on disk."""
        last_frame = self.ledger.frame_path(self.frames_dir, lines[-1])
        if not last_frame.exists():
            raise MissingFrameFileError(
                last_frame,
                create_error_context("encode", "check_last_frame", frame_index=lines[-1]),
            )
        return last_frame

    def encode(self, lines: range) -> Chunk:
        """Encode one chunk.

        Raises:
            MissingFrameFileError: The last frame is not written yet (retry later)
            EncodeChunkError: The encoder collaborator failed
        """
        self.check_last_frame(lines)

        index = self.next_index
        output_path = self.chunks_dir / chunk_filename(index, self.output_mode)
        first, last = lines[0], lines[-1]
        logger.info(
            f"Encoding chunk #{index} to '{output_path}' using line {first} "
            f"({self.ledger.filename(first)}) through {last} ({self.ledger.filename(last)})"
        )

        self.busy = True
        start = time.monotonic()
        try:
            self.backend.encode_chunk(output_path, self.output_mode, first, len(lines))
        except Exception as e:
            context = create_error_context(
                "encode",
                "encode_chunk",
                frame_index=first,
                output_file=output_path,
                command=getattr(e, "command", None),
                stderr=getattr(e, "stderr", None),
                return_code=getattr(e, "return_code", None),
            )
            raise EncodeChunkError(f"Chunk #{index} failed to encode: {e}", context) from e
        finally:
            self.busy = False

        self.next_index += 1
        chunk = Chunk(
            index=index,
            first=first,
            last=last,
            output_path=output_path,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(f"Done encoding chunk #{index} ({chunk.frame_count} frames)")
        return chunk


def covered_lines(chunks: List[Chunk]) -> int:
    """Number of ledger lines covered by committed chunks."""
    return sum(c.frame_count for c in chunks)
