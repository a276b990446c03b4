"""Chunk and safety-buffer sizing for a run."""
import logging
from dataclasses import dataclass
from typing import Optional

from .config import AutoEncodeConfig

logger = logging.getLogger(__name__)

# (exclusive lower bound on target frame count, chunk size), largest first
CHUNK_SIZE_STEPS = (
    (100000, 4800),
    (50000, 2400),
    (20000, 1200),
    (5000, 600),
    (1000, 300),
)
MIN_CHUNK_SIZE = 150


def compute_chunk_size(target_frame_count: int) -> int:
    """Frames per chunk for a run producing ``target_frame_count`` frames."""
    for lower_bound, chunk_size in CHUNK_SIZE_STEPS:
        if target_frame_count > lower_bound:
            return chunk_size
    return MIN_CHUNK_SIZE


@dataclass(frozen=True)
class ChunkSizeConfig:
    """Chunk size and safety buffer, fixed for the duration of a run."""
    chunk_size: int
    safety_buffer_frames: int

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.safety_buffer_frames < 0:
            raise ValueError("safety_buffer_frames must be non-negative")

    @property
    def backpressure_threshold(self) -> int:
        """Pending-frame count above which the producer gets suspended."""
        return int(round(self.chunk_size + 0.5 * self.chunk_size + self.safety_buffer_frames))

    @property
    def encode_trigger(self) -> int:
        """Pending frames needed before a chunk is cut while the producer runs."""
        return self.chunk_size + self.safety_buffer_frames

    @classmethod
    def for_run(
        cls,
        input_frame_count: int,
        interp_factor: float,
        backend: str,
        config: Optional[AutoEncodeConfig] = None,
    ) -> "ChunkSizeConfig":
        """Derive sizes from the expected output frame count and backend."""
        config = config or AutoEncodeConfig()
        target = int(round(input_frame_count * interp_factor))
        sizes = cls(
            chunk_size=compute_chunk_size(target),
            safety_buffer_frames=config.safety_buffer_for(backend),
        )
        logger.debug(
            f"Chunk sizing for {target} target frames on '{backend}': "
            f"{sizes.chunk_size} frames/chunk, {sizes.safety_buffer_frames} safety frames"
        )
        return sizes
