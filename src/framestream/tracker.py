"""Per-tick computation of which ledger positions are safe to encode."""
import logging
from dataclasses import dataclass
from typing import Optional

from .ledger import FrameOrderLedger
from .producer import ProducerMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingWindow:
    """Ledger indices ``[start, boundary)`` not yet assigned to a chunk.

    ``producer_running`` records the liveness observed when the window was
    computed; the rest of the tick must act on that same observation.
    """
    start: int
    boundary: int
    producer_running: bool

    def __post_init__(self) -> None:
        if self.boundary < self.start:
            raise ValueError("boundary must not be before start")

    def __len__(self) -> int:
        return self.boundary - self.start

    @property
    def indices(self) -> range:
        return range(self.start, self.boundary)

    @property
    def last(self) -> Optional[int]:
        return self.boundary - 1 if self.boundary > self.start else None


class ProgressTracker:
    """Computes the pending window for the current tick.

    While the producer runs, the window ends at the first ledger entry that
    matches the producer's latest frame number, which may still be written.
    Once the producer has exited every remaining entry is final.
    """

    def __init__(
        self,
        ledger: FrameOrderLedger,
        producer: ProducerMonitor,
        frame_padding: int = 8,
        debug: bool = False,
    ) -> None:
        self.ledger = ledger
        self.producer = producer
        self.frame_padding = frame_padding
        self.debug = debug

    def safe_boundary(self, cursor: int, last_frame: Optional[int]) -> int:
        """Upper (exclusive) boundary while the producer is still running."""
        if last_frame is None:
            return cursor

        match = self.ledger.find_frame_number(last_frame, start=cursor, padding=self.frame_padding)
        if match is None:
            if self.debug:
                logger.debug(
                    f"Producer marker {last_frame} not in ledger after line {cursor}; nothing safe yet"
                )
            return cursor
        return match

    def poll(self, cursor: int) -> PendingWindow:
        """Build the pending window starting at ``cursor``."""
        running = not self.producer.has_exited()

        if running:
            boundary = self.safe_boundary(cursor, self.producer.last_completed_frame())
        else:
            boundary = len(self.ledger)

        window = PendingWindow(start=cursor, boundary=max(boundary, cursor), producer_running=running)
        if self.debug:
            logger.debug(
                f"Tick: producer running={running}, cursor={cursor}, "
                f"pending={len(window)}, ledger={len(self.ledger)}"
            )
        return window
