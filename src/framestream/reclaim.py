"""Background reclamation of frame files that are already encoded.

Reclaim only ever targets ledger lines of committed chunks, which lie
strictly before the cursor and are never read again. A file is kept while
the next ledger line still points at it (a repeated frame).
"""
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List

from .ledger import FrameOrderLedger

logger = logging.getLogger(__name__)


class FrameReclaimer:
    """Deletes (or blanks) frame files once they are no longer needed.

    Args:
        ledger: Frame-order ledger of the run
        frames_dir: Directory holding the frame files
        blank: Truncate files to zero bytes instead of deleting them. Keeps
            file counts intact for anything that tracks progress by counting
        max_workers: Concurrent reclaim tasks
        debug: Log per-task timing
    """

    def __init__(
        self,
        ledger: FrameOrderLedger,
        frames_dir: Path,
        blank: bool = False,
        max_workers: int = 2,
        debug: bool = False,
    ) -> None:
        self.ledger = ledger
        self.frames_dir = Path(frames_dir)
        self.blank = blank
        self.debug = debug
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reclaim")
        self._futures: List[Future] = []

    def is_still_needed(self, index: int) -> bool:
        return self.ledger.is_still_needed(index)

    def reclaim(self, lines: Iterable[int]) -> int:
        """Reclaim the files behind ``lines`` synchronously.

        Returns:
            Number of files deleted or blanked
        """
        start = time.monotonic()
        reclaimed = 0

        for index in lines:
            if self.is_still_needed(index):
                continue

            frame_path = self.ledger.frame_path(self.frames_dir, index)
            try:
                if self.blank:
                    frame_path.write_bytes(b"")
                else:
                    frame_path.unlink()
                reclaimed += 1
            except FileNotFoundError:
                logger.debug(f"Frame already gone: {frame_path}")
            except OSError as e:
                logger.warning(f"Could not reclaim {frame_path}: {e}")

        if self.debug:
            logger.debug(
                f"Reclaimed {reclaimed} frame files in {time.monotonic() - start:.2f}s"
            )
        return reclaimed

    def submit(self, lines: Iterable[int]) -> Future:
        """Reclaim ``lines`` on a background thread without waiting."""
        future = self._executor.submit(self.reclaim, list(lines))
        future.add_done_callback(self._log_failure)
        self._futures = [f for f in self._futures if not f.done()]
        self._futures.append(future)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Frame reclaim task failed: {error}")

    @property
    def pending(self) -> int:
        return sum(1 for f in self._futures if not f.done())

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
