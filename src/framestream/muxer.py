"""Merging encoded chunks into the output video.

Final merges run once, inline. Backup merges run in the background after
each chunk while the producer is still running; at most one is in flight
and requests made while one runs are skipped, not queued.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from .encoder import ChunkBackend
from .errors import MergeError, create_error_context

logger = logging.getLogger(__name__)


class ChunkMuxer:
    """Drives the merge collaborator in final and backup mode."""

    def __init__(
        self,
        backend: ChunkBackend,
        temp_folder: Path,
        chunks_dir: Path,
        out_path: Path,
    ) -> None:
        self.backend = backend
        self.temp_folder = Path(temp_folder)
        self.chunks_dir = Path(chunks_dir)
        self.out_path = Path(out_path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="backup-merge")
        self._backup_task: Optional[Future] = None
        self.backups_started = 0
        self.backups_skipped = 0
        self.backup_failures = 0

    @property
    def backup_in_flight(self) -> bool:
        return self._backup_task is not None and not self._backup_task.done()

    def request_backup(self) -> bool:
        """Start a backup merge unless one is still running.

        Returns:
            True if a merge task was started
        """
        if self.backup_in_flight:
            self.backups_skipped += 1
            logger.info("Skipping backup merge because the previous backup is not done yet")
            return False

        self._backup_task = self._executor.submit(
            self.backend.chunks_to_video,
            self.temp_folder,
            self.chunks_dir,
            self.out_path,
            True,
        )
        self._backup_task.add_done_callback(self._on_backup_done)
        self.backups_started += 1
        return True

    def _on_backup_done(self, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            # Backups are best-effort; the final merge is what counts
            self.backup_failures += 1
            logger.error(f"Backup merge failed: {error}")
        else:
            logger.debug(f"Backup merge written to {self.out_path}")

    def wait_for_backup(self, timeout: Optional[float] = None) -> None:
        """Block until any in-flight backup merge has finished."""
        task = self._backup_task
        if task is not None and not task.done():
            logger.info("Waiting for running backup merge to finish")
            try:
                task.result(timeout=timeout)
            except Exception:
                # Already logged by the done callback
                pass

    def merge_final(self) -> Path:
        """Concatenate all committed chunks into the output.

        Raises:
            MergeError: If the merge collaborator fails
        """
        self.wait_for_backup()
        try:
            return self.backend.chunks_to_video(
                self.temp_folder, self.chunks_dir, self.out_path, False
            )
        except Exception as e:
            context = create_error_context(
                "merge",
                "chunks_to_video",
                input_file=self.chunks_dir,
                output_file=self.out_path,
                stderr=getattr(e, "stderr", None),
            )
            raise MergeError(f"Failed to merge chunks into {self.out_path}: {e}", context) from e

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
