"""Interfaces to the external frame producer (the interpolation process).

The producer is a separate OS process that writes numbered frame files into
a directory. The pipeline only observes it: whether it is still alive, the
latest frame number it has written, and it can suspend/resume it when the
encoder falls behind.
"""
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

import psutil

logger = logging.getLogger(__name__)


class ProducerMonitor(Protocol):
    """Liveness and progress of the frame producer."""

    def has_exited(self) -> bool:
        ...

    def last_completed_frame(self) -> Optional[int]:
        ...


class ProducerControl(Protocol):
    """Suspend/resume hooks used for backpressure."""

    def suspend(self) -> None:
        ...

    def resume(self) -> None:
        ...


class DirectoryProgressProbe:
    """Reads producer progress from the frames directory.

    The progress marker is the highest frame number found on disk. That file
    may still be mid-write, which is why the ledger boundary stops *at* it.

    Only the first call lists the directory. Later calls check for the frames
    after the last one seen, and fall back to a full listing every
    ``rescan_every`` calls in case the producer skipped a number.
    """

    def __init__(self, frames_dir: Path, frames_ext: str = ".png", rescan_every: int = 100) -> None:
        self.frames_dir = Path(frames_dir)
        self.frames_ext = frames_ext if frames_ext.startswith(".") else f".{frames_ext}"
        self.rescan_every = rescan_every
        self._last_seen: Optional[int] = None
        self._padding = 0
        self._calls = 0

    def _frame_names(self) -> List[str]:
        try:
            with os.scandir(self.frames_dir) as entries:
                return [
                    e.name for e in entries
                    if e.name.endswith(self.frames_ext) and e.is_file()
                ]
        except FileNotFoundError:
            return []

    def _scan(self) -> Optional[int]:
        stems = [
            name[:-len(self.frames_ext)]
            for name in self._frame_names()
            if name[:-len(self.frames_ext)].isdigit()
        ]
        if not stems:
            return None
        highest = max(stems, key=int)
        self._padding = len(highest)
        return int(highest)

    def _frame_path(self, number: int) -> Path:
        return self.frames_dir / f"{number:0{self._padding}d}{self.frames_ext}"

    def last_frame_number(self) -> Optional[int]:
        """Highest numeric frame filename in the directory, if any."""
        self._calls += 1
        if self._last_seen is None or self._calls % self.rescan_every == 0:
            scanned = self._scan()
            if scanned is not None and (self._last_seen is None or scanned > self._last_seen):
                self._last_seen = scanned
            return self._last_seen

        number = self._last_seen
        while self._frame_path(number + 1).exists():
            number += 1
        self._last_seen = number
        return number

    def count_frames(self) -> int:
        return len(self._frame_names())


class ProcessProducer:
    """Producer backed by an OS process, observed and controlled via psutil.

    Suspend/resume applies to the process and all of its children, since
    interpolation backends usually run the actual work in a child process.
    """

    def __init__(
        self,
        process: Union[int, psutil.Process],
        probe: DirectoryProgressProbe,
        popen: Optional[subprocess.Popen] = None,
    ) -> None:
        self.process = process if isinstance(process, psutil.Process) else psutil.Process(process)
        self.probe = probe
        self._popen = popen
        self.suspended = False

    @classmethod
    def spawn(
        cls,
        command: Sequence[str],
        probe: DirectoryProgressProbe,
        cwd: Optional[Path] = None,
    ) -> "ProcessProducer":
        """Start the producer command and wrap it."""
        logger.info(f"Starting producer: {' '.join(command)}")
        popen = subprocess.Popen(list(command), cwd=cwd)
        return cls(psutil.Process(popen.pid), probe, popen=popen)

    @property
    def pid(self) -> int:
        return self.process.pid

    def has_exited(self) -> bool:
        if self._popen is not None:
            return self._popen.poll() is not None
        try:
            return (
                not self.process.is_running()
                or self.process.status() == psutil.STATUS_ZOMBIE
            )
        except psutil.NoSuchProcess:
            return True

    def last_completed_frame(self) -> Optional[int]:
        return self.probe.last_frame_number()

    def _process_tree(self) -> List[psutil.Process]:
        try:
            return [self.process] + self.process.children(recursive=True)
        except psutil.NoSuchProcess:
            return []

    def suspend(self) -> None:
        for proc in self._process_tree():
            try:
                proc.suspend()
            except psutil.NoSuchProcess:
                logger.debug(f"Process {proc.pid} exited before it could be suspended")
        self.suspended = True
        logger.info(f"Suspended producer (PID {self.pid})")

    def resume(self) -> None:
        for proc in self._process_tree():
            try:
                proc.resume()
            except psutil.NoSuchProcess:
                logger.debug(f"Process {proc.pid} exited before it could be resumed")
        self.suspended = False
        logger.info(f"Resumed producer (PID {self.pid})")

    def terminate(self, timeout: float = 10.0) -> None:
        """Stop the producer and its children, killing them if needed."""
        procs = self._process_tree()
        for proc in procs:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                pass
        gone, alive = psutil.wait_procs(procs, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        logger.info(f"Terminated producer (PID {self.pid})")
