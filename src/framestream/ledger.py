"""Frame-order ledger: the producer's manifest of frame filenames.

Each manifest line names one frame, optionally single-quoted and optionally
followed by a ``#`` comment, e.g.::

    file '/work/interp/00000001.png' # 0 -> 1

Only the filename component is kept. Consecutive duplicate filenames are
meaningful: they are repeated frames backed by one file.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from .errors import ManifestUnreadableError, create_error_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameIndexEntry:
    """One ledger position: production-order index and frame filename."""
    index: int
    filename: str

    @property
    def stem(self) -> str:
        return self.filename.rsplit(".", 1)[0]


def parse_manifest_line(line: str) -> str:
    """Extract the frame filename from one manifest line."""
    ref = line.split("#", 1)[0].strip()

    if ref.count("'") >= 2:
        ref = ref[ref.index("'") + 1:ref.rindex("'")]
    else:
        ref = ref.replace("'", "")
        if ref.startswith("file "):
            ref = ref[len("file "):]

    return ref.replace("\\", "/").split("/")[-1].strip()


class FrameOrderLedger(Sequence[FrameIndexEntry]):
    """Immutable, indexable sequence of frame entries in production order."""

    def __init__(self, filenames: Sequence[str], source: Optional[Path] = None) -> None:
        self._entries = tuple(
            FrameIndexEntry(index=i, filename=name) for i, name in enumerate(filenames)
        )
        self.source = source

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FrameIndexEntry]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"FrameOrderLedger({len(self)} entries, source={self.source})"

    @property
    def filenames(self) -> List[str]:
        return [e.filename for e in self._entries]

    def filename(self, index: int) -> str:
        return self._entries[index].filename

    def frame_path(self, frames_dir: Path, index: int) -> Path:
        """Path of the file backing a ledger position."""
        return Path(frames_dir) / self._entries[index].filename

    def is_still_needed(self, index: int) -> bool:
        """True if the next entry reuses this entry's file."""
        next_index = index + 1
        if next_index >= len(self._entries):
            return False
        return self._entries[next_index].filename == self._entries[index].filename

    def find_frame_number(
        self,
        frame_number: int,
        start: int = 0,
        padding: int = 8,
    ) -> Optional[int]:
        """First index at or after ``start`` whose file is ``frame_number``.

        Matches the zero-padded number against the filename stem exactly so
        that frame 1 never matches ``00000010.png``.
        """
        wanted = str(frame_number).zfill(padding)
        for i in range(start, len(self._entries)):
            if self._entries[i].stem == wanted:
                return i
        return None


def load_ledger(manifest_path: Union[str, Path]) -> FrameOrderLedger:
    """Load a frame-order ledger from a manifest file.

    Args:
        manifest_path: Path to the manifest written by the producer

    Returns:
        FrameOrderLedger with one entry per non-blank line

    Raises:
        ManifestUnreadableError: If the file cannot be read
    """
    manifest_path = Path(manifest_path)

    try:
        text = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestUnreadableError(
            f"Cannot read frame order manifest {manifest_path}: {e}",
            create_error_context("ledger", "load", input_file=manifest_path),
        ) from e

    filenames = [parse_manifest_line(line) for line in text.splitlines() if line.strip()]
    filenames = [name for name in filenames if name]

    logger.debug(f"Loaded {len(filenames)} ledger entries from {manifest_path}")
    return FrameOrderLedger(filenames, source=manifest_path)


def manifest_ready(manifest_path: Path) -> bool:
    """Whether the manifest exists and has content yet."""
    try:
        return manifest_path.is_file() and manifest_path.stat().st_size > 0
    except OSError:
        return False
