"""Error handling module for the FrameStream auto-encode pipeline.

Provides error classification and detailed error context.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Error Classification
# =============================================================================

class StreamEncodeError(Exception):
    """Base exception for all FrameStream errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        super().__init__(message)
        self.context = context


class TransientError(StreamEncodeError):
    """Recoverable errors that may succeed on a later tick.

    These are typically caused by the producer still writing a file that
    the pipeline wants to read.
    """
    pass


class MissingFrameFileError(TransientError):
    """The last frame of a planned chunk does not exist on disk yet."""

    def __init__(
        self,
        path: Union[str, Path],
        context: Optional["ErrorContext"] = None,
    ):
        super().__init__(f"Frame file not written yet: {path}", context)
        self.path = Path(path)


class FatalError(StreamEncodeError):
    """Non-recoverable errors. The whole run is canceled."""
    pass


class ManifestUnreadableError(FatalError):
    """The frame-order manifest could not be read."""
    pass


class EncodeChunkError(FatalError):
    """The encoder collaborator failed to produce a chunk."""
    pass


class MergeError(FatalError):
    """Concatenating chunks into the output failed."""
    pass


class LedgerInconsistencyError(FatalError):
    """A ledger entry never appeared on disk although the producer exited."""
    pass


class ConfigurationError(FatalError):
    """Invalid configuration."""
    pass


class CancellationRequested(StreamEncodeError):
    """Raised when a cooperative cancellation is observed mid-operation."""
    pass


# =============================================================================
# Error Context
# =============================================================================

@dataclass
class ErrorContext:
    """Detailed context for debugging errors.

    Captures the stage and operation that failed together with whatever
    subprocess output was available.
    """
    stage: str
    operation: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    frame_index: Optional[int] = None
    input_file: Optional[str] = None
    output_file: Optional[str] = None
    command: Optional[List[str]] = None
    stderr: Optional[str] = None
    return_code: Optional[int] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "frame_index": self.frame_index,
            "input_file": self.input_file,
            "output_file": self.output_file,
            "command": self.command,
            "stderr": self.stderr,
            "return_code": self.return_code,
            "additional_info": self.additional_info,
        }

    def __str__(self) -> str:
        """Human-readable error context."""
        lines = [
            f"Stage: {self.stage}",
            f"Operation: {self.operation}",
            f"Timestamp: {self.timestamp}",
        ]

        if self.frame_index is not None:
            lines.append(f"Frame index: {self.frame_index}")
        if self.input_file:
            lines.append(f"Input: {self.input_file}")
        if self.output_file:
            lines.append(f"Output: {self.output_file}")
        if self.command:
            lines.append(f"Command: {' '.join(self.command)}")
        if self.return_code is not None:
            lines.append(f"Return code: {self.return_code}")
        if self.stderr:
            lines.append(f"Stderr: {self.stderr[:500]}")
        if self.additional_info:
            lines.append(f"Info: {self.additional_info}")

        return "\n".join(lines)


def create_error_context(
    stage: str,
    operation: str,
    frame_index: Optional[int] = None,
    input_file: Optional[Path] = None,
    output_file: Optional[Path] = None,
    command: Optional[List[str]] = None,
    stderr: Optional[str] = None,
    return_code: Optional[int] = None,
    **additional_info: Any
) -> ErrorContext:
    """Create an error context, normalizing paths to strings."""
    return ErrorContext(
        stage=stage,
        operation=operation,
        frame_index=frame_index,
        input_file=str(input_file) if input_file else None,
        output_file=str(output_file) if output_file else None,
        command=command,
        stderr=stderr,
        return_code=return_code,
        additional_info=additional_info,
    )


def is_fatal(error: BaseException) -> bool:
    """Check whether an error must cancel the run.

    Anything that is not a known transient condition is treated as fatal.
    """
    if isinstance(error, (TransientError, CancellationRequested)):
        return False
    return True
