"""Suspends the producer when too many frames are waiting to be encoded."""
import logging
from typing import Optional

from .producer import ProducerControl

logger = logging.getLogger(__name__)


class BackpressureController:
    """Single-threshold suspend/resume control.

    Suspends when the pending count rises above ``threshold`` and resumes as
    soon as it is back at or below it. Calls are only made on state changes.
    """

    def __init__(self, control: Optional[ProducerControl], threshold: int) -> None:
        if threshold < 0:
            raise ValueError("threshold must be non-negative")
        self.control = control
        self.threshold = threshold
        self.suspended = False

    def update(self, pending_count: int) -> bool:
        """Apply backpressure for this tick. Returns the suspended state."""
        if pending_count > self.threshold and not self.suspended:
            logger.info(
                f"Encoder is behind ({pending_count} pending > {self.threshold}); suspending producer"
            )
            self.suspended = True
            if self.control is not None:
                self.control.suspend()
        elif pending_count <= self.threshold and self.suspended:
            logger.info(f"Encoder caught up ({pending_count} pending); resuming producer")
            self.suspended = False
            if self.control is not None:
                self.control.resume()
        return self.suspended

    def release(self) -> None:
        """Resume the producer if this controller left it suspended."""
        if self.suspended:
            self.suspended = False
            if self.control is not None:
                self.control.resume()
            logger.debug("Released backpressure on exit")
