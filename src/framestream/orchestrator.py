"""Streaming chunked-encode coordinator.

A single cooperative polling loop turns the producer's growing frame
directory into encoded chunks, applies backpressure, reclaims disk space and
finally merges the chunks into one video. All mutable run state lives in an
:class:`OrchestratorContext` owned by the loop; reclaim and backup-merge work
is handed to background threads and never awaited inline.

State machine::

    WAITING -> RUNNING <-> PAUSED
               RUNNING -> DRAINING -> FINALIZING -> COMPLETED
    (any) -> CANCELED
"""
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .backpressure import BackpressureController
from .config import AutoEncodeConfig, RunOptions
from .encoder import Chunk, ChunkBackend, ChunkEncoder, covered_lines, remove_stale_chunks
from .errors import (
    CancellationRequested,
    ConfigurationError,
    LedgerInconsistencyError,
    ManifestUnreadableError,
    MissingFrameFileError,
    StreamEncodeError,
    create_error_context,
    is_fatal,
)
from .ledger import FrameOrderLedger, load_ledger, manifest_ready
from .muxer import ChunkMuxer
from .producer import DirectoryProgressProbe, ProducerControl, ProducerMonitor
from .reclaim import FrameReclaimer
from .sizing import ChunkSizeConfig
from .tracker import PendingWindow, ProgressTracker
from .utils.logging import get_logger

logger = get_logger(__name__)

MIN_STARTUP_FRAMES = 2


class OrchestratorState(Enum):
    """Lifecycle of an auto-encode run."""
    WAITING = "waiting"
    RUNNING = "running"
    PAUSED = "paused"
    DRAINING = "draining"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELED = "canceled"


class CancellationToken:
    """Cooperative cancellation flag shared with the rest of the job.

    ``sleep`` doubles as the loop's only suspension point: it returns early,
    with True, as soon as the token is canceled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Canceled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    def raise_if_canceled(self) -> None:
        if self._event.is_set():
            raise CancellationRequested(self.reason or "Canceled")

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns True if canceled."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


@dataclass
class OrchestratorContext:
    """Mutable state of one run, owned exclusively by the loop."""
    ledger: Optional[FrameOrderLedger] = None
    cursor: int = 0
    chunks: List[Chunk] = field(default_factory=list)
    window: Optional[PendingWindow] = None
    producer_suspended: bool = False

    @property
    def ledger_length(self) -> int:
        return len(self.ledger) if self.ledger is not None else 0

    def commit(self, chunk: Chunk) -> None:
        """Record an encoded chunk and move the cursor past it."""
        if chunk.first != self.cursor:
            raise ValueError(
                f"Chunk #{chunk.index} starts at line {chunk.first}, expected {self.cursor}"
            )
        self.chunks.append(chunk)
        self.cursor = chunk.last + 1


@dataclass
class AutoEncodeResult:
    """Outcome of a run."""
    state: OrchestratorState
    chunks: List[Chunk]
    output_path: Optional[Path] = None
    cancel_reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == OrchestratorState.COMPLETED

    @property
    def frames_encoded(self) -> int:
        return covered_lines(self.chunks)


class AutoEncoder:
    """Runs the streaming auto-encode loop for one interpolation job.

    Args:
        options: Paths and frame counts of this run
        config: Auto-encode configuration
        producer: Producer liveness/progress
        backend: Encoder and merge collaborator
        control: Producer suspend/resume, used when backpressure is enabled
        token: Cancellation token shared with the rest of the job
        sizes: Chunk sizing override (derived from the run otherwise)
        on_chunk: Called after every committed chunk
    """

    def __init__(
        self,
        options: RunOptions,
        config: AutoEncodeConfig,
        producer: ProducerMonitor,
        backend: ChunkBackend,
        control: Optional[ProducerControl] = None,
        token: Optional[CancellationToken] = None,
        sizes: Optional[ChunkSizeConfig] = None,
        on_chunk: Optional[Callable[[Chunk], None]] = None,
    ) -> None:
        if not config.enabled:
            raise ConfigurationError("Auto-encode is disabled (auto_enc_mode is OFF)")
        if config.always_wait_for_auto_enc and control is None:
            raise ConfigurationError(
                "always_wait_for_auto_enc needs a producer control to suspend the producer"
            )

        self.options = options
        self.config = config
        self.producer = producer
        self.backend = backend
        self.control = control
        self.token = token or CancellationToken()
        self.sizes = sizes or ChunkSizeConfig.for_run(
            options.input_frame_count, options.interp_factor, options.backend, config
        )
        self.on_chunk = on_chunk

        self.context = OrchestratorContext()
        self.probe = DirectoryProgressProbe(options.frames_dir, options.frames_ext)
        self.chunks_dir = config.chunks_dir(options.work_dir)
        self.state = OrchestratorState.WAITING

        self.tracker: Optional[ProgressTracker] = None
        self.encoder: Optional[ChunkEncoder] = None
        self.backpressure: Optional[BackpressureController] = None
        self.reclaimer: Optional[FrameReclaimer] = None
        self.muxer: Optional[ChunkMuxer] = None

        self._paused = False
        self._missing_since: Optional[float] = None

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def cancel(self, reason: str = "Canceled by user") -> None:
        self.token.cancel(reason)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def busy(self) -> bool:
        """Whether a chunk is being encoded right now."""
        return self.encoder is not None and self.encoder.busy

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> AutoEncodeResult:
        """Run until the ledger is fully encoded and merged, or canceled."""
        output_path: Optional[Path] = None
        try:
            self._set_state(OrchestratorState.WAITING)
            if not self._wait_for_frames():
                return self._result()

            self._start(load_ledger(self.options.manifest_path))
            self._loop()
            self.token.raise_if_canceled()

            self._set_state(OrchestratorState.FINALIZING)
            output_path = self._finalize()
            self.token.raise_if_canceled()

            self._set_state(OrchestratorState.COMPLETED)
            return self._result(output_path)
        except Exception as e:
            if is_fatal(e):
                self._abort(e)
            else:
                logger.info(f"Auto-encode stopped: {e}")
                self.token.cancel(str(e))
            return self._result()
        finally:
            self._cleanup()

    def _abort(self, error: Exception) -> None:
        """Log a fatal error and cancel the job with a single readable cause."""
        if isinstance(error, StreamEncodeError):
            logger.error(f"Auto-encode failed: {error}")
            if error.context is not None:
                logger.debug(f"Error context:\n{error.context}")
        else:
            logger.error(f"Auto-encode failed unexpectedly: {error}", exc_info=True)
        self.token.cancel(f"Auto-encode encountered an error: {error}")

    def _wait_for_frames(self) -> bool:
        """Wait until the manifest and the first frames exist.

        Returns:
            False if canceled while waiting
        """
        manifest = self.options.manifest_path
        while not self.token.canceled:
            exited = self.producer.has_exited()
            if manifest_ready(manifest):
                if exited or self.probe.count_frames() >= MIN_STARTUP_FRAMES:
                    return True
            elif exited:
                raise ManifestUnreadableError(
                    f"Producer exited without writing frame order manifest {manifest}",
                    create_error_context("startup", "wait_for_frames", input_file=manifest),
                )

            if self.token.sleep(self.config.startup_poll_interval):
                return False
        return False

    def _start(self, ledger: FrameOrderLedger) -> None:
        """Build the per-run components once the ledger is known."""
        self.context = OrchestratorContext(ledger=ledger)
        self.chunks_dir.mkdir(parents=True, exist_ok=True)
        stale = remove_stale_chunks(self.chunks_dir)
        if stale:
            logger.warning(f"Removed {stale} chunk files left over from an earlier run in {self.chunks_dir}")

        self.tracker = ProgressTracker(
            ledger,
            self.producer,
            frame_padding=self.config.frame_padding,
            debug=self.config.debug,
        )
        self.encoder = ChunkEncoder(
            ledger,
            self.backend,
            self.options.frames_dir,
            self.chunks_dir,
            chunk_size=self.sizes.chunk_size,
            encode_trigger=self.sizes.encode_trigger,
            output_mode=self.config.output_mode,
        )
        if self.config.always_wait_for_auto_enc:
            self.backpressure = BackpressureController(
                self.control, self.sizes.backpressure_threshold
            )
        if self.config.reclaim_frames:
            self.reclaimer = FrameReclaimer(
                ledger,
                self.options.frames_dir,
                blank=self.config.blank_reclaimed_frames,
                debug=self.config.debug,
            )
        self.muxer = ChunkMuxer(
            self.backend,
            self.options.temp_dir,
            self.chunks_dir,
            self.options.output_path,
        )

        logger.info(
            f"Starting auto-encode - chunk size: {self.sizes.chunk_size} frames - "
            f"safety buffer: {self.sizes.safety_buffer_frames} frames",
            ledger_lines=len(ledger),
        )

    def _has_work(self) -> bool:
        if self.token.canceled:
            return False
        return (
            not self.producer.has_exited()
            or self.context.cursor < self.context.ledger_length
        )

    def _loop(self) -> None:
        ctx = self.context
        while self._has_work():
            if self.token.canceled:
                return

            if self._paused:
                self._set_state(OrchestratorState.PAUSED)
                if self.token.sleep(self.config.paused_interval):
                    return
                continue

            window = self.tracker.poll(ctx.cursor)
            ctx.window = window
            self._set_state(
                OrchestratorState.RUNNING if window.producer_running else OrchestratorState.DRAINING
            )

            if self.backpressure is not None and window.producer_running:
                ctx.producer_suspended = self.backpressure.update(len(window))

            lines = self.encoder.plan(window)
            if lines is not None:
                try:
                    chunk = self.encoder.encode(lines)
                except MissingFrameFileError as e:
                    self._on_missing_frame(e, window)
                    if self.token.sleep(self.config.missing_frame_retry_delay):
                        return
                    continue

                self._missing_since = None
                self.token.raise_if_canceled()
                self._commit(chunk, window.producer_running)
                self.token.raise_if_canceled()

            if self.token.sleep(self.config.tick_interval):
                return

    def _on_missing_frame(self, error: MissingFrameFileError, window: PendingWindow) -> None:
        if self.config.debug:
            logger.debug(f"Last frame of chunk doesn't exist; skipping tick ({error.path})")

        if window.producer_running:
            self._missing_since = None
            return

        now = time.monotonic()
        if self._missing_since is None:
            self._missing_since = now
            logger.warning(f"Producer has exited but {error.path} is missing; retrying")
        elif now - self._missing_since > self.config.missing_frame_timeout:
            raise LedgerInconsistencyError(
                f"Frame {error.path.name} is listed in the frame order manifest "
                f"but was never written",
                error.context,
            )

    def _commit(self, chunk: Chunk, producer_running: bool) -> None:
        self.context.commit(chunk)

        if producer_running and self.reclaimer is not None:
            self.reclaimer.submit(chunk.lines)

        if producer_running and self.config.backup_enabled:
            self.muxer.request_backup()

        if self.on_chunk is not None:
            self.on_chunk(chunk)

    def _finalize(self) -> Optional[Path]:
        if not self.context.chunks:
            logger.warning("No frames were encoded; skipping merge")
            return None
        output = self.muxer.merge_final()
        logger.info(
            f"Auto-encode finished: {len(self.context.chunks)} chunks merged into {output}",
            frames=covered_lines(self.context.chunks),
        )
        return output

    def _cleanup(self) -> None:
        wait = not self.token.canceled
        if self.backpressure is not None:
            self.backpressure.release()
            self.context.producer_suspended = False
        if self.reclaimer is not None:
            self.reclaimer.shutdown(wait=wait)
        if self.muxer is not None:
            self.muxer.shutdown(wait=wait)

    def _set_state(self, state: OrchestratorState) -> None:
        if self.token.canceled:
            state = OrchestratorState.CANCELED
        if state != self.state:
            if self.config.debug:
                logger.debug(f"State {self.state.value} -> {state.value}")
            self.state = state

    def _result(self, output_path: Optional[Path] = None) -> AutoEncodeResult:
        if self.token.canceled:
            self.state = OrchestratorState.CANCELED
        return AutoEncodeResult(
            state=self.state,
            chunks=list(self.context.chunks),
            output_path=output_path,
            cancel_reason=self.token.reason,
        )
