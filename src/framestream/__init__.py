"""FrameStream - encode interpolated frames into video while they are produced."""
__version__ = "1.0.0"

from .config import AutoEncMode, AutoEncodeConfig, OutputMode, RunOptions, frame_order_filename
from .ledger import FrameIndexEntry, FrameOrderLedger, load_ledger
from .sizing import ChunkSizeConfig, compute_chunk_size
from .tracker import PendingWindow, ProgressTracker
from .backpressure import BackpressureController
from .encoder import Chunk, ChunkEncoder
from .reclaim import FrameReclaimer
from .muxer import ChunkMuxer
from .orchestrator import (
    AutoEncoder,
    AutoEncodeResult,
    CancellationToken,
    OrchestratorContext,
    OrchestratorState,
)
from .producer import DirectoryProgressProbe, ProcessProducer

from .errors import (
    StreamEncodeError,
    TransientError,
    FatalError,
    MissingFrameFileError,
    ManifestUnreadableError,
    EncodeChunkError,
    MergeError,
    LedgerInconsistencyError,
    ConfigurationError,
    CancellationRequested,
)

__all__ = [
    "__version__",
    # Configuration
    "AutoEncMode",
    "AutoEncodeConfig",
    "OutputMode",
    "RunOptions",
    "frame_order_filename",
    # Pipeline
    "FrameIndexEntry",
    "FrameOrderLedger",
    "load_ledger",
    "ChunkSizeConfig",
    "compute_chunk_size",
    "PendingWindow",
    "ProgressTracker",
    "BackpressureController",
    "Chunk",
    "ChunkEncoder",
    "FrameReclaimer",
    "ChunkMuxer",
    "AutoEncoder",
    "AutoEncodeResult",
    "CancellationToken",
    "OrchestratorContext",
    "OrchestratorState",
    # Producer
    "DirectoryProgressProbe",
    "ProcessProducer",
    # Errors
    "StreamEncodeError",
    "TransientError",
    "FatalError",
    "MissingFrameFileError",
    "ManifestUnreadableError",
    "EncodeChunkError",
    "MergeError",
    "LedgerInconsistencyError",
    "ConfigurationError",
    "CancellationRequested",
]
