"""Configuration module for the FrameStream auto-encode pipeline."""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_SAFETY_BUFFER = 90

# Backend families with their own safety buffer default
DEFAULT_SAFETY_BUFFERS: Dict[str, int] = {
    "ncnn": 150,
    "rife-cuda": 90,
    "flavr-cuda": 90,
}

CHUNKS_DIR_NAME = "vchunks"


class AutoEncMode(Enum):
    """Whether chunks are encoded while interpolating, and what happens to frames."""
    OFF = 0
    KEEP_FRAMES = 1
    DELETE_FRAMES = 2


class OutputMode(Enum):
    """Output container for chunks and the merged video."""
    MP4 = "mp4"
    MKV = "mkv"
    WEBM = "webm"
    MOV = "mov"
    AVI = "avi"

    @property
    def extension(self) -> str:
        return f".{self.value}"


# Original option names accepted next to the snake_case field names
_CAMEL_CASE_KEYS = {
    "autoEncMode": "auto_enc_mode",
    "alwaysWaitForAutoEnc": "always_wait_for_auto_enc",
    "autoEncBackupMode": "auto_enc_backup_mode",
    "autoEncDebug": "debug",
    "chunkSafetyBuffer": "chunk_safety_buffer",
}


def frame_order_filename(interp_factor: float) -> str:
    """Name of the manifest the producer writes for a given factor."""
    return f"frames-{interp_factor:g}x.ini"


@dataclass
class AutoEncodeConfig:
    """Configuration for a streaming auto-encode run.

    Attributes:
        auto_enc_mode: OFF, KEEP_FRAMES or DELETE_FRAMES (reclaim disk space)
        always_wait_for_auto_enc: Suspend the producer when the encoder falls behind
        auto_enc_backup_mode: >0 enables incremental backup merges
        debug: Verbose per-tick logging
        chunk_safety_buffer: Per-backend safety buffer overrides
        blank_reclaimed_frames: Truncate reclaimed frames instead of deleting them
        output_mode: Container of chunks and output
        keep_chunks: Keep chunk files after the final merge
        frame_padding: Zero padding of the producer's frame filenames

        # Timing
        tick_interval: Delay between loop iterations in seconds
        paused_interval: Delay between polls while paused
        missing_frame_retry_delay: Delay after a missing-frame skip
        startup_poll_interval: Delay between polls while waiting for frames
        missing_frame_timeout: How long a frame may stay missing after producer exit

        # Encoding
        fps: Output frame rate
        codec: ffmpeg video codec
        crf: Constant Rate Factor (0-51)
        preset: Encoder preset
        pix_fmt: Output pixel format
    """

    auto_enc_mode: AutoEncMode = AutoEncMode.DELETE_FRAMES
    always_wait_for_auto_enc: bool = False
    auto_enc_backup_mode: int = 0
    debug: bool = False
    chunk_safety_buffer: Dict[str, int] = field(default_factory=dict)
    blank_reclaimed_frames: bool = False
    output_mode: OutputMode = OutputMode.MP4
    keep_chunks: bool = False
    frame_padding: int = 8

    tick_interval: float = 0.05
    paused_interval: float = 0.2
    missing_frame_retry_delay: float = 0.5
    startup_poll_interval: float = 2.0
    missing_frame_timeout: float = 30.0

    fps: float = 60.0
    codec: str = "libx264"
    crf: int = 18
    preset: str = "medium"
    pix_fmt: str = "yuv420p"

    def __post_init__(self) -> None:
        """Coerce enum fields and validate values."""
        if not isinstance(self.auto_enc_mode, AutoEncMode):
            try:
                self.auto_enc_mode = AutoEncMode(int(self.auto_enc_mode))
            except (TypeError, ValueError):
                raise ValueError(
                    f"Invalid auto_enc_mode '{self.auto_enc_mode}'. Must be 0, 1 or 2"
                )

        if not isinstance(self.output_mode, OutputMode):
            try:
                self.output_mode = OutputMode(str(self.output_mode).lower().lstrip("."))
            except ValueError:
                raise ValueError(
                    f"Invalid output_mode '{self.output_mode}'. "
                    f"Valid modes: {[m.value for m in OutputMode]}"
                )

        if self.auto_enc_backup_mode < 0:
            raise ValueError("auto_enc_backup_mode must be non-negative")

        for backend, frames in self.chunk_safety_buffer.items():
            if int(frames) < 0:
                raise ValueError(f"chunk_safety_buffer for '{backend}' must be non-negative")
        self.chunk_safety_buffer = {
            str(k).lower(): int(v) for k, v in self.chunk_safety_buffer.items()
        }

        if self.frame_padding < 1:
            raise ValueError("frame_padding must be at least 1")

        for name in (
            "tick_interval",
            "paused_interval",
            "missing_frame_retry_delay",
            "startup_poll_interval",
            "missing_frame_timeout",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

        if self.fps <= 0:
            raise ValueError("fps must be positive")

        if not 0 <= self.crf <= 51:
            raise ValueError("crf must be between 0 and 51")

    @property
    def enabled(self) -> bool:
        """Whether chunks are encoded during interpolation at all."""
        return self.auto_enc_mode != AutoEncMode.OFF

    @property
    def reclaim_frames(self) -> bool:
        return self.auto_enc_mode == AutoEncMode.DELETE_FRAMES

    @property
    def backup_enabled(self) -> bool:
        return self.auto_enc_backup_mode > 0

    def safety_buffer_for(self, backend: str) -> int:
        """Safety buffer for a producer backend.

        Backend names containing "ncnn" share the ncnn family setting; other
        names are looked up exactly. Unknown backends get the default.
        """
        name = backend.lower()
        family = "ncnn" if "ncnn" in name else name

        if family in self.chunk_safety_buffer:
            return self.chunk_safety_buffer[family]
        return DEFAULT_SAFETY_BUFFERS.get(family, DEFAULT_SAFETY_BUFFER)

    def chunks_dir(self, work_dir: Path) -> Path:
        """Directory chunk files are written to."""
        return Path(work_dir) / CHUNKS_DIR_NAME / "chunks"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        data: Dict[str, Any] = {}
        for key in self.__dataclass_fields__:
            val = getattr(self, key)
            if isinstance(val, Enum):
                data[key] = val.value
            elif isinstance(val, dict):
                data[key] = dict(val)
            else:
                data[key] = val
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoEncodeConfig":
        """Create configuration from dictionary.

        Accepts snake_case field names as well as the original option names
        (``autoEncMode``, ``chunkSafetyBuffer.<backend>`` ...).

        Args:
            data: Configuration dictionary

        Returns:
            AutoEncodeConfig instance
        """
        kwargs: Dict[str, Any] = {}
        safety: Dict[str, int] = {}

        for key, value in data.items():
            if key.startswith("chunkSafetyBuffer.") or key.startswith("chunk_safety_buffer."):
                safety[key.split(".", 1)[1]] = value
                continue

            name = _CAMEL_CASE_KEYS.get(key, key)
            if name == "chunk_safety_buffer":
                safety.update(value or {})
            elif name in cls.__dataclass_fields__:
                kwargs[name] = value

        if safety:
            kwargs["chunk_safety_buffer"] = safety
        return cls(**kwargs)


@dataclass
class RunOptions:
    """Per-run inputs that are not part of the stored configuration.

    Separate from AutoEncodeConfig so the same config serves many runs.
    """
    frames_dir: Path
    manifest_path: Path
    work_dir: Path
    output_path: Path
    input_frame_count: int
    interp_factor: float = 2.0
    backend: str = "rife-ncnn"
    frames_ext: str = ".png"

    def __post_init__(self) -> None:
        for name in ("frames_dir", "manifest_path", "work_dir", "output_path"):
            value = getattr(self, name)
            if not isinstance(value, Path):
                setattr(self, name, Path(value))

        if self.input_frame_count < 0:
            raise ValueError("input_frame_count must be non-negative")
        if self.interp_factor <= 0:
            raise ValueError("interp_factor must be positive")
        if not self.frames_ext.startswith("."):
            self.frames_ext = f".{self.frames_ext}"

    @property
    def target_frame_count(self) -> int:
        return int(round(self.input_frame_count * self.interp_factor))

    @property
    def temp_dir(self) -> Path:
        return self.work_dir

    @classmethod
    def for_work_dir(
        cls,
        work_dir: Path,
        output_path: Path,
        input_frame_count: int,
        interp_factor: float = 2.0,
        **kwargs: Any,
    ) -> "RunOptions":
        """Build options using the default layout under a work directory."""
        work_dir = Path(work_dir)
        frames_dir: Optional[Path] = kwargs.pop("frames_dir", None)
        return cls(
            frames_dir=frames_dir or work_dir / "interp",
            manifest_path=work_dir / frame_order_filename(interp_factor),
            work_dir=work_dir,
            output_path=output_path,
            input_frame_count=input_frame_count,
            interp_factor=interp_factor,
            **kwargs,
        )
