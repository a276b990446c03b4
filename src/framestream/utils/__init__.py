"""Utility modules for FrameStream."""
from .ffmpeg import (
    FFmpegChunkBackend,
    FFmpegError,
    check_ffmpeg_installed,
)
from .logging import LogConfig, configure_logging, get_logger, set_level
from .config_file import ConfigFileManager, load_config

__all__ = [
    "FFmpegChunkBackend",
    "FFmpegError",
    "check_ffmpeg_installed",
    "LogConfig",
    "configure_logging",
    "get_logger",
    "set_level",
    "ConfigFileManager",
    "load_config",
]
