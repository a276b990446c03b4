"""Configuration file management for FrameStream.

Supports loading configuration from:
1. User config: ~/.framestream/config.yaml
2. Project config: .framestream.yaml (in current directory)
3. CLI arguments (highest precedence)

Config files are merged with CLI taking precedence over project over user.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..config import AutoEncodeConfig

logger = logging.getLogger(__name__)


# Default config file template
DEFAULT_CONFIG_TEMPLATE = """\
# FrameStream Configuration File
# Location: ~/.framestream/config.yaml or .framestream.yaml (project-local)
#
# CLI arguments take precedence over config file values.

# 0 = off, 1 = encode chunks and keep frames, 2 = delete frames after encoding
autoEncMode: 2

# Suspend the interpolation process when encoding falls behind
alwaysWaitForAutoEnc: false

# >0 writes a best-effort backup of the output after every chunk
autoEncBackupMode: 0

# Verbose per-tick logging
autoEncDebug: false

# Frames withheld from the newest end of the queue, per interpolation backend
chunkSafetyBuffer:
  ncnn: 150
  rife-cuda: 90
  flavr-cuda: 90

# Chunk and output container
output_mode: mp4

# Encoder settings
# fps: 60
# codec: libx264
# crf: 18
# preset: medium
"""


@dataclass
class ValidationError:
    """Represents a config validation error."""
    path: str
    message: str
    value: Any = None


@dataclass
class ConfigFileManager:
    """Manages configuration file loading and merging.

    Attributes:
        user_config_path: Path to user-level config file
        project_config_path: Path to project-local config file
        loaded_config: The merged configuration dictionary
    """

    user_config_path: Path = field(default_factory=lambda: Path.home() / ".framestream" / "config.yaml")
    project_config_path: Path = field(default_factory=lambda: Path.cwd() / ".framestream.yaml")
    loaded_config: Dict[str, Any] = field(default_factory=dict)
    _validation_errors: List[ValidationError] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        if not isinstance(self.user_config_path, Path):
            self.user_config_path = Path(self.user_config_path)
        if not isinstance(self.project_config_path, Path):
            self.project_config_path = Path(self.project_config_path)

    def load(self, extra_files: Optional[List[Path]] = None) -> Dict[str, Any]:
        """Load and merge configuration from all sources.

        Order of precedence (later overrides earlier):
        1. User config (~/.framestream/config.yaml)
        2. Project config (.framestream.yaml)
        3. Explicitly given files, in order

        Returns:
            Merged configuration dictionary
        """
        self._validation_errors = []
        config: Dict[str, Any] = {}

        for path in [self.user_config_path, self.project_config_path, *(extra_files or [])]:
            path = Path(path)
            if not path.exists():
                continue
            data = self._load_yaml_file(path)
            if data:
                config = self._deep_merge(config, data)

        self.loaded_config = config
        return config

    def _load_yaml_file(self, path: Path) -> Optional[Dict[str, Any]]:
        """Load a YAML configuration file.

        Returns:
            Parsed configuration dictionary, or None if loading fails
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self._validation_errors.append(
                ValidationError(path=str(path), message=f"YAML parsing error: {e}")
            )
            return None
        except OSError as e:
            self._validation_errors.append(
                ValidationError(path=str(path), message=f"Failed to read file: {e}")
            )
            return None

        if not isinstance(data, dict):
            self._validation_errors.append(
                ValidationError(path=str(path), message="Top level must be a mapping", value=data)
            )
            return None
        return data

    def _deep_merge(self, base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, overlay takes precedence."""
        result = base.copy()

        for key, value in overlay.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_validation_errors(self) -> List[ValidationError]:
        """Get list of validation errors from last load."""
        return self._validation_errors

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., "chunkSafetyBuffer.ncnn")
            default: Default value if key not found
        """
        value: Any = self.loaded_config
        for key in key_path.split("."):
            if not isinstance(value, dict) or key not in value:
                return default
            value = value[key]
        return value

    def create_default_config(self, force: bool = False) -> Path:
        """Write the default template to the user config path."""
        if self.user_config_path.exists() and not force:
            return self.user_config_path
        self.user_config_path.parent.mkdir(parents=True, exist_ok=True)
        self.user_config_path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
        return self.user_config_path


def load_config(
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    manager: Optional[ConfigFileManager] = None,
) -> AutoEncodeConfig:
    """Build an AutoEncodeConfig from config files and CLI overrides.

    Args:
        config_file: Additional config file with higher precedence than the defaults
        overrides: Values from the command line (None values are ignored)
        manager: Manager to load with (defaults to user + project files)

    Returns:
        AutoEncodeConfig
    """
    manager = manager or ConfigFileManager()
    data = manager.load([Path(config_file)] if config_file else None)

    for error in manager.get_validation_errors():
        logger.warning(f"Ignoring config file {error.path}: {error.message}")

    if overrides:
        data = manager._deep_merge(data, {k: v for k, v in overrides.items() if v is not None})

    return AutoEncodeConfig.from_dict(data)
