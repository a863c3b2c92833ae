from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from .errors import DiagramError, ErrorType
from .models import ValidationStrictness
from .paths import DEFAULT_ROOT_DIRECTORY

logger = logging.getLogger(__name__)

PACKAGE_LOGGER_NAME = "statemachine_diagrams"
DEFAULT_MAX_FILE_SIZE = 1024 * 1024

ENV_ROOT_DIRECTORY = "GO_UML_ROOT_DIRECTORY"
ENV_VALIDATION_LEVEL = "GO_UML_VALIDATION_LEVEL"
ENV_BACKUP_ENABLED = "GO_UML_BACKUP_ENABLED"
ENV_MAX_FILE_SIZE = "GO_UML_MAX_FILE_SIZE"
ENV_DEBUG_LOGGING = "GO_UML_DEBUG_LOGGING"

_TRUE_VALUES = frozenset({"1", "t", "true"})
_FALSE_VALUES = frozenset({"0", "f", "false"})


@dataclass(frozen=True)
class RuntimeSettings:
    """Library configuration, built directly or loaded from ``GO_UML_*`` variables."""

    root_directory: str = DEFAULT_ROOT_DIRECTORY
    validation_level: ValidationStrictness = ValidationStrictness.IN_PROGRESS
    backup_enabled: bool = False
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    enable_debug_logging: bool = False

    @classmethod
    def from_env(cls, dotenv_path: Path | None = None) -> "RuntimeSettings":
        """Load settings from the environment, falling back to defaults for unset or invalid values."""
        _load_dotenv_file(dotenv_path)
        return cls().with_env_overrides()

    def with_env_overrides(self) -> "RuntimeSettings":
        """Return a copy where every set and valid ``GO_UML_*`` variable overrides the current value."""
        return replace(
            self,
            root_directory=_get_env_str(ENV_ROOT_DIRECTORY, default=self.root_directory),
            validation_level=_get_env_strictness(ENV_VALIDATION_LEVEL, default=self.validation_level),
            backup_enabled=_get_env_bool(ENV_BACKUP_ENABLED, default=self.backup_enabled),
            max_file_size=_get_env_positive_int(ENV_MAX_FILE_SIZE, default=self.max_file_size),
            enable_debug_logging=_get_env_bool(ENV_DEBUG_LOGGING, default=self.enable_debug_logging),
        )

    @property
    def root_path(self) -> Path:
        return Path(self.root_directory)

    def normalized(self) -> "RuntimeSettings":
        """Validate programmatic settings. Raises DiagramError(CONFIGURATION) on invalid values."""
        root_directory = self.root_directory.strip()
        if not root_directory:
            raise DiagramError(
                ErrorType.CONFIGURATION,
                "root_directory must be non-empty",
                component="settings",
            )
        if self.max_file_size <= 0:
            raise DiagramError(
                ErrorType.CONFIGURATION,
                f"max_file_size must be > 0, got: {self.max_file_size}",
                component="settings",
                context={"max_file_size": self.max_file_size},
            )
        try:
            validation_level = ValidationStrictness(self.validation_level)
        except ValueError as exc:
            raise DiagramError(
                ErrorType.CONFIGURATION,
                f"validation_level must be one of: in-progress, products, got: {self.validation_level!r}",
                cause=exc,
                component="settings",
            ) from exc
        return replace(self, root_directory=root_directory, validation_level=validation_level)


def apply_log_level(settings: RuntimeSettings) -> None:
    """Set the package logger level from ``enable_debug_logging``."""
    level = logging.DEBUG if settings.enable_debug_logging else logging.INFO
    logging.getLogger(PACKAGE_LOGGER_NAME).setLevel(level)


def _load_dotenv_file(dotenv_path: Path | None) -> None:
    path = dotenv_path if dotenv_path is not None else Path.cwd() / ".env"
    if path.is_file():
        load_dotenv(path, override=False)


def _get_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Ignoring %s=%r: expected true or false", name, raw)
    return default


def _get_env_positive_int(name: str, default: int) -> int:
    """Parse a positive integer from an environment variable.

    Args:
        name: Environment variable name.
        default: Value used when the variable is unset, not an integer, or not positive.

    Returns:
        The parsed integer, or *default*.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default
    if parsed <= 0:
        logger.warning("Ignoring %s=%r: must be > 0", name, raw)
        return default
    return parsed


def _get_env_strictness(name: str, default: ValidationStrictness) -> ValidationStrictness:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return ValidationStrictness(raw.strip().lower())
    except ValueError:
        logger.warning("Ignoring %s=%r: expected in-progress or products", name, raw)
        return default
