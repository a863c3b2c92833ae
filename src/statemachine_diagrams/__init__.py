from importlib.metadata import PackageNotFoundError, version

from .canonical import content_fingerprint, to_canonical_json
from .errors import DiagramError, ErrorSeverity, ErrorType, error_severity, is_recoverable, wrap_error
from .locking import ReadWriteLock
from .models import (
    Diagram,
    DiagramMetadata,
    DiagramType,
    Location,
    Reference,
    ReferenceType,
    ValidationIssue,
    ValidationStrictness,
    VerificationResult,
)
from .paths import DEFAULT_ROOT_DIRECTORY, PathInfo, PathManager, split_name_version
from .repository import FilesystemRepository, Repository
from .semver import Version, compare_versions, is_valid_version, parse_version
from .service import (
    DiagramService,
    new_service,
    new_service_from_env,
    new_service_with_config,
    new_service_with_env_overrides,
)
from .settings import RuntimeSettings, apply_log_level
from .validation import PlantUMLValidator, Validator, parse_references

DISTRIBUTION_NAME = "statemachine-diagrams"


def get_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "0.0.0"


__all__ = [
    "DEFAULT_ROOT_DIRECTORY",
    "Diagram",
    "DiagramError",
    "DiagramMetadata",
    "DiagramService",
    "DiagramType",
    "ErrorSeverity",
    "ErrorType",
    "FilesystemRepository",
    "Location",
    "PathInfo",
    "PathManager",
    "PlantUMLValidator",
    "ReadWriteLock",
    "Reference",
    "ReferenceType",
    "Repository",
    "RuntimeSettings",
    "ValidationIssue",
    "ValidationStrictness",
    "Validator",
    "VerificationResult",
    "Version",
    "apply_log_level",
    "compare_versions",
    "content_fingerprint",
    "error_severity",
    "get_version",
    "is_recoverable",
    "is_valid_version",
    "new_service",
    "new_service_from_env",
    "new_service_with_config",
    "new_service_with_env_overrides",
    "parse_references",
    "parse_version",
    "split_name_version",
    "to_canonical_json",
    "wrap_error",
]
