"""Tagged error model shared by the repository, validator and service layers.

Every failure surfaced by the library is a :class:`DiagramError`.  The error
carries a kind (:class:`ErrorType`), a severity, a recoverability flag, the
operation and component that raised it, a free-form context map and the
original cause (kept on ``__cause__`` so tracebacks show the full chain).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    VALIDATION = "validation"
    FILE_NOT_FOUND = "file_not_found"
    DIRECTORY_CONFLICT = "directory_conflict"
    FILE_CONFLICT = "file_conflict"
    REFERENCE_RESOLUTION = "reference_resolution"
    REFERENCE_PARSING = "reference_parsing"
    FILE_SYSTEM = "file_system"
    VERSION_PARSING = "version_parsing"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    NETWORK = "network"
    CORRUPTION = "corruption"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


DEFAULT_SEVERITY: dict[ErrorType, ErrorSeverity] = {
    ErrorType.VALIDATION: ErrorSeverity.HIGH,
    ErrorType.FILE_NOT_FOUND: ErrorSeverity.MEDIUM,
    ErrorType.DIRECTORY_CONFLICT: ErrorSeverity.MEDIUM,
    ErrorType.FILE_CONFLICT: ErrorSeverity.MEDIUM,
    ErrorType.REFERENCE_RESOLUTION: ErrorSeverity.MEDIUM,
    ErrorType.REFERENCE_PARSING: ErrorSeverity.MEDIUM,
    ErrorType.FILE_SYSTEM: ErrorSeverity.HIGH,
    ErrorType.VERSION_PARSING: ErrorSeverity.MEDIUM,
    ErrorType.CONFIGURATION: ErrorSeverity.HIGH,
    ErrorType.PERMISSION: ErrorSeverity.HIGH,
    ErrorType.TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorType.NETWORK: ErrorSeverity.MEDIUM,
    ErrorType.CORRUPTION: ErrorSeverity.CRITICAL,
}

NON_RECOVERABLE_TYPES = frozenset(
    {
        ErrorType.VALIDATION,
        ErrorType.VERSION_PARSING,
        ErrorType.REFERENCE_PARSING,
        ErrorType.PERMISSION,
        ErrorType.CORRUPTION,
    }
)


class DiagramError(Exception):
    """Structured error raised by every layer of the library."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        *,
        cause: BaseException | None = None,
        code: str | None = None,
        severity: ErrorSeverity | None = None,
        recoverable: bool | None = None,
        operation: str = "",
        component: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.code = code
        self.severity = severity if severity is not None else DEFAULT_SEVERITY[error_type]
        if recoverable is None:
            recoverable = error_type not in NON_RECOVERABLE_TYPES and self.severity is not ErrorSeverity.CRITICAL
        self.recoverable = recoverable
        self.operation = operation
        self.component = component
        self.context: dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(UTC)
        self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}] {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.component:
            parts.append(f"component={self.component}")
        parts.append(f"severity={self.severity.value}")
        if self.cause is not None:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return f"DiagramError({self.error_type.value!r}, {self.message!r}, code={self.code!r})"

    def with_context(self, **fields: Any) -> DiagramError:
        self.context.update(fields)
        return self

    def with_operation(self, operation: str) -> DiagramError:
        self.operation = operation
        return self

    def with_component(self, component: str) -> DiagramError:
        self.component = component
        return self

    def detailed(self) -> str:
        """Render a multi-line report suitable for logs and diagnostics."""
        lines = [
            f"Error Type: {self.error_type.value}",
            f"Message: {self.message}",
            f"Severity: {self.severity.value}",
            f"Timestamp: {self.timestamp.strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]}",
            f"Recoverable: {str(self.recoverable).lower()}",
        ]
        if self.code:
            lines.append(f"Code: {self.code}")
        if self.operation:
            lines.append(f"Operation: {self.operation}")
        if self.component:
            lines.append(f"Component: {self.component}")
        if self.context:
            lines.append("Context:")
            for key in sorted(self.context):
                lines.append(f"  {key}: {self.context[key]}")
        if self.cause is not None:
            lines.append(f"Cause: {self.cause}")
        return "\n".join(lines)


def wrap_error(
    exc: BaseException,
    error_type: ErrorType,
    message: str,
    *,
    code: str | None = None,
    severity: ErrorSeverity | None = None,
    recoverable: bool | None = None,
    operation: str = "",
    component: str = "",
    context: dict[str, Any] | None = None,
) -> DiagramError:
    """Wrap *exc* in a new :class:`DiagramError` of kind *error_type*.

    When *exc* is itself a ``DiagramError`` the wrapper inherits its code,
    severity, recoverability and context unless they are given explicitly.
    """
    merged: dict[str, Any] = {}
    if isinstance(exc, DiagramError):
        merged.update(exc.context)
        code = code if code is not None else exc.code
        severity = severity if severity is not None else exc.severity
        recoverable = recoverable if recoverable is not None else exc.recoverable
    merged.update(context or {})
    return DiagramError(
        error_type,
        message,
        cause=exc,
        code=code,
        severity=severity,
        recoverable=recoverable,
        operation=operation,
        component=component,
        context=merged,
    )


def is_recoverable(exc: BaseException) -> bool:
    if isinstance(exc, DiagramError):
        return exc.recoverable
    return True


def error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, DiagramError):
        return exc.severity
    return ErrorSeverity.MEDIUM
