import pytest

from statemachine_diagrams import DiagramError, ErrorSeverity, ErrorType, error_severity, is_recoverable, wrap_error


def test_default_severity_and_recoverability_by_kind() -> None:
    assert DiagramError(ErrorType.VALIDATION, "bad").severity is ErrorSeverity.HIGH
    assert DiagramError(ErrorType.FILE_SYSTEM, "io").severity is ErrorSeverity.HIGH
    assert DiagramError(ErrorType.FILE_NOT_FOUND, "missing").severity is ErrorSeverity.MEDIUM
    assert DiagramError(ErrorType.CORRUPTION, "garbled").severity is ErrorSeverity.CRITICAL

    assert not DiagramError(ErrorType.VALIDATION, "bad").recoverable
    assert not DiagramError(ErrorType.VERSION_PARSING, "bad").recoverable
    assert not DiagramError(ErrorType.CORRUPTION, "garbled").recoverable
    assert DiagramError(ErrorType.FILE_NOT_FOUND, "missing").recoverable
    assert DiagramError(ErrorType.FILE_SYSTEM, "io").recoverable
    assert not DiagramError(ErrorType.TIMEOUT, "slow", severity=ErrorSeverity.CRITICAL).recoverable


def test_str_includes_tags_and_cause() -> None:
    cause = OSError("disk full")
    error = DiagramError(
        ErrorType.FILE_SYSTEM,
        "failed to write diagram",
        cause=cause,
        operation="create_file",
        component="service",
    )
    assert str(error) == (
        "[file_system] failed to write diagram | operation=create_file | component=service | "
        "severity=high | cause=disk full"
    )
    assert error.cause is cause
    assert error.__cause__ is cause


def test_str_omits_missing_parts() -> None:
    assert str(DiagramError(ErrorType.FILE_NOT_FOUND, "gone")) == "[file_not_found] gone | severity=medium"


def test_with_context_chains_and_detailed_lists_sorted_context() -> None:
    error = (
        DiagramError(ErrorType.DIRECTORY_CONFLICT, "exists", code="X")
        .with_context(version="1.0.0", name="flow")
        .with_operation("create_file")
        .with_component("service")
    )
    report = error.detailed()
    assert "Error Type: directory_conflict" in report
    assert "Recoverable: true" in report
    assert "Code: X" in report
    assert "Operation: create_file" in report
    assert report.index("  name: flow") < report.index("  version: 1.0.0")


def test_wrap_error_inherits_from_wrapped_diagram_error() -> None:
    inner = DiagramError(ErrorType.VALIDATION, "bad name", code="INVALID_NAME", context={"name": "x y"})
    outer = wrap_error(inner, ErrorType.VALIDATION, "rejected", operation="read_file", context={"location": "products"})
    assert outer.code == "INVALID_NAME"
    assert outer.severity is ErrorSeverity.HIGH
    assert not outer.recoverable
    assert outer.context == {"name": "x y", "location": "products"}
    assert outer.cause is inner


def test_wrap_error_overrides_and_plain_exceptions() -> None:
    outer = wrap_error(ValueError("boom"), ErrorType.FILE_SYSTEM, "wrapped", severity=ErrorSeverity.LOW)
    assert outer.severity is ErrorSeverity.LOW
    assert outer.code is None
    assert "cause=boom" in str(outer)


def test_helpers_for_plain_exceptions() -> None:
    assert is_recoverable(RuntimeError("x"))
    assert error_severity(RuntimeError("x")) is ErrorSeverity.MEDIUM
    assert not is_recoverable(DiagramError(ErrorType.PERMISSION, "denied"))
    assert error_severity(DiagramError(ErrorType.PERMISSION, "denied")) is ErrorSeverity.HIGH


def test_diagram_error_is_catchable_as_exception() -> None:
    with pytest.raises(Exception, match="gone"):
        raise DiagramError(ErrorType.FILE_NOT_FOUND, "gone")
