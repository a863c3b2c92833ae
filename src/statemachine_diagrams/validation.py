"""PlantUML state-machine validation.

Checks run in two passes over the raw content: document structure
(``@startuml``/``@enduml`` tags) and state-machine syntax between the tags.
Results are then filtered by strictness: products tolerate non-critical
errors, reported as warnings instead.

Product references are written as include directives::

    !include products/puml/<name>-<version>.puml

The older per-diagram directory form
``!include products/<name>-<version>/<name>-<version>.puml`` is still
understood but reported with a ``LEGACY_REFERENCE_PATH`` warning.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from .errors import DiagramError, ErrorType
from .models import (
    Diagram,
    DiagramType,
    Location,
    Reference,
    ReferenceType,
    ValidationStrictness,
    VerificationResult,
)
from .paths import split_name_version
from .repository import Repository

logger = logging.getLogger(__name__)

CRITICAL_CODES = frozenset(
    {
        "MISSING_START",
        "MISSING_END",
        "DUPLICATE_START",
        "DUPLICATE_END",
        "INVALID_ORDER",
        "NO_STATES",
        "SELF_REFERENCE",
        "DIRECT_CIRCULAR_REFERENCE",
        "CIRCULAR_REFERENCE",
        "REFERENCE_PARSE_ERROR",
        "UNKNOWN_REFERENCE_TYPE",
    }
)
CONVERTED_PREFIX = "(Converted from error) "

KNOWN_CONSTRUCTS = (
    "note",
    "title",
    "skinparam",
    "!define",
    "!include",
    "scale",
    "state",
    "left to right direction",
    "top to bottom direction",
)

TRANSITION_RE = re.compile(r"(.+)\s*-->\s*(.+)")
INITIAL_STATE_RE = re.compile(r"\[\*\]\s*-->\s*(.+)")
FINAL_STATE_RE = re.compile(r"(.+)\s*-->\s*\[\*\]")
STATE_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_-]*")
INCLUDE_RE = re.compile(r"!include\s+(\S+)")


class Validator(Protocol):
    """Content checks the lifecycle service depends on."""

    def validate(self, diagram: Diagram, strictness: ValidationStrictness | None = None) -> VerificationResult: ...

    def validate_references(self, diagram: Diagram) -> VerificationResult: ...

    def check_reference_cycles(self, diagram: Diagram, repository: Repository) -> VerificationResult: ...


def extract_state_name(state: str) -> str:
    """Strip a ``: label`` suffix from a state expression."""
    if state == "[*]":
        return state
    name, sep, _ = state.partition(":")
    return name.strip() if sep else state


def is_valid_state_name(state_name: str) -> bool:
    return state_name == "[*]" or STATE_NAME_RE.fullmatch(state_name) is not None


def is_known_construct(line: str) -> bool:
    lowered = line.lower()
    if any(construct in lowered for construct in KNOWN_CONSTRUCTS):
        return True
    # state descriptions ("Idle : waiting") and other labelled lines
    return ":" in line


@dataclass(frozen=True)
class _ParsedInclude:
    line: int
    target: str
    reference: Reference | None
    code: str | None = None
    message: str = ""


def _parse_include_target(target: str, diagram_type: DiagramType) -> tuple[Reference, bool]:
    """Turn a ``products/...`` include target into a reference.

    Returns:
        The reference and whether the target used the legacy directory form.

    Raises:
        DiagramError: Reference-parsing error when the target does not name a
            product diagram.
    """
    parts = target.split("/")
    extension = diagram_type.extension
    if len(parts) != 3 or parts[0] != Location.PRODUCTS.value or not parts[2].endswith(extension):
        raise DiagramError(
            ErrorType.REFERENCE_PARSING,
            "include target does not match the products layout",
            code="INVALID_REFERENCE",
            component="validator",
            context={"target": target},
        )
    directory, file_name = parts[1], parts[2]
    try:
        name, version = split_name_version(file_name[: -len(extension)])
    except DiagramError as exc:
        raise DiagramError(
            ErrorType.REFERENCE_PARSING,
            f"cannot parse product reference: {exc.message}",
            cause=exc,
            code="INVALID_REFERENCE",
            component="validator",
            context={"target": target},
        ) from exc
    if directory == diagram_type.directory:
        return Reference(name=name, version=version, type=ReferenceType.PRODUCT), False
    if directory == f"{name}-{version}":
        return Reference(name=name, version=version, type=ReferenceType.PRODUCT), True
    raise DiagramError(
        ErrorType.REFERENCE_PARSING,
        "reference directory does not match the referenced diagram",
        code="INVALID_REFERENCE",
        component="validator",
        context={"target": target, "directory": directory},
    )


def _scan_includes(content: str, diagram_type: DiagramType) -> list[_ParsedInclude]:
    parsed: list[_ParsedInclude] = []
    for idx, raw_line in enumerate(content.split("\n"), start=1):
        match = INCLUDE_RE.match(raw_line.strip())
        if match is None:
            continue
        target = match.group(1)
        # only product includes are references; stdlib and local includes are ignored
        if not target.startswith(f"{Location.PRODUCTS.value}/"):
            continue
        try:
            reference, legacy = _parse_include_target(target, diagram_type)
        except DiagramError as exc:
            parsed.append(_ParsedInclude(idx, target, None, exc.code, exc.message))
            continue
        if legacy:
            parsed.append(
                _ParsedInclude(idx, target, reference, "LEGACY_REFERENCE_PATH", "legacy per-diagram directory path")
            )
        else:
            parsed.append(_ParsedInclude(idx, target, reference))
    return parsed


def parse_references(content: str, diagram_type: DiagramType = DiagramType.PUML) -> list[Reference]:
    """Return the distinct product references found in *content*, in order of appearance."""
    references: list[Reference] = []
    seen: set[tuple[str, str]] = set()
    for include in _scan_includes(content, diagram_type):
        if include.reference is None or include.reference.key in seen:
            continue
        seen.add(include.reference.key)
        references.append(include.reference)
    return references


class PlantUMLValidator:
    """Structural and syntactic checks for PlantUML state-machine diagrams."""

    def __init__(self, default_strictness: ValidationStrictness = ValidationStrictness.IN_PROGRESS) -> None:
        self.default_strictness = ValidationStrictness(default_strictness)

    # ------------------------------------------------------------------
    # Content validation
    # ------------------------------------------------------------------

    def validate(self, diagram: Diagram, strictness: ValidationStrictness | None = None) -> VerificationResult:
        """Validate diagram content.

        Args:
            diagram: Diagram whose content is checked. Not modified.
            strictness: ``IN_PROGRESS`` keeps every error; ``PRODUCTS``
                downgrades non-critical errors to warnings. Defaults to the
                validator's configured strictness.

        Returns:
            The filtered verification result.
        """
        level = ValidationStrictness(strictness) if strictness is not None else self.default_strictness
        result = VerificationResult()
        lines = diagram.content.split("\n")
        self._check_structure(lines, result)
        self._check_syntax(lines, result)
        filtered = self.apply_strictness(result, level)
        logger.debug(
            "Validated %s at %s strictness: %d errors, %d warnings",
            diagram.label,
            level.value,
            len(filtered.errors),
            len(filtered.warnings),
        )
        return filtered

    @staticmethod
    def apply_strictness(result: VerificationResult, strictness: ValidationStrictness) -> VerificationResult:
        if strictness is not ValidationStrictness.PRODUCTS:
            return result
        filtered = VerificationResult(warnings=list(result.warnings))
        for issue in result.errors:
            if issue.code in CRITICAL_CODES:
                filtered.errors.append(issue)
            else:
                filtered.add_warning(
                    issue.code,
                    f"{CONVERTED_PREFIX}{issue.message}",
                    issue.line,
                    issue.column,
                    **issue.context,
                )
        return filtered

    def _check_structure(self, lines: list[str], result: VerificationResult) -> None:
        start_line = 0
        end_line = 0
        for idx, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if line.startswith("@startuml"):
                if start_line:
                    result.add_error("DUPLICATE_START", "Multiple @startuml tags found", idx)
                else:
                    start_line = idx
            if line.startswith("@enduml"):
                if end_line:
                    result.add_error("DUPLICATE_END", "Multiple @enduml tags found", idx)
                else:
                    end_line = idx

        if not start_line:
            result.add_error("MISSING_START", "Missing @startuml tag")
        if not end_line:
            result.add_error("MISSING_END", "Missing @enduml tag", len(lines))
        if start_line and end_line and start_line >= end_line:
            result.add_error("INVALID_ORDER", "@startuml must come before @enduml", start_line)

    def _check_syntax(self, lines: list[str], result: VerificationResult) -> None:
        in_diagram = False
        has_start_tag = False
        has_initial_state = False
        states: set[str] = set()

        def record(state_expr: str, line_no: int) -> None:
            state_name = extract_state_name(state_expr.strip())
            states.add(state_name)
            if not is_valid_state_name(state_name):
                result.add_warning(
                    "INVALID_STATE_NAME", "State name should follow naming conventions", line_no, state=state_name
                )

        for idx, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if not line or line.startswith("'"):
                continue
            if line.startswith("@startuml"):
                in_diagram = True
                has_start_tag = True
                continue
            if line.startswith("@enduml"):
                in_diagram = False
                continue
            if not in_diagram:
                continue

            if (match := INITIAL_STATE_RE.fullmatch(line)) is not None:
                has_initial_state = True
                record(match.group(1), idx)
                continue
            if (match := FINAL_STATE_RE.fullmatch(line)) is not None:
                record(match.group(1), idx)
                continue
            if (match := TRANSITION_RE.fullmatch(line)) is not None:
                record(match.group(1), idx)
                record(match.group(2), idx)
                continue

            state_name = extract_state_name(line)
            if is_valid_state_name(state_name):
                states.add(state_name)
                continue
            if is_known_construct(line):
                continue
            result.add_warning("UNKNOWN_SYNTAX", "Line contains unrecognized PlantUML syntax", idx)

        if has_start_tag and not has_initial_state:
            result.add_warning("NO_INITIAL_STATE", "State-machine diagram should have an initial state transition")
        if has_start_tag and not states:
            result.add_error("NO_STATES", "State-machine diagram must contain at least one state")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def validate_references(self, diagram: Diagram) -> VerificationResult:
        """Parse product references from the content and store them on *diagram*.

        Unparseable product includes are reported as ``INVALID_REFERENCE``
        errors and a reference to the diagram itself as ``SELF_REFERENCE``.
        Parsed references always start unresolved (empty ``path``).
        """
        result = VerificationResult()
        references: list[Reference] = []
        seen: set[tuple[str, str]] = set()
        for include in _scan_includes(diagram.content, diagram.diagram_type):
            if include.reference is None:
                result.add_error(
                    include.code or "INVALID_REFERENCE", include.message, include.line, target=include.target
                )
                continue
            if include.code is not None:
                result.add_warning(include.code, include.message, include.line, target=include.target)
            reference = include.reference
            if reference.key == (diagram.name, diagram.version):
                result.add_error(
                    "SELF_REFERENCE", "State-machine diagram cannot reference itself", include.line, target=include.target
                )
                continue
            if reference.key in seen:
                result.add_warning(
                    "DUPLICATE_REFERENCE",
                    f"Product reference '{reference.name}-{reference.version}' is included more than once",
                    include.line,
                )
                continue
            seen.add(reference.key)
            references.append(reference)
        diagram.references = references
        return result

    def check_reference_cycles(self, diagram: Diagram, repository: Repository) -> VerificationResult:
        """Follow product references through *repository* and report cycles.

        A reference chain that returns to *diagram* after one hop is a
        ``DIRECT_CIRCULAR_REFERENCE``; longer loops, including loops between
        other products reachable from *diagram*, are ``CIRCULAR_REFERENCE``.
        Missing targets are left to reference resolution.
        """
        result = VerificationResult()
        references = diagram.references or parse_references(diagram.content, diagram.diagram_type)
        origin = (diagram.name, diagram.version)
        self._walk_references(diagram.diagram_type, references, repository, origin, [origin], set(), result)
        return result

    def _walk_references(
        self,
        diagram_type: DiagramType,
        references: list[Reference],
        repository: Repository,
        origin: tuple[str, str],
        chain: list[tuple[str, str]],
        done: set[tuple[str, str]],
        result: VerificationResult,
    ) -> None:
        # done holds products whose references were already walked in full
        for reference in references:
            if reference.type is not ReferenceType.PRODUCT:
                result.add_error("UNKNOWN_REFERENCE_TYPE", f"Unknown reference type for '{reference.name}'")
                continue
            key = reference.key
            path_text = " -> ".join(f"{name}-{version}" for name, version in [*chain, key])
            if key == origin:
                if len(chain) == 2:
                    result.add_error(
                        "DIRECT_CIRCULAR_REFERENCE",
                        f"Direct circular reference: '{chain[1][0]}' references '{origin[0]}'",
                        chain=path_text,
                    )
                elif len(chain) > 2:
                    result.add_error("CIRCULAR_REFERENCE", f"Circular reference detected: {path_text}", chain=path_text)
                continue
            if key in chain:
                result.add_error("CIRCULAR_REFERENCE", f"Circular reference detected: {path_text}", chain=path_text)
                continue
            if key in done:
                continue
            try:
                target = repository.read_diagram(diagram_type, reference.name, reference.version, Location.PRODUCTS)
            except DiagramError as exc:
                done.add(key)
                if exc.error_type is not ErrorType.FILE_NOT_FOUND:
                    result.add_warning(
                        "REFERENCE_READ_ERROR",
                        f"Referenced diagram '{reference.name}-{reference.version}' cannot be read: {exc.message}",
                        reference_name=reference.name,
                        reference_version=reference.version,
                    )
                continue
            nested = parse_references(target.content, diagram_type)
            self._walk_references(diagram_type, nested, repository, origin, [*chain, key], done, result)
            done.add(key)
