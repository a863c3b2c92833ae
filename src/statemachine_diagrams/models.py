from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DiagramType(str, Enum):
    PUML = "puml"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def directory(self) -> str:
        return self.value


class ValidationStrictness(str, Enum):
    IN_PROGRESS = "in-progress"  # errors and warnings block
    PRODUCTS = "products"  # non-critical errors downgraded to warnings


class Location(str, Enum):
    IN_PROGRESS = "in-progress"
    PRODUCTS = "products"

    @property
    def strictness(self) -> ValidationStrictness:
        if self is Location.PRODUCTS:
            return ValidationStrictness.PRODUCTS
        return ValidationStrictness.IN_PROGRESS


class ReferenceType(str, Enum):
    PRODUCT = "product"


def utc_now() -> datetime:
    return datetime.now(UTC)


class DiagramMetadata(BaseModel):
    """Timestamps and descriptive fields attached to a diagram."""

    created_at: datetime = Field(default_factory=utc_now)
    modified_at: datetime = Field(default_factory=utc_now)
    author: str | None = None
    tags: list[str] = Field(default_factory=list)


@dataclass
class Reference:
    """Link from one diagram to a product diagram.

    ``path`` stays empty until the service resolves the reference against
    the products tree.
    """

    name: str
    version: str
    type: ReferenceType = ReferenceType.PRODUCT
    path: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return self.name, self.version


@dataclass
class Diagram:
    name: str
    version: str
    content: str
    location: Location = Location.IN_PROGRESS
    diagram_type: DiagramType = DiagramType.PUML
    references: list[Reference] = field(default_factory=list)
    metadata: DiagramMetadata = field(default_factory=DiagramMetadata)

    @property
    def identity(self) -> tuple[DiagramType, str, str]:
        return self.diagram_type, self.name, self.version

    @property
    def label(self) -> str:
        return f"{self.name}-{self.version}"


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    line: int = 1
    column: int = 1
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def add_error(self, code: str, message: str, line: int = 1, column: int = 1, **context: Any) -> None:
        self.errors.append(ValidationIssue(code, message, line, column, dict(context)))

    def add_warning(self, code: str, message: str, line: int = 1, column: int = 1, **context: Any) -> None:
        self.warnings.append(ValidationIssue(code, message, line, column, dict(context)))

    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]
