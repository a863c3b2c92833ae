"""Mapping between diagram identity and the on-disk layout.

Layout, relative to the configured root::

    in-progress/<typeDir>/<name>-<version>.<ext>
    products/<typeDir>/<name>-<version>.<ext>

Names and pre-release tags may both contain ``-``, so ``<name>-<version>``
is split from the right: the rightmost split whose suffix is a semantic
version and whose prefix is a valid name wins.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import DiagramError, ErrorType, wrap_error
from .models import DiagramType, Location
from .semver import is_valid_version, parse_version

DEFAULT_ROOT_DIRECTORY = ".go-uml-statemachine-parsers"
MAX_NAME_LENGTH = 100
NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")
RESERVED_NAMES = frozenset(
    name.lower() for name in ("in-progress", "products", "nested", ".", "..", "CON", "PRN", "AUX", "NUL")
)


@dataclass(frozen=True)
class PathInfo:
    name: str
    version: str
    location: Location | None = None


def _validation_error(message: str, code: str, **context: object) -> DiagramError:
    return DiagramError(
        ErrorType.VALIDATION,
        message,
        code=code,
        component="path_manager",
        context=dict(context),
    )


def validate_name(name: str) -> None:
    """Raise a Validation ``DiagramError`` unless *name* is a usable diagram name."""
    if not name:
        raise _validation_error("name cannot be empty", "EMPTY_NAME")
    if name.lower() in RESERVED_NAMES:
        raise _validation_error("name is reserved", "RESERVED_NAME", name=name)
    if len(name) > MAX_NAME_LENGTH:
        raise _validation_error("name is too long", "NAME_TOO_LONG", name=name, max_length=MAX_NAME_LENGTH)
    if NAME_RE.fullmatch(name) is None:
        raise _validation_error(
            "name contains invalid characters",
            "INVALID_NAME",
            name=name,
            valid_format="must start with alphanumeric and contain only alphanumeric, underscore, or hyphen",
        )


def validate_version(version: str) -> None:
    if not version:
        raise _validation_error("version cannot be empty", "EMPTY_VERSION")
    try:
        parse_version(version)
    except DiagramError as exc:
        raise wrap_error(
            exc,
            ErrorType.VALIDATION,
            f"invalid version: {version!r}",
            code="INVALID_VERSION",
            component="path_manager",
            context={"version": version},
        ) from exc


def split_name_version(base: str) -> tuple[str, str]:
    """Split ``<name>-<version>`` into its parts, scanning split points right to left.

    Raises:
        DiagramError: Validation error with the name's own code when a
            version suffix parses but the prefix is not a valid name, or
            ``INVALID_FILE_NAME`` when no suffix is a version.
    """
    parts = base.split("-")
    name_error: DiagramError | None = None
    for idx in range(len(parts) - 1, 0, -1):
        name = "-".join(parts[:idx])
        version = "-".join(parts[idx:])
        if not is_valid_version(version):
            continue
        try:
            validate_name(name)
        except DiagramError as exc:
            if name_error is None:
                name_error = exc
            continue
        return name, version
    if name_error is not None:
        raise name_error
    raise _validation_error(
        "invalid name-version format",
        "INVALID_FILE_NAME",
        value=base,
        expected_format="name-version",
    )


class PathManager:
    """Pure path arithmetic and input sanitization for one root directory."""

    def __init__(self, root_directory: str | Path = DEFAULT_ROOT_DIRECTORY) -> None:
        root = str(root_directory) or DEFAULT_ROOT_DIRECTORY
        # abspath normalizes without following symlinks.
        self.root = Path(os.path.abspath(root))

    @property
    def root_path(self) -> Path:
        return self.root

    def location_path(self, location: Location, diagram_type: DiagramType | None = None) -> Path:
        path = self.root / Location(location).value
        if diagram_type is not None:
            path = path / DiagramType(diagram_type).directory
        return path

    def build_file_name(self, diagram_type: DiagramType, name: str, version: str) -> str:
        if not name:
            raise _validation_error("name cannot be empty", "EMPTY_NAME")
        if not version:
            raise _validation_error("version cannot be empty", "EMPTY_VERSION")
        return f"{name}-{version}{DiagramType(diagram_type).extension}"

    def file_path(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> Path:
        """Return the validated on-disk path of a diagram."""
        validate_name(name)
        validate_version(version)
        path = self.location_path(location, diagram_type) / self.build_file_name(diagram_type, name, version)
        self.validate_path(path)
        return path

    def validate_name(self, name: str) -> None:
        validate_name(name)

    def validate_version(self, version: str) -> None:
        validate_version(version)

    def validate_path(self, path: str | Path) -> Path:
        """Reject traversal and paths outside the root; return the absolute path."""
        raw = str(path)
        root_text = str(self.root)
        relative_text = raw[len(root_text):] if raw.startswith(root_text) else raw
        if ".." in relative_text:
            raise _validation_error("path contains directory traversal", "PATH_TRAVERSAL", path=raw)
        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = Path(os.path.abspath(candidate))
        try:
            common = os.path.commonpath([str(self.root), str(resolved)])
        except ValueError as exc:
            raise _validation_error(
                "path is outside root directory", "PATH_TRAVERSAL", path=raw, root=root_text
            ) from exc
        if common != root_text:
            raise _validation_error("path is outside root directory", "PATH_TRAVERSAL", path=raw, root=root_text)
        return resolved

    def parse_file_name(self, diagram_type: DiagramType, file_name: str) -> PathInfo:
        if not file_name:
            raise _validation_error("file name cannot be empty", "INVALID_FILE_NAME")
        extension = DiagramType(diagram_type).extension
        if not file_name.endswith(extension):
            raise _validation_error(
                f"file must have {extension} extension",
                "INVALID_EXTENSION",
                file_name=file_name,
                expected_extension=extension,
            )
        base = file_name[: -len(extension)]
        if "-" not in base:
            raise _validation_error(
                "invalid file name format",
                "INVALID_FILE_NAME",
                file_name=file_name,
                expected_format=f"name-version{extension}",
            )
        name, version = split_name_version(base)
        return PathInfo(name=name, version=version)

    def parse_directory_name(self, dir_name: str) -> PathInfo:
        if not dir_name:
            raise _validation_error("directory name cannot be empty", "INVALID_DIRECTORY_NAME")
        if "-" not in dir_name:
            raise _validation_error(
                "invalid directory name format",
                "INVALID_DIRECTORY_NAME",
                dir_name=dir_name,
                expected_format="name-version",
            )
        name, version = split_name_version(dir_name)
        return PathInfo(name=name, version=version)

    def parse_full_path(self, diagram_type: DiagramType, full_path: str | Path) -> PathInfo:
        """Decompose ``<root>/<location>/<typeDir>/<file>`` into identity and location."""
        resolved = self.validate_path(full_path)
        relative_parts = resolved.relative_to(self.root).parts
        if len(relative_parts) != 3:
            raise _validation_error("path does not match the diagram layout", "INVALID_PATH", path=str(full_path))
        location_part, type_part, file_name = relative_parts
        try:
            location = Location(location_part)
        except ValueError as exc:
            raise _validation_error(
                "invalid location in path", "INVALID_LOCATION", path=str(full_path), location=location_part
            ) from exc
        if type_part != DiagramType(diagram_type).directory:
            raise _validation_error(
                "diagram type directory does not match",
                "INVALID_PATH",
                path=str(full_path),
                expected=DiagramType(diagram_type).directory,
            )
        info = self.parse_file_name(diagram_type, file_name)
        return PathInfo(name=info.name, version=info.version, location=location)
