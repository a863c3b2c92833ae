from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from .errors import DiagramError, ErrorType
from .models import Diagram, DiagramMetadata, DiagramType, Location
from .paths import PathManager
from .semver import parse_version
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


class Repository(Protocol):
    """Storage contract the lifecycle service depends on."""

    def read_diagram(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> Diagram: ...

    def write_diagram(self, diagram: Diagram) -> None: ...

    def exists(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> bool: ...

    def list_diagrams(self, diagram_type: DiagramType, location: Location) -> list[Diagram]: ...

    def move_diagram(
        self,
        diagram_type: DiagramType,
        name: str,
        version: str,
        source: Location,
        destination: Location,
    ) -> None: ...

    def delete_diagram(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> None: ...

    def create_directory(self, path: Path) -> None: ...

    def directory_exists(self, path: Path) -> bool: ...


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) into place.  Newlines are written verbatim.
    """
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _read_text_verbatim(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def _stat_or_none(path: Path) -> os.stat_result | None:
    try:
        return os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return None


def _fs_error(message: str, exc: BaseException | None, *, operation: str, **context: object) -> DiagramError:
    return DiagramError(
        ErrorType.FILE_SYSTEM,
        message,
        cause=exc,
        operation=operation,
        component="repository",
        context=dict(context),
    )


# ---------------------------------------------------------------------------
# FilesystemRepository
# ---------------------------------------------------------------------------


class FilesystemRepository:
    """Diagram store over a flat ``<root>/<location>/<typeDir>/`` directory tree.

    Content is stored verbatim as UTF-8.  Writes go through a temp file and
    ``os.replace`` so readers never observe a partial diagram.  Metadata is
    derived from the file's mtime; nothing besides the diagram files (and
    optional ``.bak`` copies) is persisted.
    """

    def __init__(self, settings: RuntimeSettings | None = None, *, path_manager: PathManager | None = None) -> None:
        self.settings = settings if settings is not None else RuntimeSettings()
        self.path_manager = path_manager if path_manager is not None else PathManager(self.settings.root_directory)
        logger.debug("FilesystemRepository initialized at %s", self.path_manager.root_path)

    @property
    def max_file_size(self) -> int:
        return self.settings.max_file_size

    def _check_size(self, size: int, path: Path, *, operation: str) -> None:
        if size > self.max_file_size:
            error = _fs_error(
                "content size exceeds maximum allowed",
                None,
                operation=operation,
                file_path=str(path),
                size=size,
                max_size=self.max_file_size,
            )
            error.code = "SIZE_EXCEEDED"
            raise error

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_diagram(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> Diagram:
        """Read a diagram from disk.

        Returns:
            The diagram with ``created_at`` and ``modified_at`` taken from
            the file mtime and an empty reference list.

        Raises:
            DiagramError: ``FILE_NOT_FOUND`` if absent, ``FILE_SYSTEM`` on I/O
                failure or size violation, ``CORRUPTION`` on non-UTF-8 data,
                ``VALIDATION`` on unsafe identifiers.
        """
        path = self.path_manager.file_path(diagram_type, name, version, location)
        try:
            info = _stat_or_none(path)
        except OSError as exc:
            raise _fs_error("failed to check file existence", exc, operation="read_diagram", file_path=str(path)) from exc
        if info is None or not stat.S_ISREG(info.st_mode):
            raise DiagramError(
                ErrorType.FILE_NOT_FOUND,
                "diagram file not found",
                operation="read_diagram",
                component="repository",
                context={"name": name, "version": version, "location": Location(location).value, "file_path": str(path)},
            )
        self._check_size(info.st_size, path, operation="read_diagram")

        try:
            content = _read_text_verbatim(path)
        except FileNotFoundError as exc:
            raise DiagramError(
                ErrorType.FILE_NOT_FOUND,
                "diagram file not found",
                cause=exc,
                operation="read_diagram",
                component="repository",
                context={"file_path": str(path)},
            ) from exc
        except UnicodeDecodeError as exc:
            raise DiagramError(
                ErrorType.CORRUPTION,
                "diagram file contains invalid UTF-8 data",
                cause=exc,
                operation="read_diagram",
                component="repository",
                context={"file_path": str(path)},
            ) from exc
        except OSError as exc:
            raise _fs_error("failed to read diagram file", exc, operation="read_diagram", file_path=str(path)) from exc
        self._check_size(len(content.encode("utf-8")), path, operation="read_diagram")

        modified_at = datetime.fromtimestamp(info.st_mtime, UTC)
        logger.debug("Read %s (%d bytes)", path, info.st_size)
        return Diagram(
            name=name,
            version=version,
            content=content,
            location=Location(location),
            diagram_type=DiagramType(diagram_type),
            references=[],
            metadata=DiagramMetadata(created_at=modified_at, modified_at=modified_at),
        )

    def exists(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> bool:
        path = self.path_manager.file_path(diagram_type, name, version, location)
        try:
            info = _stat_or_none(path)
        except OSError as exc:
            raise _fs_error("failed to check file existence", exc, operation="exists", file_path=str(path)) from exc
        return info is not None and stat.S_ISREG(info.st_mode)

    def list_diagrams(self, diagram_type: DiagramType, location: Location) -> list[Diagram]:
        """Return every readable diagram in *location*, sorted by name then version.

        Entries whose file name does not parse (temp files, backups, foreign
        files) or that cannot be read are skipped.
        """
        directory = self.path_manager.location_path(location, diagram_type)
        if not self.directory_exists(directory):
            return []
        try:
            with os.scandir(directory) as entries:
                file_names = sorted(entry.name for entry in entries if entry.is_file())
        except OSError as exc:
            raise _fs_error(
                "failed to read location directory", exc, operation="list_diagrams", location_path=str(directory)
            ) from exc

        diagrams: list[Diagram] = []
        for file_name in file_names:
            try:
                info = self.path_manager.parse_file_name(diagram_type, file_name)
            except DiagramError as exc:
                if exc.code == "INVALID_EXTENSION":
                    # temp files, backups
                    logger.debug("Skipping %s in %s", file_name, directory)
                else:
                    logger.warning("Skipping unparseable diagram file %s in %s: %s", file_name, directory, exc.message)
                continue
            try:
                diagrams.append(self.read_diagram(diagram_type, info.name, info.version, location))
            except DiagramError as exc:
                logger.warning("Skipping unreadable diagram %s: %s", file_name, exc)
        diagrams.sort(key=lambda diagram: (diagram.name, parse_version(diagram.version)))
        return diagrams

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_diagram(self, diagram: Diagram) -> None:
        """Persist *diagram*, creating its directory and overwriting any existing file.

        When backups are enabled an existing file is first copied to a
        sibling ``<file>.bak``.
        """
        path = self.path_manager.file_path(diagram.diagram_type, diagram.name, diagram.version, diagram.location)
        self._check_size(len(diagram.content.encode("utf-8")), path, operation="write_diagram")
        self.create_directory(path.parent)
        try:
            if self.settings.backup_enabled and path.is_file():
                backup_path = path.with_name(path.name + BACKUP_SUFFIX)
                shutil.copy2(path, backup_path)
                logger.debug("Backed up %s to %s", path, backup_path)
            _atomic_write_text(path, diagram.content)
        except OSError as exc:
            raise _fs_error("failed to write diagram file", exc, operation="write_diagram", file_path=str(path)) from exc
        logger.debug("Wrote %s", path)

    def move_diagram(
        self,
        diagram_type: DiagramType,
        name: str,
        version: str,
        source: Location,
        destination: Location,
    ) -> None:
        """Move a diagram between locations without overwriting the destination."""
        if Location(source) is Location(destination):
            raise DiagramError(
                ErrorType.VALIDATION,
                "source and destination locations cannot be the same",
                code="INVALID_LOCATION",
                operation="move_diagram",
                component="repository",
                context={"location": Location(source).value},
            )
        source_path = self.path_manager.file_path(diagram_type, name, version, source)
        destination_path = self.path_manager.file_path(diagram_type, name, version, destination)
        if not self.exists(diagram_type, name, version, source):
            raise DiagramError(
                ErrorType.FILE_NOT_FOUND,
                "source diagram not found",
                operation="move_diagram",
                component="repository",
                context={"name": name, "version": version, "location": Location(source).value},
            )
        if self.exists(diagram_type, name, version, destination):
            raise DiagramError(
                ErrorType.FILE_CONFLICT,
                "destination diagram already exists",
                operation="move_diagram",
                component="repository",
                context={"name": name, "version": version, "location": Location(destination).value},
            )
        self.create_directory(destination_path.parent)
        try:
            os.rename(source_path, destination_path)
        except OSError as exc:
            raise _fs_error(
                "failed to move diagram file",
                exc,
                operation="move_diagram",
                source_path=str(source_path),
                destination_path=str(destination_path),
            ) from exc
        logger.debug("Moved %s to %s", source_path, destination_path)

    def delete_diagram(self, diagram_type: DiagramType, name: str, version: str, location: Location) -> None:
        path = self.path_manager.file_path(diagram_type, name, version, location)
        try:
            os.remove(path)
        except FileNotFoundError as exc:
            raise DiagramError(
                ErrorType.FILE_NOT_FOUND,
                "diagram file not found",
                cause=exc,
                operation="delete_diagram",
                component="repository",
                context={"name": name, "version": version, "location": Location(location).value},
            ) from exc
        except OSError as exc:
            raise _fs_error("failed to delete diagram file", exc, operation="delete_diagram", file_path=str(path)) from exc
        backup_path = path.with_name(path.name + BACKUP_SUFFIX)
        try:
            backup_path.unlink(missing_ok=True)
        except OSError as exc:
            raise _fs_error(
                "failed to delete diagram backup", exc, operation="delete_diagram", file_path=str(backup_path)
            ) from exc
        logger.debug("Deleted %s", path)

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def create_directory(self, path: Path) -> None:
        resolved = self.path_manager.validate_path(path)
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _fs_error("failed to create directory", exc, operation="create_directory", path=str(path)) from exc

    def directory_exists(self, path: Path) -> bool:
        resolved = self.path_manager.validate_path(path)
        try:
            info = _stat_or_none(resolved)
        except OSError as exc:
            raise _fs_error(
                "failed to check directory existence", exc, operation="directory_exists", path=str(path)
            ) from exc
        return info is not None and stat.S_ISDIR(info.st_mode)
