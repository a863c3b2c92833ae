"""Diagram lifecycle service.

The service composes a :class:`Repository` and a :class:`Validator` and owns
every lifecycle rule: a ``(type, name, version)`` exists in at most one
location, only in-progress diagrams are edited, and promotion is the only way
into products.  Mutations run under the writer side of a process-wide
readers-writer lock; reads share the reader side.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

from .canonical import content_fingerprint
from .errors import DiagramError, ErrorSeverity, ErrorType, wrap_error
from .locking import ReadWriteLock
from .models import (
    Diagram,
    DiagramMetadata,
    DiagramType,
    Location,
    ReferenceType,
    ValidationStrictness,
    VerificationResult,
    utc_now,
)
from .paths import PathManager
from .repository import FilesystemRepository, Repository
from .settings import RuntimeSettings, apply_log_level
from .validation import PlantUMLValidator, Validator

logger = logging.getLogger(__name__)

COMPONENT = "service"


class DiagramService:
    """Thread-safe CRUD, validation, promotion and reference resolution."""

    def __init__(
        self,
        repository: Repository,
        validator: Validator,
        settings: RuntimeSettings | None = None,
        *,
        path_manager: PathManager | None = None,
    ) -> None:
        self.settings = settings if settings is not None else RuntimeSettings()
        self.repository = repository
        self.validator = validator
        self.path_manager = path_manager if path_manager is not None else PathManager(self.settings.root_directory)
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Input checks and error tagging
    # ------------------------------------------------------------------

    def _error(
        self,
        error_type: ErrorType,
        message: str,
        operation: str,
        *,
        code: str | None = None,
        cause: BaseException | None = None,
        **context: Any,
    ) -> DiagramError:
        return DiagramError(
            error_type,
            message,
            cause=cause,
            code=code,
            operation=operation,
            component=COMPONENT,
            context=context,
        )

    def _rewrap(self, exc: DiagramError, operation: str, **context: Any) -> DiagramError:
        """Tag a lower-layer error with this operation, keeping its kind and code."""
        return wrap_error(exc, exc.error_type, exc.message, operation=operation, component=COMPONENT, context=context)

    def _diagram_type(self, value: DiagramType | str, operation: str) -> DiagramType:
        try:
            return DiagramType(value)
        except ValueError as exc:
            raise self._error(
                ErrorType.VALIDATION, f"unsupported diagram type: {value!r}", operation, code="INVALID_TYPE", cause=exc
            ) from exc

    def _location(self, value: Location | str, operation: str) -> Location:
        try:
            return Location(value)
        except ValueError as exc:
            raise self._error(
                ErrorType.VALIDATION, f"unknown location: {value!r}", operation, code="INVALID_LOCATION", cause=exc
            ) from exc

    def _check_identity(self, diagram_type: DiagramType, name: str, version: str, operation: str) -> None:
        """Validate name, version and the synthesized path before any storage call."""
        try:
            self.path_manager.file_path(diagram_type, name, version, Location.IN_PROGRESS)
        except DiagramError as exc:
            logger.warning("%s rejected %r %r: %s", operation, name, version, exc.message)
            raise self._rewrap(exc, operation, name=name, version=version) from exc

    def _check_content(self, content: str, operation: str, name: str, version: str) -> None:
        if not content:
            raise self._error(
                ErrorType.VALIDATION,
                "content cannot be empty",
                operation,
                code="EMPTY_CONTENT",
                name=name,
                version=version,
            )

    def _exists(self, diagram_type: DiagramType, name: str, version: str, location: Location, operation: str) -> bool:
        try:
            return self.repository.exists(diagram_type, name, version, location)
        except DiagramError as exc:
            logger.error("%s: existence check failed for %s-%s in %s: %s", operation, name, version, location.value, exc)
            raise self._rewrap(exc, operation, name=name, version=version, location=location.value) from exc

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_file(
        self,
        diagram_type: DiagramType | str,
        name: str,
        version: str,
        content: str,
        location: Location | str = Location.IN_PROGRESS,
    ) -> Diagram:
        """Create a new in-progress diagram.

        Args:
            diagram_type: Diagram type tag.
            name: Diagram name.
            version: Semantic version string.
            content: Diagram text, stored verbatim.
            location: Must be ``IN_PROGRESS``; products are only reachable by
                promotion.

        Returns:
            The stored diagram with fresh ``created_at``/``modified_at``.

        Raises:
            DiagramError: ``VALIDATION`` for bad input or a products target,
                ``DIRECTORY_CONFLICT`` when the identity already exists in any
                location, ``FILE_SYSTEM`` on storage failure.
        """
        operation = "create_file"
        with self._lock.write_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            self._check_identity(diagram_type, name, version, operation)
            self._check_content(content, operation, name, version)
            target = self._location(location, operation)

            for existing in (Location.IN_PROGRESS, Location.PRODUCTS):
                if self._exists(diagram_type, name, version, existing, operation):
                    logger.warning("Cannot create %s-%s: already exists in %s", name, version, existing.value)
                    raise self._error(
                        ErrorType.DIRECTORY_CONFLICT,
                        f"diagram already exists in {existing.value}",
                        operation,
                        name=name,
                        version=version,
                        location=existing.value,
                    )
            if target is not Location.IN_PROGRESS:
                raise self._error(
                    ErrorType.VALIDATION,
                    "diagrams can only be created in-progress; use promotion to reach products",
                    operation,
                    code="INVALID_LOCATION",
                    name=name,
                    version=version,
                    location=target.value,
                )

            now = utc_now()
            diagram = Diagram(
                name=name,
                version=version,
                content=content,
                location=Location.IN_PROGRESS,
                diagram_type=diagram_type,
                metadata=DiagramMetadata(created_at=now, modified_at=now),
            )
            try:
                self.repository.write_diagram(diagram)
            except DiagramError as exc:
                logger.error("Failed to write %s: %s", diagram.label, exc)
                raise self._rewrap(exc, operation, name=name, version=version, location=Location.IN_PROGRESS.value) from exc
            logger.info("Created %s in %s", diagram.label, Location.IN_PROGRESS.value)
            return diagram

    def read_file(
        self,
        diagram_type: DiagramType | str,
        name: str,
        version: str,
        location: Location | str,
    ) -> Diagram:
        operation = "read_file"
        with self._lock.read_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            self._check_identity(diagram_type, name, version, operation)
            location = self._location(location, operation)
            return self._read(diagram_type, name, version, location, operation)

    def _read(
        self,
        diagram_type: DiagramType,
        name: str,
        version: str,
        location: Location,
        operation: str,
    ) -> Diagram:
        try:
            return self.repository.read_diagram(diagram_type, name, version, location)
        except DiagramError as exc:
            if exc.error_type is ErrorType.FILE_NOT_FOUND:
                logger.warning("%s: %s-%s not found in %s", operation, name, version, location.value)
            else:
                logger.error("%s: failed to read %s-%s from %s: %s", operation, name, version, location.value, exc)
            raise self._rewrap(exc, operation, name=name, version=version, location=location.value) from exc

    def update_in_progress_file(self, diagram: Diagram) -> None:
        """Write new content for an existing in-progress diagram.

        ``created_at`` is kept as carried by *diagram*; ``modified_at`` is
        refreshed on the passed object once the write succeeds.
        """
        operation = "update_in_progress_file"
        with self._lock.write_locked():
            diagram_type = self._diagram_type(diagram.diagram_type, operation)
            self._check_identity(diagram_type, diagram.name, diagram.version, operation)
            self._check_content(diagram.content, operation, diagram.name, diagram.version)
            location = self._location(diagram.location, operation)
            if location is not Location.IN_PROGRESS:
                logger.warning("Refusing to update %s in %s", diagram.label, location.value)
                raise self._error(
                    ErrorType.VALIDATION,
                    "only in-progress diagrams can be updated",
                    operation,
                    code="INVALID_LOCATION",
                    name=diagram.name,
                    version=diagram.version,
                    location=location.value,
                )
            if not self._exists(diagram_type, diagram.name, diagram.version, location, operation):
                logger.warning("Cannot update %s: not found in %s", diagram.label, location.value)
                raise self._error(
                    ErrorType.FILE_NOT_FOUND,
                    "diagram does not exist in in-progress",
                    operation,
                    name=diagram.name,
                    version=diagram.version,
                    location=location.value,
                )

            metadata = diagram.metadata.model_copy(update={"modified_at": utc_now()})
            try:
                self.repository.write_diagram(dataclasses.replace(diagram, metadata=metadata))
            except DiagramError as exc:
                logger.error("Failed to update %s: %s", diagram.label, exc)
                raise self._rewrap(
                    exc, operation, name=diagram.name, version=diagram.version, location=location.value
                ) from exc
            diagram.metadata = metadata
            logger.info("Updated %s in %s", diagram.label, location.value)

    def delete_file(
        self,
        diagram_type: DiagramType | str,
        name: str,
        version: str,
        location: Location | str,
    ) -> None:
        operation = "delete_file"
        with self._lock.write_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            self._check_identity(diagram_type, name, version, operation)
            location = self._location(location, operation)
            if not self._exists(diagram_type, name, version, location, operation):
                logger.warning("Cannot delete %s-%s: not found in %s", name, version, location.value)
                raise self._error(
                    ErrorType.FILE_NOT_FOUND,
                    f"diagram does not exist in {location.value}",
                    operation,
                    name=name,
                    version=version,
                    location=location.value,
                )
            try:
                self.repository.delete_diagram(diagram_type, name, version, location)
            except DiagramError as exc:
                logger.error("Failed to delete %s-%s from %s: %s", name, version, location.value, exc)
                raise self._rewrap(exc, operation, name=name, version=version, location=location.value) from exc
            logger.info("Deleted %s-%s from %s", name, version, location.value)

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    def promote_to_products_file(self, diagram_type: DiagramType | str, name: str, version: str) -> None:
        """Move a validated diagram from in-progress to products.

        The diagram must exist in-progress, must not exist in products and
        must validate without errors at in-progress strictness (warnings are
        allowed).  After the move the service checks that the diagram is in
        products only and that its content survived unchanged.  A failed check
        triggers a move back to in-progress and a ``FILE_SYSTEM`` error with
        code ``PROMOTION_VERIFICATION_FAILED``; its context names the failed
        post-condition and whether the rollback succeeded.
        """
        operation = "promote_to_products_file"
        with self._lock.write_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            self._check_identity(diagram_type, name, version, operation)

            if not self._exists(diagram_type, name, version, Location.IN_PROGRESS, operation):
                logger.warning("Cannot promote %s-%s: not found in in-progress", name, version)
                raise self._error(
                    ErrorType.FILE_NOT_FOUND,
                    "diagram does not exist in in-progress",
                    operation,
                    name=name,
                    version=version,
                )
            if self._exists(diagram_type, name, version, Location.PRODUCTS, operation):
                logger.warning("Cannot promote %s-%s: already exists in products", name, version)
                raise self._error(
                    ErrorType.DIRECTORY_CONFLICT,
                    "diagram already exists in products",
                    operation,
                    name=name,
                    version=version,
                )

            diagram = self._read(diagram_type, name, version, Location.IN_PROGRESS, operation)
            result = self.validator.validate(diagram, ValidationStrictness.IN_PROGRESS)
            if result.has_errors():
                logger.warning(
                    "Promotion of %s blocked by validation errors: %s", diagram.label, ", ".join(result.error_codes())
                )
                raise self._error(
                    ErrorType.VALIDATION,
                    "diagram validation failed: cannot promote with validation errors",
                    operation,
                    code="VALIDATION_FAILED",
                    name=name,
                    version=version,
                    errors=len(result.errors),
                    warnings=len(result.warnings),
                    error_codes=result.error_codes(),
                )
            expected_fingerprint = content_fingerprint(diagram)
            logger.debug("Validated %s for promotion (fingerprint %s)", diagram.label, expected_fingerprint)

            try:
                self.repository.move_diagram(diagram_type, name, version, Location.IN_PROGRESS, Location.PRODUCTS)
            except DiagramError as exc:
                logger.error("Failed to move %s to products: %s", diagram.label, exc)
                raise wrap_error(
                    exc,
                    ErrorType.FILE_SYSTEM,
                    "failed to move diagram to products",
                    severity=ErrorSeverity.HIGH,
                    operation=operation,
                    component=COMPONENT,
                    context={"name": name, "version": version},
                ) from exc

            self._verify_promotion(diagram_type, name, version, expected_fingerprint, operation)
            logger.info("Promoted %s to products", diagram.label)

    def _verify_promotion(
        self,
        diagram_type: DiagramType,
        name: str,
        version: str,
        expected_fingerprint: str,
        operation: str,
    ) -> None:
        failed: str | None = None
        cause: DiagramError | None = None
        try:
            if not self.repository.exists(diagram_type, name, version, Location.PRODUCTS):
                failed = "products_exists"
            elif self.repository.exists(diagram_type, name, version, Location.IN_PROGRESS):
                failed = "in_progress_absent"
            else:
                promoted = self.repository.read_diagram(diagram_type, name, version, Location.PRODUCTS)
                if content_fingerprint(promoted) != expected_fingerprint:
                    failed = "content_fingerprint"
        except DiagramError as exc:
            failed = "verification_io"
            cause = exc
        if failed is None:
            return

        rollback_error = self._rollback_promotion(diagram_type, name, version)
        logger.error(
            "Promotion of %s-%s failed post-condition %s; rollback %s",
            name,
            version,
            failed,
            "succeeded" if rollback_error is None else f"failed: {rollback_error}",
        )
        raise self._error(
            ErrorType.FILE_SYSTEM,
            "promotion verification failed",
            operation,
            code="PROMOTION_VERIFICATION_FAILED",
            cause=cause,
            name=name,
            version=version,
            failed_postcondition=failed,
            rollback_succeeded=rollback_error is None,
            rollback_error=None if rollback_error is None else str(rollback_error),
        )

    def _rollback_promotion(self, diagram_type: DiagramType, name: str, version: str) -> DiagramError | None:
        """Move the diagram back to in-progress. Returns the failure, if any."""
        try:
            self.repository.move_diagram(diagram_type, name, version, Location.PRODUCTS, Location.IN_PROGRESS)
        except DiagramError as exc:
            return exc
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def validate_file(
        self,
        diagram_type: DiagramType | str,
        name: str,
        version: str,
        location: Location | str,
    ) -> VerificationResult:
        """Validate a stored diagram at the strictness of its location."""
        operation = "validate_file"
        with self._lock.read_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            self._check_identity(diagram_type, name, version, operation)
            location = self._location(location, operation)
            diagram = self._read(diagram_type, name, version, location, operation)
            return self.validator.validate(diagram, location.strictness)

    def list_all_files(self, diagram_type: DiagramType | str, location: Location | str) -> list[Diagram]:
        operation = "list_all_files"
        with self._lock.read_locked():
            diagram_type = self._diagram_type(diagram_type, operation)
            location = self._location(location, operation)
            try:
                diagrams = self.repository.list_diagrams(diagram_type, location)
            except DiagramError as exc:
                logger.error("Failed to list %s: %s", location.value, exc)
                raise self._rewrap(exc, operation, location=location.value) from exc
            logger.debug("Listed %d diagrams in %s", len(diagrams), location.value)
            return diagrams

    def resolve_file_references(self, diagram: Diagram) -> None:
        """Check that every product reference of *diagram* exists and set its path.

        References are parsed from the content when *diagram* carries none.
        Paths are assigned only once every reference resolved.

        Raises:
            DiagramError: ``REFERENCE_PARSING`` for malformed references,
                ``REFERENCE_RESOLUTION`` for a missing target (the reference
                is named in the context) or a reference cycle.
        """
        operation = "resolve_file_references"
        with self._lock.read_locked():
            diagram_type = self._diagram_type(diagram.diagram_type, operation)
            self._check_identity(diagram_type, diagram.name, diagram.version, operation)

            if not diagram.references:
                parsed = self.validator.validate_references(diagram)
                if parsed.has_errors():
                    codes = parsed.error_codes()
                    logger.warning("Reference parsing failed for %s: %s", diagram.label, ", ".join(codes))
                    raise self._error(
                        ErrorType.REFERENCE_PARSING,
                        "diagram contains invalid references",
                        operation,
                        code=codes[0],
                        name=diagram.name,
                        version=diagram.version,
                        error_codes=codes,
                    )

            resolved_paths: list[str] = []
            for reference in diagram.references:
                if reference.type is not ReferenceType.PRODUCT:
                    raise self._error(
                        ErrorType.REFERENCE_PARSING,
                        f"unknown reference type for {reference.name!r}",
                        operation,
                        code="UNKNOWN_REFERENCE_TYPE",
                        reference_name=reference.name,
                        reference_version=reference.version,
                    )
                try:
                    path = self.path_manager.file_path(diagram_type, reference.name, reference.version, Location.PRODUCTS)
                except DiagramError as exc:
                    raise wrap_error(
                        exc,
                        ErrorType.REFERENCE_PARSING,
                        f"invalid reference {reference.name!r} {reference.version!r}: {exc.message}",
                        operation=operation,
                        component=COMPONENT,
                        context={"reference_name": reference.name, "reference_version": reference.version},
                    ) from exc
                if not self._exists(diagram_type, reference.name, reference.version, Location.PRODUCTS, operation):
                    logger.warning(
                        "%s references missing product %s-%s", diagram.label, reference.name, reference.version
                    )
                    raise self._error(
                        ErrorType.REFERENCE_RESOLUTION,
                        f"product reference {reference.name}-{reference.version} not found",
                        operation,
                        name=diagram.name,
                        version=diagram.version,
                        reference_name=reference.name,
                        reference_version=reference.version,
                    )
                resolved_paths.append(str(path))

            cycles = self.validator.check_reference_cycles(diagram, self.repository)
            if cycles.has_errors():
                codes = cycles.error_codes()
                logger.warning("Reference cycle detected from %s: %s", diagram.label, cycles.errors[0].message)
                raise self._error(
                    ErrorType.REFERENCE_RESOLUTION,
                    cycles.errors[0].message,
                    operation,
                    code=codes[0],
                    name=diagram.name,
                    version=diagram.version,
                    error_codes=codes,
                )

            for reference, path in zip(diagram.references, resolved_paths):
                reference.path = path
            logger.debug("Resolved %d references for %s", len(resolved_paths), diagram.label)


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def new_service() -> DiagramService:
    """Service over the default root directory with default settings."""
    return new_service_with_config(RuntimeSettings())


def new_service_with_config(settings: RuntimeSettings) -> DiagramService:
    """Service wired to a :class:`FilesystemRepository` and :class:`PlantUMLValidator`."""
    settings = settings.normalized()
    apply_log_level(settings)
    repository = FilesystemRepository(settings)
    validator = PlantUMLValidator(settings.validation_level)
    logger.debug("Service configured with root %s", repository.path_manager.root_path)
    return DiagramService(repository, validator, settings, path_manager=repository.path_manager)


def new_service_from_env(dotenv_path: Path | None = None) -> DiagramService:
    return new_service_with_config(RuntimeSettings.from_env(dotenv_path))


def new_service_with_env_overrides(settings: RuntimeSettings) -> DiagramService:
    return new_service_with_config(settings.with_env_overrides())
