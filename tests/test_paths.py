from pathlib import Path

import pytest

from statemachine_diagrams import DiagramError, DiagramType, ErrorType, Location, PathManager, split_name_version


def _code(excinfo: pytest.ExceptionInfo[DiagramError]) -> str | None:
    assert excinfo.value.error_type is ErrorType.VALIDATION
    return excinfo.value.code


def test_file_path_uses_flat_layout(tmp_path: Path) -> None:
    manager = PathManager(tmp_path)
    assert manager.file_path(DiagramType.PUML, "user-auth", "1.0.0", Location.IN_PROGRESS) == (
        tmp_path / "in-progress" / "puml" / "user-auth-1.0.0.puml"
    )
    assert manager.file_path(DiagramType.PUML, "user-auth", "1.0.0", Location.PRODUCTS) == (
        tmp_path / "products" / "puml" / "user-auth-1.0.0.puml"
    )
    assert manager.location_path(Location.PRODUCTS) == tmp_path / "products"
    assert manager.root_path == tmp_path


def test_relative_root_is_made_absolute(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    manager = PathManager(".diagrams")
    assert manager.root_path == tmp_path / ".diagrams"


def test_build_file_name_rejects_empty_parts() -> None:
    manager = PathManager()
    assert manager.build_file_name(DiagramType.PUML, "a", "1.0.0") == "a-1.0.0.puml"
    with pytest.raises(DiagramError) as excinfo:
        manager.build_file_name(DiagramType.PUML, "", "1.0.0")
    assert _code(excinfo) == "EMPTY_NAME"
    with pytest.raises(DiagramError) as excinfo:
        manager.build_file_name(DiagramType.PUML, "a", "")
    assert _code(excinfo) == "EMPTY_VERSION"


@pytest.mark.parametrize(
    ("name", "code"),
    [
        ("", "EMPTY_NAME"),
        ("x" * 101, "NAME_TOO_LONG"),
        ("-leading", "INVALID_NAME"),
        ("has space", "INVALID_NAME"),
        ("dot.name", "INVALID_NAME"),
        ("slash/name", "INVALID_NAME"),
        ("..", "RESERVED_NAME"),
    ],
)
def test_validate_name_rejections(name: str, code: str) -> None:
    with pytest.raises(DiagramError) as excinfo:
        PathManager().validate_name(name)
    assert _code(excinfo) == code


@pytest.mark.parametrize("name", ["products", "PRODUCTS", "In-Progress", "nested", "con", "Prn", "aux", "NUL"])
def test_reserved_names_rejected_regardless_of_case(name: str) -> None:
    with pytest.raises(DiagramError) as excinfo:
        PathManager().validate_name(name)
    assert _code(excinfo) == "RESERVED_NAME"


def test_valid_names_accepted() -> None:
    manager = PathManager()
    for name in ("a", "user-auth", "Order_Flow-2", "9lives", "x" * 100):
        manager.validate_name(name)


def test_validate_version_wraps_parse_failure_as_validation() -> None:
    with pytest.raises(DiagramError) as excinfo:
        PathManager().validate_version("v1.0.0")
    assert _code(excinfo) == "INVALID_VERSION"
    assert excinfo.value.cause is not None
    with pytest.raises(DiagramError) as excinfo:
        PathManager().validate_version("")
    assert _code(excinfo) == "EMPTY_VERSION"


def test_validate_path_rejects_literal_traversal(tmp_path: Path) -> None:
    manager = PathManager(tmp_path)
    for candidate in (tmp_path / "in-progress" / ".." / "x", "in-progress/../../etc", "../outside"):
        with pytest.raises(DiagramError) as excinfo:
            manager.validate_path(candidate)
        assert _code(excinfo) == "PATH_TRAVERSAL"


def test_validate_path_rejects_paths_outside_root(tmp_path: Path) -> None:
    manager = PathManager(tmp_path / "root")
    with pytest.raises(DiagramError) as excinfo:
        manager.validate_path(tmp_path / "elsewhere" / "file.puml")
    assert _code(excinfo) == "PATH_TRAVERSAL"
    # sibling directory sharing the root's prefix
    with pytest.raises(DiagramError):
        manager.validate_path(tmp_path / "root-other" / "file.puml")


def test_validate_path_accepts_relative_and_absolute_inside_root(tmp_path: Path) -> None:
    manager = PathManager(tmp_path)
    assert manager.validate_path("products/puml") == tmp_path / "products" / "puml"
    assert manager.validate_path(tmp_path / "in-progress") == tmp_path / "in-progress"
    assert manager.validate_path(tmp_path) == tmp_path


def test_parse_file_name_splits_from_the_right() -> None:
    info = PathManager().parse_file_name(DiagramType.PUML, "user-auth-system-1.0.0-beta.1.puml")
    assert (info.name, info.version) == ("user-auth-system", "1.0.0-beta.1")


@pytest.mark.parametrize(
    ("name", "version"),
    [
        ("a", "0.0.1"),
        ("user-auth", "1.0.0"),
        ("order-flow-v2", "2.1.0-rc-1"),
        ("x_y-z", "3.0.0-alpha.beta-2"),
        ("1-2-3", "1.2.3"),
    ],
)
def test_build_then_parse_file_name_returns_identity(name: str, version: str) -> None:
    manager = PathManager()
    info = manager.parse_file_name(DiagramType.PUML, manager.build_file_name(DiagramType.PUML, name, version))
    assert (info.name, info.version) == (name, version)


@pytest.mark.parametrize(
    ("file_name", "code"),
    [
        ("user-1.0.0.txt", "INVALID_EXTENSION"),
        ("noversion.puml", "INVALID_FILE_NAME"),
        ("user-latest.puml", "INVALID_FILE_NAME"),
        ("user-v1.0.0.puml", "INVALID_FILE_NAME"),
        ("products-1.0.0.puml", "RESERVED_NAME"),
        ("", "INVALID_FILE_NAME"),
    ],
)
def test_parse_file_name_rejections(file_name: str, code: str) -> None:
    with pytest.raises(DiagramError) as excinfo:
        PathManager().parse_file_name(DiagramType.PUML, file_name)
    assert _code(excinfo) == code


def test_parse_directory_name() -> None:
    manager = PathManager()
    info = manager.parse_directory_name("payment-flow-2.0.0-beta")
    assert (info.name, info.version) == ("payment-flow", "2.0.0-beta")
    with pytest.raises(DiagramError) as excinfo:
        manager.parse_directory_name("nodash")
    assert _code(excinfo) == "INVALID_DIRECTORY_NAME"


def test_split_name_version_requires_version_suffix() -> None:
    assert split_name_version("a-b-1.0.0") == ("a-b", "1.0.0")
    with pytest.raises(DiagramError) as excinfo:
        split_name_version("a-b-c")
    assert _code(excinfo) == "INVALID_FILE_NAME"


def test_parse_full_path(tmp_path: Path) -> None:
    manager = PathManager(tmp_path)
    info = manager.parse_full_path(DiagramType.PUML, tmp_path / "products" / "puml" / "user-auth-1.0.0.puml")
    assert (info.name, info.version, info.location) == ("user-auth", "1.0.0", Location.PRODUCTS)

    with pytest.raises(DiagramError) as excinfo:
        manager.parse_full_path(DiagramType.PUML, tmp_path / "archive" / "puml" / "user-auth-1.0.0.puml")
    assert _code(excinfo) == "INVALID_LOCATION"
    with pytest.raises(DiagramError) as excinfo:
        manager.parse_full_path(DiagramType.PUML, tmp_path / "products" / "user-auth-1.0.0.puml")
    assert _code(excinfo) == "INVALID_PATH"


def test_traversal_name_cannot_synthesize_a_path(tmp_path: Path) -> None:
    manager = PathManager(tmp_path)
    with pytest.raises(DiagramError) as excinfo:
        manager.file_path(DiagramType.PUML, "..", "1.0.0", Location.IN_PROGRESS)
    assert _code(excinfo) in {"PATH_TRAVERSAL", "RESERVED_NAME"}
