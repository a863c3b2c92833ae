import logging
from pathlib import Path

import pytest

from statemachine_diagrams import DEFAULT_ROOT_DIRECTORY, DiagramError, ErrorType, RuntimeSettings, ValidationStrictness
from statemachine_diagrams.settings import DEFAULT_MAX_FILE_SIZE, apply_log_level

ENV_VARS = (
    "GO_UML_ROOT_DIRECTORY",
    "GO_UML_VALIDATION_LEVEL",
    "GO_UML_BACKUP_ENABLED",
    "GO_UML_MAX_FILE_SIZE",
    "GO_UML_DEBUG_LOGGING",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep a stray ./.env from leaking into from_env()
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    settings = RuntimeSettings()
    assert settings.root_directory == DEFAULT_ROOT_DIRECTORY
    assert settings.validation_level is ValidationStrictness.IN_PROGRESS
    assert settings.backup_enabled is False
    assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE == 1024 * 1024
    assert settings.enable_debug_logging is False
    assert RuntimeSettings.from_env() == settings


def test_from_env_reads_all_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GO_UML_ROOT_DIRECTORY", "/srv/diagrams")
    monkeypatch.setenv("GO_UML_VALIDATION_LEVEL", "PRODUCTS")
    monkeypatch.setenv("GO_UML_BACKUP_ENABLED", "True")
    monkeypatch.setenv("GO_UML_MAX_FILE_SIZE", "2048")
    monkeypatch.setenv("GO_UML_DEBUG_LOGGING", "1")
    settings = RuntimeSettings.from_env()
    assert settings == RuntimeSettings(
        root_directory="/srv/diagrams",
        validation_level=ValidationStrictness.PRODUCTS,
        backup_enabled=True,
        max_file_size=2048,
        enable_debug_logging=True,
    )


@pytest.mark.parametrize("raw", ["abc", "0", "-5", "1.5"])
def test_invalid_max_file_size_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("GO_UML_MAX_FILE_SIZE", raw)
    assert RuntimeSettings.from_env().max_file_size == DEFAULT_MAX_FILE_SIZE


def test_invalid_values_fall_back_and_warn(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setenv("GO_UML_BACKUP_ENABLED", "maybe")
    monkeypatch.setenv("GO_UML_VALIDATION_LEVEL", "strict")
    with caplog.at_level(logging.WARNING, logger="statemachine_diagrams"):
        settings = RuntimeSettings.from_env()
    assert settings.backup_enabled is False
    assert settings.validation_level is ValidationStrictness.IN_PROGRESS
    assert "GO_UML_BACKUP_ENABLED" in caplog.text
    assert "GO_UML_VALIDATION_LEVEL" in caplog.text


def test_with_env_overrides_only_replaces_set_values(monkeypatch: pytest.MonkeyPatch) -> None:
    base = RuntimeSettings(root_directory="/base", backup_enabled=True, max_file_size=10)
    monkeypatch.setenv("GO_UML_MAX_FILE_SIZE", "99")
    monkeypatch.setenv("GO_UML_BACKUP_ENABLED", "f")
    merged = base.with_env_overrides()
    assert merged.root_directory == "/base"
    assert merged.max_file_size == 99
    assert merged.backup_enabled is False
    assert base.max_file_size == 10


def test_from_env_loads_dotenv_without_overriding(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    dotenv_path = tmp_path / "diagrams.env"
    dotenv_path.write_text("GO_UML_ROOT_DIRECTORY=/from/dotenv\nGO_UML_MAX_FILE_SIZE=4096\n", encoding="utf-8")
    monkeypatch.setenv("GO_UML_MAX_FILE_SIZE", "512")
    # load_dotenv writes into os.environ; register the key so monkeypatch restores it
    monkeypatch.setenv("GO_UML_ROOT_DIRECTORY", "")
    monkeypatch.delenv("GO_UML_ROOT_DIRECTORY")
    settings = RuntimeSettings.from_env(dotenv_path)
    assert settings.root_directory == "/from/dotenv"
    assert settings.max_file_size == 512


def test_normalized_rejects_bad_programmatic_values() -> None:
    with pytest.raises(DiagramError) as excinfo:
        RuntimeSettings(root_directory="  ").normalized()
    assert excinfo.value.error_type is ErrorType.CONFIGURATION
    with pytest.raises(DiagramError) as excinfo:
        RuntimeSettings(max_file_size=0).normalized()
    assert excinfo.value.error_type is ErrorType.CONFIGURATION
    assert RuntimeSettings(root_directory=" root ").normalized().root_directory == "root"


def test_apply_log_level() -> None:
    package_logger = logging.getLogger("statemachine_diagrams")
    previous = package_logger.level
    try:
        apply_log_level(RuntimeSettings(enable_debug_logging=True))
        assert package_logger.level == logging.DEBUG
        apply_log_level(RuntimeSettings())
        assert package_logger.level == logging.INFO
    finally:
        package_logger.setLevel(previous)
