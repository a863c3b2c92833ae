import pytest

from statemachine_diagrams import DiagramError, ErrorType, Version, compare_versions, is_valid_version, parse_version


def test_parse_version_with_and_without_prerelease() -> None:
    assert parse_version("1.2.3") == Version(1, 2, 3)
    assert parse_version("0.10.0-beta.1") == Version(0, 10, 0, "beta.1")
    assert parse_version("2.0.0-rc-1").prerelease == "rc-1"


@pytest.mark.parametrize("value", ["v1.0.0", "1.0.0 ", " 1.0.0", "1.0", "1.0.0.0", "1.0.0-", "1.0.0-beta_1", "", "a.b.c"])
def test_parse_version_is_strict(value: str) -> None:
    with pytest.raises(DiagramError) as excinfo:
        parse_version(value)
    assert excinfo.value.error_type is ErrorType.VERSION_PARSING
    assert excinfo.value.code == "INVALID_VERSION"
    assert not is_valid_version(value)


def test_version_string_is_inverse_of_parse() -> None:
    for text in ("0.0.0", "1.2.3", "10.20.30-alpha", "1.0.0-beta.1", "3.1.4-rc.2-hotfix"):
        assert str(parse_version(text)) == text


def test_compare_versions_orders_core_numerically() -> None:
    assert compare_versions(parse_version("1.9.0"), parse_version("1.10.0")) == -1
    assert compare_versions(parse_version("2.0.0"), parse_version("1.99.99")) == 1
    assert compare_versions(parse_version("1.0.1"), parse_version("1.0.1")) == 0


def test_release_sorts_after_prerelease() -> None:
    release = parse_version("1.0.0")
    beta = parse_version("1.0.0-beta")
    assert compare_versions(release, beta) == 1
    assert compare_versions(beta, release) == -1
    assert compare_versions(parse_version("1.0.0-alpha"), beta) == -1


def test_compare_versions_is_antisymmetric() -> None:
    versions = [parse_version(v) for v in ("0.1.0", "1.0.0-alpha", "1.0.0-beta", "1.0.0", "1.0.1", "2.0.0-rc.1")]
    for left in versions:
        assert compare_versions(left, left) == 0
        for right in versions:
            assert compare_versions(left, right) == -compare_versions(right, left)


def test_versions_sort_with_total_ordering() -> None:
    values = ["1.0.0", "0.9.0", "1.0.0-rc.1", "1.0.0-beta"]
    assert [str(v) for v in sorted(parse_version(v) for v in values)] == ["0.9.0", "1.0.0-beta", "1.0.0-rc.1", "1.0.0"]
    assert parse_version("1.0.0-beta").is_prerelease
