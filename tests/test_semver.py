from __future__ import annotations

import pytest
from packaging.version import Version

from npm_lens.semver import (
    diff,
    intersects,
    is_valid_range,
    parse_range,
    parse_version,
    satisfies,
    sort_versions,
)


def test_parse_version_accepts_prefix_and_prerelease() -> None:
    """
    完整版本可带 v/= 前缀；预发布标签映射为 PEP 440 预发布。
    """
    assert parse_version("v18.19.1") == Version("18.19.1")
    assert parse_version("=1.2.3") == Version("1.2.3")
    assert parse_version("2.0.0-beta.1") == Version("2.0.0b1")
    assert parse_version("18") is None
    assert parse_version("not-a-version") is None
    assert parse_version(None) is None


@pytest.mark.parametrize(
    ("rng", "inside", "outside"),
    [
        ("^18.2.0", ["18.2.0", "18.99.0"], ["18.1.9", "19.0.0"]),
        ("~18.2.0", ["18.2.0", "18.2.9"], ["18.3.0"]),
        ("^0.2.3", ["0.2.3", "0.2.9"], ["0.3.0"]),
        ("18.x", ["18.0.0", "18.19.1"], ["17.9.9", "19.0.0"]),
        ("16.x || >=20", ["16.20.2", "20.0.0", "22.1.0"], ["18.0.0"]),
        (">= 16", ["16.0.0", "22.0.0"], ["15.9.9"]),
        ("14.17.0 - 18", ["14.17.0", "18.19.1"], ["14.16.9", "19.0.0"]),
        (">=16.0.0 <=18.9.9", ["16.0.0", "18.9.9"], ["18.10.0"]),
        ("*", ["0.0.1", "22.0.0"], []),
        (">18.0.0", ["18.0.1"], ["18.0.0"]),
        ("<=18", ["18.19.1"], ["19.0.0"]),
    ],
)
def test_satisfies_common_engine_ranges(rng: str, inside: list[str], outside: list[str]) -> None:
    """
    engines 字段里常见的写法应与 npm 语义一致。
    """
    for v in inside:
        assert satisfies(v, rng), (v, rng)
    for v in outside:
        assert not satisfies(v, rng), (v, rng)


def test_prerelease_only_matches_same_tuple_by_default() -> None:
    """
    默认情况下预发布版本只匹配同一 release 上带预发布标签的比较条件。
    """
    assert not satisfies("20.0.0-rc.1", ">=18.0.0")
    assert satisfies("20.0.0-rc.1", ">=18.0.0", include_prerelease=True)
    assert satisfies("20.0.0-rc.2", ">=20.0.0-rc.1")


def test_invalid_ranges_are_rejected() -> None:
    assert parse_range("lol >= what") is None
    assert not is_valid_range(">=abc")
    assert not is_valid_range(None)
    assert is_valid_range("")
    assert not satisfies("18.0.0", "garbage!!")


def test_intersects_interval_algebra() -> None:
    """
    交集判断应考虑包含/排他边界以及 || 分支。
    """
    assert intersects(">=18.0.0 <=20.0.0", "^20")
    assert not intersects("<18.0.0", ">=18.0.0")
    assert intersects("<=18.0.0", ">=18.0.0")
    assert not intersects("<16.0.0", ">18.0.0")
    assert intersects("14.x || 22.x", ">=21")
    assert not intersects(">=18.0.0", "not a range")


def test_non_pep440_prerelease_tags_sort_below_release() -> None:
    """
    next/canary/纯数字等预发布标签也能解析，并且始终排在对应正式版本之前。
    """
    next_1 = parse_version("1.0.0-next.1")
    next_2 = parse_version("1.0.0-next.2")
    zero = parse_version("2.0.0-0")
    one = parse_version("2.0.0-1")
    assert next_1 is not None and next_2 is not None and zero is not None and one is not None
    assert next_1.is_prerelease
    assert next_1 < next_2 < Version("1.0.0")
    assert zero < one < Version("2.0.0")
    assert parse_version("0.0.0-canary-abc123") is not None


def test_numeric_prerelease_obeys_prerelease_rule() -> None:
    assert not satisfies("2.0.0-1", ">=1.0.0")
    assert satisfies("2.0.0-1", ">=2.0.0-0")
    assert not satisfies("2.0.0-0", "^1.0.0", include_prerelease=True)
    assert sort_versions(["2.0.0", "2.0.0-0", "1.0.0-next.3"], reverse=True) == ["2.0.0", "2.0.0-0", "1.0.0-next.3"]


def test_diff_levels() -> None:
    assert diff(Version("1.0.0"), Version("2.0.0")) == "major"
    assert diff(Version("1.0.0"), Version("1.1.0")) == "minor"
    assert diff(Version("1.0.0"), Version("1.0.1")) == "patch"
    assert diff(Version("1.0.0"), Version("2.0.0b1")) == "premajor"
    assert diff(Version("2.0.0b1"), Version("2.0.0b2")) == "prerelease"
    assert diff(Version("1.0.0"), Version("1.0.0")) is None


def test_sort_versions_drops_invalid() -> None:
    assert sort_versions(["1.10.0", "1.2.0", "junk", "1.2.0-rc.1"]) == ["1.2.0-rc.1", "1.2.0", "1.10.0"]
    assert sort_versions(["1.0.0", "2.0.0"], reverse=True) == ["2.0.0", "1.0.0"]
