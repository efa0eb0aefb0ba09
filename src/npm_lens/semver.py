"""npm semver ranges built atop packaging.version.

Supported range grammar (the subset npm uses in ``engines`` fields):

- exact and partial versions: ``18.19.1``, ``18.19``, ``18``, ``18.x``, ``*``
- comparators: ``>=``, ``>``, ``<=``, ``<``, ``=`` (optionally followed by spaces)
- caret ``^x.y.z`` and tilde ``~x.y.z`` / ``~>x.y.z``
- hyphen ranges ``x.y.z - a.b.c``
- comparator sets joined by whitespace (AND) and by ``||`` (OR)

Versions are represented as :class:`packaging.version.Version`. Semver
pre-release tags that PEP 440 understands (``-beta.1``, ``-rc.2``) map onto PEP 440
pre-releases; any other tag (``-next.1``, ``-canary.3``, ``-0``) maps onto a
``.devN`` release, which still sorts below the release itself.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from packaging.version import InvalidVersion, Version

_FULL_VERSION_RE = re.compile(
    r"^\s*v?=?\s*(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?\s*$"
)
_PARTIAL_RE = re.compile(
    r"^v?(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_TOKEN_RE = re.compile(r"^(?P<op><=|>=|<|>|=|\^|~>|~)?(?P<ver>.*)$")
_HYPHEN_RE = re.compile(r"^\s*(?P<low>\S+)\s+-\s+(?P<high>\S+)\s*$")
_OP_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~>|~)\s+")

_OPERATORS: dict[str, Callable[[Version, Version], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "=": operator.eq,
}


@dataclass(frozen=True, slots=True)
class Comparator:
    """
    单个比较条件，例如 ``>=18.0.0``。
    """

    op: str
    version: Version

    def test(self, version: Version) -> bool:
        return _OPERATORS[self.op](version, self.version)


ComparatorSet = tuple[Comparator, ...]


@dataclass(frozen=True, slots=True)
class NpmRange:
    """
    解析后的 npm 范围：多个比较集合的并集（空集合表示匹配任意版本）。
    """

    raw: str
    sets: tuple[ComparatorSet, ...]


@dataclass(frozen=True, slots=True)
class _Partial:
    major: int | None
    minor: int | None
    patch: int | None
    pre: str | None


# 字母开头的预发布标签排在纯数字标签之后（npm 的标识符比较规则）
_ALPHANUMERIC_DEV_OFFSET = 10**9


def _dev_number(pre: str) -> int:
    """
    为无法映射到 PEP 440 预发布的标签计算 devN 序号：取第一个数字标识符，
    字母开头的标签再加上固定偏移。
    """
    identifiers = pre.split(".")
    numbers = [int(i) for i in identifiers if i.isdigit()]
    first = numbers[0] if numbers else 0
    if identifiers[0].isdigit():
        return first
    return _ALPHANUMERIC_DEV_OFFSET + first


def _make_version(major: int, minor: int, patch: int, pre: str | None = None) -> Version:
    """
    由 semver 组件构造 Version。

    PEP 440 认识的预发布标签（alpha/beta/rc/dev）直接映射；其余标签（next、canary、
    纯数字等）映射为 ``X.Y.Z.devN``，保证它们始终排在正式版本之前，而不是被解析成 post release。
    """
    release = f"{major}.{minor}.{patch}"
    if not pre:
        return Version(release)
    try:
        version = Version(f"{release}-{pre}")
    except InvalidVersion:
        version = None
    if version is not None and version.is_prerelease and version.post is None and version.local is None:
        return version
    return Version(f"{release}.dev{_dev_number(pre)}")


def _lowest(major: int, minor: int, patch: int) -> Version:
    """
    返回某个 release 版本的最低预发布形式，用作排他上界（等价于 npm 的 ``X.Y.Z-0``）。
    """
    return Version(f"{major}.{minor}.{patch}.dev0")


def parse_version(raw: str | None) -> Version | None:
    """
    解析完整的 semver 版本字符串（允许前缀 v/=），无法解析时返回 None。
    """
    if not raw:
        return None
    m = _FULL_VERSION_RE.match(raw)
    if not m:
        return None
    return _make_version(int(m["major"]), int(m["minor"]), int(m["patch"]), m["pre"])


def _parse_partial(raw: str) -> _Partial | None:
    """
    解析可能不完整的版本（1、1.2、1.x、*）。
    """
    m = _PARTIAL_RE.match(raw)
    if not m:
        return None

    def part(value: str | None) -> int | None:
        if value is None or value in {"x", "X", "*"}:
            return None
        return int(value)

    major = part(m["major"])
    minor = part(m["minor"]) if major is not None else None
    patch = part(m["patch"]) if minor is not None else None
    pre = m["pre"] if patch is not None else None
    return _Partial(major=major, minor=minor, patch=patch, pre=pre)


def _floor(p: _Partial) -> Version:
    return _make_version(p.major or 0, p.minor or 0, p.patch or 0, p.pre)


def _caret(p: _Partial) -> list[Comparator] | None:
    if p.major is None:
        return None
    lower = _floor(p)
    if p.minor is None:
        upper = _lowest(p.major + 1, 0, 0)
    elif p.major > 0:
        upper = _lowest(p.major + 1, 0, 0)
    elif p.patch is None or p.minor > 0:
        upper = _lowest(0, p.minor + 1, 0)
    else:
        upper = _lowest(0, 0, p.patch + 1)
    return [Comparator(">=", lower), Comparator("<", upper)]


def _tilde(p: _Partial) -> list[Comparator] | None:
    if p.major is None:
        return None
    lower = _floor(p)
    if p.minor is None:
        upper = _lowest(p.major + 1, 0, 0)
    else:
        upper = _lowest(p.major, p.minor + 1, 0)
    return [Comparator(">=", lower), Comparator("<", upper)]


def _primitive(op: str, p: _Partial) -> list[Comparator] | None:
    """
    将 ``op`` + 部分版本展开为若干比较条件（x-range 语义）。
    """
    if p.major is None:
        if op in {"", "=", ">=", "<="}:
            return []
        # ">*" / "<*" 不匹配任何版本
        return [Comparator("<", Version("0.0.0.dev0"))]

    full = p.minor is not None and p.patch is not None
    if full:
        return [Comparator(op or "=", _floor(p))]

    major = p.major
    minor = p.minor
    if op in {"", "="}:
        upper = _lowest(major, minor + 1, 0) if minor is not None else _lowest(major + 1, 0, 0)
        return [Comparator(">=", Version(f"{major}.{minor or 0}.0")), Comparator("<", upper)]
    if op == ">=":
        return [Comparator(">=", Version(f"{major}.{minor or 0}.0"))]
    if op == ">":
        lower = Version(f"{major}.{minor + 1}.0") if minor is not None else Version(f"{major + 1}.0.0")
        return [Comparator(">=", lower)]
    if op == "<":
        return [Comparator("<", _lowest(major, minor or 0, 0))]
    if op == "<=":
        upper = _lowest(major, minor + 1, 0) if minor is not None else _lowest(major + 1, 0, 0)
        return [Comparator("<", upper)]
    return None


def _parse_token(token: str) -> list[Comparator] | None:
    m = _TOKEN_RE.match(token)
    if not m:
        return None
    op = m["op"] or ""
    partial = _parse_partial(m["ver"])
    if partial is None:
        return None
    if op == "^":
        return _caret(partial)
    if op in {"~", "~>"}:
        return _tilde(partial)
    return _primitive(op, partial)


def _parse_hyphen(low: str, high: str) -> list[Comparator] | None:
    lo = _parse_partial(low)
    hi = _parse_partial(high)
    if lo is None or hi is None:
        return None
    comparators: list[Comparator] = []
    if lo.major is not None:
        comparators.append(Comparator(">=", _floor(lo)))
    upper = _primitive("<=", hi)
    if upper is None:
        return None
    comparators.extend(upper)
    return comparators


def _parse_set(text: str) -> ComparatorSet | None:
    text = text.strip()
    if not text:
        return ()

    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        parsed = _parse_hyphen(hyphen["low"], hyphen["high"])
        return tuple(parsed) if parsed is not None else None

    comparators: list[Comparator] = []
    for token in _OP_SPACE_RE.sub(r"\1", text).split():
        parsed = _parse_token(token)
        if parsed is None:
            return None
        comparators.extend(parsed)
    return tuple(comparators)


def parse_range(raw: str | None) -> NpmRange | None:
    """
    解析 npm 范围表达式；语法无效时返回 None。
    """
    if raw is None or not isinstance(raw, str):
        return None
    sets: list[ComparatorSet] = []
    for part in raw.split("||"):
        parsed = _parse_set(part)
        if parsed is None:
            return None
        sets.append(parsed)
    return NpmRange(raw=raw, sets=tuple(sets))


def is_valid_range(raw: str | None) -> bool:
    return parse_range(raw) is not None


def _set_allows_prerelease(comparators: ComparatorSet, version: Version) -> bool:
    """
    npm 规则：预发布版本只有在同一 [major, minor, patch] 上存在带预发布标签的比较条件时才匹配。
    """
    for comp in comparators:
        if comp.version.is_prerelease and comp.version.release == version.release:
            return True
    return False


def _test_set(comparators: ComparatorSet, version: Version, *, include_prerelease: bool) -> bool:
    if not all(comp.test(version) for comp in comparators):
        return False
    if version.is_prerelease and not include_prerelease:
        return _set_allows_prerelease(comparators, version)
    return True


def satisfies(version: Version | str, rng: NpmRange | str, *, include_prerelease: bool = False) -> bool:
    """
    判断版本是否满足 npm 范围。
    """
    v = parse_version(version) if isinstance(version, str) else version
    r = parse_range(rng) if isinstance(rng, str) else rng
    if v is None or r is None:
        return False
    return any(_test_set(s, v, include_prerelease=include_prerelease) for s in r.sets)


@dataclass(frozen=True, slots=True)
class _Bound:
    version: Version
    inclusive: bool


def _tighter_lower(a: _Bound | None, b: _Bound | None) -> _Bound | None:
    if a is None or b is None:
        return a or b
    return max(a, b, key=lambda x: (x.version, not x.inclusive))


def _tighter_upper(a: _Bound | None, b: _Bound | None) -> _Bound | None:
    if a is None or b is None:
        return a or b
    return min(a, b, key=lambda x: (x.version, x.inclusive))


def _interval(comparators: ComparatorSet) -> tuple[_Bound | None, _Bound | None]:
    """
    将比较集合收敛为 [lower, upper] 区间（None 表示无界）。
    """
    lower: _Bound | None = None
    upper: _Bound | None = None
    for comp in comparators:
        if comp.op in {">=", ">", "="}:
            lower = _tighter_lower(lower, _Bound(comp.version, comp.op != ">"))
        if comp.op in {"<=", "<", "="}:
            upper = _tighter_upper(upper, _Bound(comp.version, comp.op != "<"))
    return lower, upper


def _overlaps(a: ComparatorSet, b: ComparatorSet) -> bool:
    lower_a, upper_a = _interval(a)
    lower_b, upper_b = _interval(b)
    if not (_nonempty(lower_a, upper_a) and _nonempty(lower_b, upper_b)):
        return False
    return _nonempty(_tighter_lower(lower_a, lower_b), _tighter_upper(upper_a, upper_b))


def _nonempty(lower: _Bound | None, upper: _Bound | None) -> bool:
    if lower is None or upper is None:
        return True
    if lower.version < upper.version:
        return True
    return lower.version == upper.version and lower.inclusive and upper.inclusive


def intersects(a: NpmRange | str, b: NpmRange | str) -> bool:
    """
    判断两个 npm 范围是否存在交集；任一范围无效时返回 False。
    """
    ra = parse_range(a) if isinstance(a, str) else a
    rb = parse_range(b) if isinstance(b, str) else b
    if ra is None or rb is None:
        return False
    return any(_overlaps(sa, sb) for sa in ra.sets for sb in rb.sets)


def diff(installed: Version, latest: Version) -> str | None:
    """
    返回两个版本之间的差异级别（major/premajor/minor/preminor/patch/prepatch/prerelease），相等时返回 None。
    """
    if installed == latest:
        return None
    high = max(installed, latest)
    prefix = "pre" if high.is_prerelease else ""
    if installed.major != latest.major:
        return f"{prefix}major"
    if installed.minor != latest.minor:
        return f"{prefix}minor"
    if installed.micro != latest.micro:
        return f"{prefix}patch"
    return "prerelease"


def sort_versions(raw_versions: Iterable[str], *, reverse: bool = False) -> list[str]:
    """
    按 semver 顺序排序版本字符串，丢弃无法解析的版本。
    """
    parsed = [(v, parse_version(v)) for v in raw_versions]
    valid = [(raw, v) for raw, v in parsed if v is not None]
    valid.sort(key=lambda item: item[1], reverse=reverse)
    return [raw for raw, _ in valid]
