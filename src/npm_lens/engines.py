from __future__ import annotations

from typing import Iterable, Sequence

from packaging.version import Version

from npm_lens.models import DependencyRecord, ResolvedRange
from npm_lens.semver import parse_range, parse_version, satisfies

# 候选表是策略而不是推导结果；修改时递增版本号。
CANDIDATE_TABLE_VERSION = 1

KNOWN_LTS_VERSIONS: tuple[str, ...] = (
    "16.20.2",
    "18.18.0",
    "18.19.1",
    "20.9.0",
    "20.10.0",
    "20.11.0",
    "22.0.0",
)

MIN_SUPPORTED_MAJOR = 16
MAX_SUPPORTED_MAJOR = 22
SYNTHESIZED_MINORS = 5


def candidate_node_versions() -> list[Version]:
    """
    返回固定的候选 Node.js 版本表（已知 LTS + 每个 major 的 major.minor.0），升序。
    """
    versions = {Version(v) for v in KNOWN_LTS_VERSIONS}
    for major in range(MIN_SUPPORTED_MAJOR, MAX_SUPPORTED_MAJOR + 1):
        for minor in range(SYNTHESIZED_MINORS):
            versions.add(Version(f"{major}.{minor}.0"))
    return sorted(versions)


def _format_range(low: Version, high: Version) -> ResolvedRange:
    if low == high:
        return ResolvedRange(min=str(low), max=str(high), expression=str(low))
    return ResolvedRange(min=str(low), max=str(high), expression=f">={low} <={high}")


def _candidate_pool(candidates: Sequence[str | Version] | None) -> list[Version]:
    if candidates is None:
        return candidate_node_versions()
    parsed = (parse_version(c) if isinstance(c, str) else c for c in candidates)
    return sorted({v for v in parsed if v is not None})


def resolve_engine_range(
    constraints: Iterable[str | None],
    *,
    candidates: Sequence[str | Version] | None = None,
) -> ResolvedRange:
    """
    计算多个 engines.node 约束的交集，返回候选版本中满足全部约束的最小/最大版本。

    只在固定的候选表（或调用方传入的 ``candidates``）中取样，结果的 min/max 一定是候选版本，
    因此增加约束只会收窄结果。无效约束会被静默忽略；没有任何有效约束或约束互斥时返回全 None 的范围。
    """
    ranges = [r for r in (parse_range(c) for c in constraints if c) if r is not None]
    if not ranges:
        return ResolvedRange()

    pool = _candidate_pool(candidates)

    compatible = [v for v in pool if all(satisfies(v, r, include_prerelease=True) for r in ranges)]
    if not compatible:
        return ResolvedRange()
    return _format_range(compatible[0], compatible[-1])


def project_constraints(root_constraint: str | None, dependencies: Iterable[DependencyRecord]) -> list[str]:
    """
    收集根项目约束与所有非根依赖的 engines.node 约束。
    """
    constraints: list[str] = []
    if root_constraint:
        constraints.append(root_constraint)
    for dep in dependencies:
        if not dep.is_root and dep.engine_constraint:
            constraints.append(dep.engine_constraint)
    return constraints


def available_runtime_upgrades(
    current_version: str | None,
    node_range: ResolvedRange,
    versions: Iterable[str] = KNOWN_LTS_VERSIONS,
) -> list[str]:
    """
    列出高于当前 Node.js 版本且落在项目范围内的候选版本（升序）。
    """
    if node_range.is_empty or node_range.min is None:
        return []
    current = parse_version(current_version) if current_version else None
    low = parse_version(node_range.min)
    high = parse_version(node_range.max) if node_range.max else None
    if low is None:
        return []

    options: list[Version] = []
    for raw in versions:
        v = parse_version(raw)
        if v is None:
            continue
        if current is not None and v <= current:
            continue
        if v < low or (high is not None and v > high):
            continue
        options.append(v)
    return [str(v) for v in sorted(options)]
