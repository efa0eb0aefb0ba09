from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from packaging.version import Version

from npm_lens.models import (
    AlternativeSuggestion,
    DependencyRecord,
    HealthTier,
    RegistryInfo,
    ResolvedRange,
)
from npm_lens.report import DependencyUpdateInfo
from npm_lens.semver import diff, intersects, is_valid_range, parse_version

SIX_MONTHS = timedelta(days=6 * 30)
TWELVE_MONTHS = timedelta(days=12 * 30)

_SEVERITY = {
    HealthTier.UNKNOWN: -1,
    HealthTier.GREEN: 0,
    HealthTier.YELLOW: 1,
    HealthTier.ORANGE: 2,
    HealthTier.RED: 3,
}
_ESCALATE = {
    HealthTier.GREEN: HealthTier.YELLOW,
    HealthTier.YELLOW: HealthTier.ORANGE,
    HealthTier.ORANGE: HealthTier.RED,
    HealthTier.RED: HealthTier.RED,
}
_DIFF_TIERS = {
    "major": HealthTier.RED,
    "premajor": HealthTier.RED,
    "minor": HealthTier.ORANGE,
    "preminor": HealthTier.ORANGE,
    "patch": HealthTier.YELLOW,
    "prepatch": HealthTier.YELLOW,
    "prerelease": HealthTier.YELLOW,
}


def _at_least(tier: HealthTier, floor: HealthTier) -> HealthTier:
    return tier if _SEVERITY[tier] >= _SEVERITY[floor] else floor


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _engine_compatible(constraint: str | None, project_range: ResolvedRange) -> bool:
    """
    约束缺失时视为兼容；否则要求与项目范围有交集（调用方保证范围非空）。
    """
    if not constraint:
        return True
    return intersects(project_range.expression, constraint)


def compute_available_updates(
    dependency: DependencyRecord,
    project_range: ResolvedRange,
    registry_info: RegistryInfo,
) -> list[str]:
    """
    计算高于已安装版本且与项目 Node.js 范围兼容的版本列表（降序）。

    候选版本自身声明了 engines.node 时以其为准；未声明时沿用已安装版本的约束。
    项目范围为空时没有可比较的基准，返回空列表。
    """
    installed = parse_version(dependency.installed_version)
    if installed is None or project_range.is_empty:
        return []

    inherited_ok = _engine_compatible(dependency.engine_constraint, project_range)
    kept: list[tuple[str, Version]] = []
    for raw, engine in registry_info.versions.items():
        v = parse_version(raw)
        if v is None or v <= installed:
            continue
        if engine:
            if not _engine_compatible(engine, project_range):
                continue
        elif not inherited_ok:
            continue
        kept.append((raw, v))

    kept.sort(key=lambda item: item[1], reverse=True)
    return [raw for raw, _ in kept]


def _tier_from_versions(installed_raw: str, latest_raw: str) -> HealthTier:
    if installed_raw == latest_raw:
        return HealthTier.GREEN
    installed = parse_version(installed_raw)
    latest = parse_version(latest_raw)
    if installed is None:
        return HealthTier.RED
    if latest is None:
        return HealthTier.UNKNOWN
    level = diff(installed, latest)
    if level is None:
        return HealthTier.GREEN
    return _DIFF_TIERS[level]


def _escalate_for_recency(
    tier: HealthTier,
    installed_at: datetime | None,
    latest_at: datetime | None,
) -> HealthTier:
    """
    根据最新版本与已安装版本的发布时间差提升等级（从不降低）。
    """
    if installed_at is None or latest_at is None:
        return tier
    gap = latest_at - installed_at
    if gap > TWELVE_MONTHS:
        return HealthTier.RED
    if gap > SIX_MONTHS and tier in _ESCALATE:
        return _ESCALATE[tier]
    return tier


def _unknown(dependency: DependencyRecord, note: str, alternatives: Sequence[AlternativeSuggestion]) -> DependencyUpdateInfo:
    return DependencyUpdateInfo(
        name=dependency.name or "Unknown",
        installed_version=dependency.installed_version or "N/A",
        latest_version=None,
        available_updates=[],
        health=HealthTier.UNKNOWN,
        node_compatibility_note=note,
        alternatives=list(alternatives),
        path=dependency.path,
    )


def classify_dependency(
    dependency: DependencyRecord,
    project_range: ResolvedRange,
    registry_info: RegistryInfo,
    alternatives: Sequence[AlternativeSuggestion] = (),
) -> DependencyUpdateInfo:
    """
    对单个依赖进行健康分级，并计算与项目 Node.js 范围兼容的可用更新。
    """
    if dependency.is_root or not dependency.name:
        return _unknown(dependency, "Dependency data incomplete.", alternatives)

    installed_raw = dependency.installed_version
    latest_raw = registry_info.latest
    notes: list[str] = []
    tier = HealthTier.UNKNOWN

    installed_at = registry_info.release_times.get(installed_raw)
    latest_at = registry_info.release_times.get(latest_raw) if latest_raw else None

    if registry_info.error:
        notes.append(f"Package {dependency.name} not found in registry ({registry_info.error}).")
    elif not registry_info.versions:
        notes.append(f"No versions listed for {dependency.name} in registry.")
    elif latest_raw:
        tier = _tier_from_versions(installed_raw, latest_raw)
        if tier not in {HealthTier.GREEN, HealthTier.UNKNOWN}:
            tier = _escalate_for_recency(tier, installed_at, latest_at)

    available = compute_available_updates(dependency, project_range, registry_info)

    constraint = dependency.engine_constraint
    if (
        constraint
        and project_range.expression is not None
        and is_valid_range(constraint)
        and not intersects(project_range.expression, constraint)
    ):
        notes.append(
            f"Installed version's Node requirement ({constraint}) may not fit "
            f"project range ({project_range.expression})."
        )
        tier = _at_least(tier, HealthTier.ORANGE)

    return DependencyUpdateInfo(
        name=dependency.name,
        installed_version=installed_raw,
        latest_version=latest_raw,
        available_updates=available,
        health=tier,
        node_compatibility_note=" ".join(notes) or None,
        alternatives=list(alternatives),
        path=dependency.path,
        release_date_installed=_iso(installed_at),
        release_date_latest=_iso(latest_at),
    )
