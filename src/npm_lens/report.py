from __future__ import annotations

from dataclasses import dataclass, field

from npm_lens.models import AlternativeSuggestion, HealthTier, ResolvedRange


@dataclass(frozen=True, slots=True)
class DependencyUpdateInfo:
    """
    单个依赖的健康分级与可用更新（每次分类时重新计算）。
    """

    name: str
    installed_version: str
    latest_version: str | None
    available_updates: list[str]
    health: HealthTier
    node_compatibility_note: str | None
    alternatives: list[AlternativeSuggestion] = field(default_factory=list)
    release_date_installed: str | None = None
    release_date_latest: str | None = None
    path: str = ""


@dataclass(frozen=True, slots=True)
class OutlierRecord:
    """
    其 engines.node 约束收窄了项目 Node.js 范围的依赖。
    """

    package_name: str
    package_version: str
    constraint: str
    impact: str
    range_without: ResolvedRange


@dataclass(frozen=True, slots=True)
class ProjectReport:
    """
    一次项目分析的完整报告。
    """

    project_path: str
    root_constraint: str | None
    node_range: ResolvedRange
    has_constraints: bool
    runtime_upgrades: list[str]
    current_node_version: str | None
    updates: list[DependencyUpdateInfo]
    outliers: list[OutlierRecord]
    cache_hits: int
    fetched: int
