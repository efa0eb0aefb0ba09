from __future__ import annotations

from typing import Sequence

from packaging.version import Version

from npm_lens.engines import project_constraints, resolve_engine_range
from npm_lens.models import DependencyRecord, ResolvedRange
from npm_lens.report import OutlierRecord
from npm_lens.semver import is_valid_range, parse_version

SOLE_CONSTRAINT_IMPACT = (
    "Sole constraint establishing the project's Node.js range. Removing it allows any Node.js version."
)


def _compare(project_range: ResolvedRange, without: ResolvedRange) -> list[str]:
    """
    对比去掉某个约束前后的范围，返回放宽方向的描述（空列表表示没有影响）。
    """
    impacts: list[str] = []
    project_min = parse_version(project_range.min)
    project_max = parse_version(project_range.max)
    without_min = parse_version(without.min)
    without_max = parse_version(without.max)

    if project_min is not None and without_min is not None and without_min < project_min:
        impacts.append(f"Allows older Node.js (min {without.min} vs {project_range.min}).")
    if project_max is not None and (without_max is None or without_max > project_max):
        impacts.append(f"Allows newer Node.js (max {without.max or 'any'} vs {project_range.max}).")
    return impacts


def detect_outliers(
    dependencies: Sequence[DependencyRecord],
    project_range: ResolvedRange,
    root_constraint: str | None,
    *,
    candidates: Sequence[str | Version] | None = None,
) -> list[OutlierRecord]:
    """
    找出收窄了项目 Node.js 范围的依赖：逐个去掉其约束后重新求交，并与原范围比较。

    ``candidates`` 必须与计算 ``project_range`` 时使用的候选表一致。
    """
    if project_range.is_empty:
        return []

    deps = list(dependencies)
    outliers: list[OutlierRecord] = []
    for index, dep in enumerate(deps):
        if dep.is_root or not dep.engine_constraint:
            continue

        others = [d for i, d in enumerate(deps) if i != index]
        remaining = project_constraints(root_constraint, others)
        if not any(is_valid_range(c) for c in remaining):
            outliers.append(
                OutlierRecord(
                    package_name=dep.name,
                    package_version=dep.installed_version,
                    constraint=dep.engine_constraint,
                    impact=SOLE_CONSTRAINT_IMPACT,
                    range_without=ResolvedRange(),
                )
            )
            continue

        without = resolve_engine_range(remaining, candidates=candidates)
        if without.is_empty:
            continue
        impacts = _compare(project_range, without)
        if impacts:
            outliers.append(
                OutlierRecord(
                    package_name=dep.name,
                    package_version=dep.installed_version,
                    constraint=dep.engine_constraint,
                    impact=" ".join(impacts),
                    range_without=without,
                )
            )
    return outliers
