from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from npm_lens.cache import CacheDB, default_cache_path
from npm_lens.config import AppConfig
from npm_lens.engines import available_runtime_upgrades, project_constraints, resolve_engine_range
from npm_lens.health import classify_dependency
from npm_lens.lockfile import dependency_kinds, scan_project
from npm_lens.lookup import fetch_registry_infos
from npm_lens.manifest import extract_dependencies
from npm_lens.models import HealthTier, MutationOperation, MutationResult, RegistryInfo, UpdateOp
from npm_lens.mutator import apply_operations
from npm_lens.npm_commands import CommandRunner
from npm_lens.outliers import detect_outliers
from npm_lens.report import DependencyUpdateInfo, ProjectReport
from npm_lens.semver import is_valid_range

logger = logging.getLogger(__name__)


async def analyze_project(
    project_path: Path,
    *,
    config: AppConfig,
    current_node_version: str | None = None,
    on_fetch_start: Callable[[int], Any] | None = None,
    on_fetch_complete: Callable[[], Any] | None = None,
) -> ProjectReport:
    """
    分析项目：扫描依赖、求 Node.js 范围、查询 registry、健康分级并找出收窄范围的依赖。
    """
    scan = scan_project(project_path)
    exclude = set(config.exclude)
    records = [dep for dep in scan.dependencies if dep.name not in exclude]

    constraints = project_constraints(scan.root_constraint, scan.dependencies)
    node_range = resolve_engine_range(constraints)
    outliers = detect_outliers(scan.dependencies, node_range, scan.root_constraint)
    logger.info("%s: Node.js range %s (%d constraints)", project_path, node_range.expression, len(constraints))

    unique_names = sorted({dep.name for dep in records})

    cache_db: CacheDB | None = None
    if config.use_cache:
        cache_db = CacheDB(default_cache_path())

    try:
        infos, stats = await fetch_registry_infos(
            unique_names,
            settings=config.registry,
            max_concurrency=config.max_concurrency,
            cache=cache_db,
            cache_ttl_s=config.cache_ttl_s,
            refresh=config.refresh,
            on_fetch_start=on_fetch_start,
            on_fetch_complete=on_fetch_complete,
        )
    finally:
        if cache_db is not None:
            cache_db.close()

    updates: list[DependencyUpdateInfo] = []
    for dep in records:
        info = infos.get(dep.name) or RegistryInfo(name=dep.name, error="lookup skipped")
        alternatives = config.alternatives.fetch_package_alternatives(dep.name, dep.installed_version)
        updates.append(classify_dependency(dep, node_range, info, alternatives))

    return ProjectReport(
        project_path=str(project_path),
        root_constraint=scan.root_constraint,
        node_range=node_range,
        has_constraints=any(is_valid_range(c) for c in constraints),
        runtime_upgrades=available_runtime_upgrades(current_node_version, node_range),
        current_node_version=current_node_version,
        updates=updates,
        outliers=outliers,
        cache_hits=stats.cache_hits,
        fetched=stats.fetched,
    )


def run_analyze(
    project_path: Path,
    *,
    config: AppConfig,
    current_node_version: str | None = None,
) -> ProjectReport:
    """
    同步入口：运行项目分析（内部使用 asyncio），查询 registry 时在 stderr 显示进度条。
    """
    console = Console(stderr=True)
    state: dict[str, Any] = {"progress": None, "task_id": None}

    def on_start(total: int) -> None:
        if total > 0:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                "({task.completed}/{task.total})",
                console=console,
                transient=True,
            )
            progress.start()
            task_id = progress.add_task("查询 npm registry...", total=total)
            state["progress"] = progress
            state["task_id"] = task_id

    def on_complete() -> None:
        progress = state["progress"]
        task_id = state["task_id"]
        if progress and task_id is not None:
            progress.advance(task_id)

    try:
        return asyncio.run(
            analyze_project(
                project_path,
                config=config,
                current_node_version=current_node_version,
                on_fetch_start=on_start,
                on_fetch_complete=on_complete,
            )
        )
    finally:
        if state["progress"]:
            state["progress"].stop()


def plan_highest_updates(report: ProjectReport, manifest_data: dict[str, Any]) -> list[UpdateOp]:
    """
    为每个需要关注的直接依赖（非 Green 或为 outlier）生成更新到最高兼容版本的操作。

    只考虑安装在顶层 node_modules 的记录；按 package.json 中的出现顺序输出。
    """
    direct = extract_dependencies(manifest_data)
    names = [*direct.dependencies, *direct.dev_dependencies, *direct.optional_dependencies]
    outlier_names = {o.package_name for o in report.outliers}
    by_path = {info.path: info for info in report.updates}

    ops: list[UpdateOp] = []
    seen: set[str] = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        info = by_path.get(f"node_modules/{name}")
        if info is None or not info.available_updates:
            continue
        if info.health == HealthTier.GREEN and name not in outlier_names:
            continue
        ops.append(
            UpdateOp(
                name=name,
                current_version=info.installed_version,
                target_version=info.available_updates[0],
            )
        )
    return ops


def run_apply(
    project_path: Path,
    operations: Sequence[MutationOperation],
    *,
    config: AppConfig,
    runner: CommandRunner | None = None,
) -> MutationResult:
    """
    扫描项目得到依赖类型后按顺序执行操作队列。
    """
    scan = scan_project(project_path)
    return apply_operations(
        project_path,
        operations,
        dependency_kinds(scan),
        runner=runner,
        package_manager=config.package_manager,
    )
