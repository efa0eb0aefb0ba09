from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
import sys

from rich.console import Console
from rich.logging import RichHandler

from npm_lens.config import AppConfig, load_config
from npm_lens.errors import NpmLensError
from npm_lens.npm_commands import PACKAGE_MANAGERS


def build_parser() -> argparse.ArgumentParser:
    """
    构建 npm-lens 的命令行参数解析器。
    """
    parser = argparse.ArgumentParser(prog="npm-lens")
    parser.add_argument(
        "--version",
        action="store_true",
        help="输出版本号并退出",
    )
    parser.add_argument("--config", help="配置文件路径（.toml 或 .yaml）")
    parser.add_argument(
        "--project",
        default=".",
        help="项目目录（包含 package.json，默认：当前目录）",
    )
    parser.add_argument("--registry-url", help="npm registry 地址")
    parser.add_argument("--token", help="私有 registry Bearer Token（谨慎使用）")
    parser.add_argument("--exclude", action="append", default=[], help="排除不检查的包名（可重复）")
    parser.add_argument("--no-cache", action="store_true", help="禁用本地缓存")
    parser.add_argument("--refresh", action="store_true", help="忽略缓存并强制重新查询")
    parser.add_argument("--cache-ttl", type=int, help="缓存 TTL 秒数（0 表示永不过期）")
    parser.add_argument("--max-concurrency", type=int, help="最大并发请求数")
    parser.add_argument("--package-manager", choices=list(PACKAGE_MANAGERS), help="执行安装/卸载的包管理器")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="输出日志（-v 为 INFO，-vv 为 DEBUG）")

    subparsers = parser.add_subparsers(dest="command")

    check = subparsers.add_parser("check", help="分析 Node.js 范围与依赖健康度并输出 JSON 报告")
    check.add_argument("--recursive", action="store_true", help="同时分析包含 package.json 的子目录")
    check.add_argument("--format", choices=["json"], default="json", help="输出格式")
    check.add_argument("--output", help="输出到文件（默认 stdout）")
    check.add_argument("--node-version", help="当前 Node.js 版本，用于列出可升级的运行时版本")

    upgrade = subparsers.add_parser("upgrade", help="将需要关注的直接依赖更新到最高兼容版本")
    upgrade.add_argument("--write", action="store_true", help="执行更新（默认仅输出计划）")
    upgrade.add_argument("--output", help="将计划或结果输出到文件（默认 stdout）")

    apply = subparsers.add_parser("apply", help="按计划文件执行更新/替换操作")
    apply.add_argument("--plan", required=True, help="计划文件路径（.json 或 .yaml）")
    apply.add_argument("--output", help="将结果输出到文件（默认 stdout）")

    set_engines = subparsers.add_parser("set-engines", help="将 engines.node 写回 package.json")
    set_engines.add_argument("--range", dest="node_range", help="写入的范围（默认：依赖约束求交的结果）")

    return parser


def _merge_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """
    将 CLI 参数覆盖合并到 AppConfig。
    """
    registry = replace(
        cfg.registry,
        registry_url=args.registry_url or cfg.registry.registry_url,
        token=args.token or cfg.registry.token,
    )
    exclude = tuple([*cfg.exclude, *(args.exclude or [])])
    use_cache = cfg.use_cache and not bool(args.no_cache)
    refresh = cfg.refresh or bool(args.refresh)
    cache_ttl_s = cfg.cache_ttl_s if args.cache_ttl is None else int(args.cache_ttl)
    max_concurrency = cfg.max_concurrency if args.max_concurrency is None else max(1, int(args.max_concurrency))
    package_manager = args.package_manager or cfg.package_manager

    return replace(
        cfg,
        registry=registry,
        max_concurrency=max_concurrency,
        cache_ttl_s=cache_ttl_s,
        use_cache=use_cache,
        refresh=refresh,
        package_manager=package_manager,
        exclude=exclude,
    )


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _emit(text: str, output_path: str | None) -> None:
    if output_path:
        Path(output_path).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def _cmd_check(args: argparse.Namespace, cfg: AppConfig, project: Path) -> int:
    from npm_lens.app import run_analyze
    from npm_lens.discovery import discover_sub_projects
    from npm_lens.formatters import render_json

    projects = [project]
    if args.recursive:
        projects.extend(project / rel for rel in discover_sub_projects(project, cfg.discovery_depth))

    reports = []
    failed = False
    for path in projects:
        try:
            reports.append(run_analyze(path, config=cfg, current_node_version=args.node_version))
        except NpmLensError as exc:
            print(f"npm-lens: 分析 {path} 失败：{exc}", file=sys.stderr)
            failed = True
    if not reports:
        return 1

    _emit(render_json(reports if args.recursive else reports[0]), args.output)
    return 1 if failed else 0


def _cmd_upgrade(args: argparse.Namespace, cfg: AppConfig, project: Path) -> int:
    from npm_lens.app import plan_highest_updates, run_analyze, run_apply
    from npm_lens.formatters import render_mutation_result
    from npm_lens.manifest import read_manifest
    from npm_lens.plan import operation_to_obj

    try:
        report = run_analyze(project, config=cfg)
        ops = plan_highest_updates(report, read_manifest(project).require())
    except NpmLensError as exc:
        print(f"npm-lens: 解析或检查失败：{exc}", file=sys.stderr)
        return 1

    if not args.write:
        _emit(json.dumps([operation_to_obj(op) for op in ops], ensure_ascii=False, indent=2), args.output)
        return 0
    if not ops:
        print("没有需要更新的依赖。", file=sys.stderr)
        return 0

    try:
        result = run_apply(project, ops, config=cfg)
    except NpmLensError as exc:
        print(f"npm-lens: 更新失败：{exc}", file=sys.stderr)
        return 1
    _emit(render_mutation_result(result), args.output)
    return 0 if result.ok else 1


def _cmd_apply(args: argparse.Namespace, cfg: AppConfig, project: Path) -> int:
    from npm_lens.app import run_apply
    from npm_lens.formatters import render_mutation_result
    from npm_lens.plan import load_plan

    try:
        ops = load_plan(Path(args.plan))
        result = run_apply(project, ops, config=cfg)
    except NpmLensError as exc:
        print(f"npm-lens: 执行计划失败：{exc}", file=sys.stderr)
        return 1
    _emit(render_mutation_result(result), args.output)
    return 0 if result.ok else 1


def _cmd_set_engines(args: argparse.Namespace, project: Path) -> int:
    from npm_lens.engines import project_constraints, resolve_engine_range
    from npm_lens.lockfile import scan_project
    from npm_lens.manifest import update_engines_field
    from npm_lens.semver import is_valid_range

    try:
        node_range = args.node_range
        if node_range is None:
            scan = scan_project(project)
            resolved = resolve_engine_range(project_constraints(scan.root_constraint, scan.dependencies))
            if resolved.is_empty:
                print("npm-lens: 依赖的 engines.node 约束没有共同的 Node.js 版本，未写入。", file=sys.stderr)
                return 1
            node_range = resolved.expression
        elif not is_valid_range(node_range):
            print(f"npm-lens: 无效的版本范围 {node_range!r}", file=sys.stderr)
            return 2
        update_engines_field(project, node_range)
    except (NpmLensError, OSError) as exc:
        print(f"npm-lens: 写入 engines.node 失败：{exc}", file=sys.stderr)
        return 1
    print(f"engines.node = {node_range}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    npm-lens 命令行入口。
    """
    args = build_parser().parse_args(argv)

    if args.version:
        from npm_lens import __version__

        print(__version__)
        return 0

    if args.command is None:
        print("npm-lens: 请指定子命令（check / upgrade / apply / set-engines）。", file=sys.stderr)
        return 2

    _setup_logging(args.verbose)
    try:
        cfg = _merge_cli_overrides(load_config(args.config), args)
    except NpmLensError as exc:
        print(f"npm-lens: 读取配置失败：{exc}", file=sys.stderr)
        return 2
    project = Path(args.project)

    if args.command == "check":
        return _cmd_check(args, cfg, project)
    if args.command == "upgrade":
        return _cmd_upgrade(args, cfg, project)
    if args.command == "apply":
        return _cmd_apply(args, cfg, project)
    if args.command == "set-engines":
        return _cmd_set_engines(args, project)

    print(f"npm-lens: 未知子命令 {args.command!r}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
