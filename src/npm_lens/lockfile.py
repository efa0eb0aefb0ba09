from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from npm_lens.errors import ConfigReadError
from npm_lens.manifest import (
    LOCKFILE_NAME,
    MANIFEST_NAME,
    extract_dependencies,
    lockfile_path,
    read_manifest,
    root_engine_constraint,
)
from npm_lens.models import DependencyKind, DependencyRecord

_NODE_MODULES = "node_modules/"


@dataclass(frozen=True, slots=True)
class ProjectScan:
    """
    一次项目扫描的结果：package.json 数据与 lockfile 中的全部已安装依赖。
    """

    project_path: Path
    manifest: dict[str, Any]
    root: DependencyRecord
    dependencies: list[DependencyRecord]

    @property
    def root_constraint(self) -> str | None:
        return self.root.engine_constraint


def _name_from_key(key: str) -> str:
    """
    从 lockfile 的 packages 键（node_modules/a/node_modules/@s/b）推断包名。
    """
    tail = key.rsplit(_NODE_MODULES, 1)[-1]
    parts = tail.split("/")
    if parts[0].startswith("@") and len(parts) > 1:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def installed_engine_constraint(project_path: Path, key: str) -> str | None:
    """
    读取 node_modules 中已安装包的 package.json 的 engines.node。
    """
    data = _read_json(project_path / key / MANIFEST_NAME)
    if data is None:
        return None
    return root_engine_constraint(data)


def load_lockfile(project_path: Path) -> dict[str, Any]:
    """
    读取 package-lock.json；不存在、无法解析或缺少 packages 表时抛出 ConfigReadError。
    """
    path = lockfile_path(project_path)
    if not path.is_file():
        raise ConfigReadError(f"{LOCKFILE_NAME} not found: {path}", path=path)
    data = _read_json(path)
    if data is None:
        raise ConfigReadError(f"cannot parse {path}", path=path)
    if not isinstance(data.get("packages"), dict):
        raise ConfigReadError(
            f"{path} has no 'packages' map (lockfileVersion {data.get('lockfileVersion')!r} is not supported)",
            path=path,
        )
    return data


def scan_project(project_path: Path) -> ProjectScan:
    """
    扫描项目：合并 package-lock.json 的 packages 表与 node_modules 中各包声明的 engines.node。
    """
    manifest = read_manifest(project_path).require()
    lock = load_lockfile(project_path)
    root_dev = extract_dependencies(manifest).dev_dependencies

    root = DependencyRecord(
        name=str(manifest.get("name") or project_path.name),
        installed_version=str(manifest.get("version") or "N/A"),
        engine_constraint=root_engine_constraint(manifest),
        is_root=True,
        path="",
    )

    records: list[DependencyRecord] = []
    for key, entry in lock["packages"].items():
        if key == "" or not isinstance(entry, dict):
            continue
        if not key.startswith(_NODE_MODULES) or not entry.get("version"):
            continue
        name = str(entry.get("name") or _name_from_key(key))
        is_dev = entry.get("dev") is True or name in root_dev
        records.append(
            DependencyRecord(
                name=name,
                installed_version=str(entry["version"]),
                engine_constraint=installed_engine_constraint(project_path, key),
                is_root=False,
                is_dev=is_dev,
                is_optional=entry.get("optional") is True,
                path=key,
            )
        )

    return ProjectScan(project_path=project_path, manifest=manifest, root=root, dependencies=records)


def dependency_kinds(scan: ProjectScan) -> dict[str, DependencyKind]:
    """
    构建 name -> 依赖类型的映射，供 mutator 选择 section 与 npm 参数。

    package.json 中的直接依赖以其所在 section 为准，其余依赖按 lockfile 标记推断。
    """
    kinds: dict[str, DependencyKind] = {}
    for dep in scan.dependencies:
        if dep.name in kinds:
            continue
        if dep.is_dev:
            kinds[dep.name] = DependencyKind.DEVELOPMENT
        elif dep.is_optional:
            kinds[dep.name] = DependencyKind.OPTIONAL
        else:
            kinds[dep.name] = DependencyKind.PRODUCTION

    direct = extract_dependencies(scan.manifest)
    for name in direct.dependencies:
        kinds[name] = DependencyKind.PRODUCTION
    for name in direct.optional_dependencies:
        kinds[name] = DependencyKind.OPTIONAL
    for name in direct.dev_dependencies:
        kinds[name] = DependencyKind.DEVELOPMENT
    return kinds
