from __future__ import annotations

from pathlib import Path

from npm_lens.manifest import MANIFEST_NAME


def discover_sub_projects(root: Path, depth: int = 2) -> list[str]:
    """
    查找 root 之下包含 package.json 的子目录（最多 depth 层），返回相对路径列表。

    跳过 node_modules 与隐藏目录；root 自身不计入结果。
    """
    found: set[str] = set()

    def scan(current: Path, level: int) -> None:
        try:
            entries = sorted(current.iterdir())
        except OSError:
            return
        for entry in entries:
            if entry.name == "node_modules" or entry.name.startswith("."):
                continue
            if not entry.is_dir():
                continue
            if (entry / MANIFEST_NAME).is_file():
                found.add(entry.relative_to(root).as_posix())
            if level < depth:
                scan(entry, level + 1)

    if depth >= 1:
        scan(root, 1)
    return sorted(found)
