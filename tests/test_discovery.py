from __future__ import annotations

from pathlib import Path

from npm_lens.discovery import discover_sub_projects


def _pkg(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    (path / "package.json").write_text("{}", encoding="utf-8")


def test_discover_sub_projects_respects_depth_and_skips(tmp_path: Path) -> None:
    """
    只返回深度范围内包含 package.json 的子目录，跳过 node_modules 与隐藏目录。
    """
    _pkg(tmp_path)
    _pkg(tmp_path / "packages" / "api")
    _pkg(tmp_path / "packages" / "web")
    _pkg(tmp_path / "tools")
    _pkg(tmp_path / "node_modules" / "left-pad")
    _pkg(tmp_path / ".cache" / "thing")
    _pkg(tmp_path / "a" / "b" / "c")

    assert discover_sub_projects(tmp_path) == ["packages/api", "packages/web", "tools"]
    assert discover_sub_projects(tmp_path, depth=1) == ["tools"]
    assert "a/b/c" in discover_sub_projects(tmp_path, depth=3)
    assert discover_sub_projects(tmp_path, depth=0) == []
