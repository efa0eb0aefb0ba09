from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from npm_lens.models import AlternativeSuggestion


@dataclass(frozen=True, slots=True)
class AlternativesCatalog:
    """
    替代包建议目录（来自配置文件的 alternatives 表）。
    """

    entries: dict[str, tuple[AlternativeSuggestion, ...]] = field(default_factory=dict)

    def fetch_package_alternatives(self, name: str, installed_version: str | None = None) -> list[AlternativeSuggestion]:
        """
        返回某个包的替代建议；没有配置时返回空列表。
        """
        return list(self.entries.get(name, ()))


def _suggestion_from_obj(obj: Any) -> AlternativeSuggestion | None:
    if isinstance(obj, str) and obj:
        return AlternativeSuggestion(name=obj)
    if not isinstance(obj, dict) or not obj.get("name"):
        return None
    return AlternativeSuggestion(
        name=str(obj["name"]),
        version=str(obj.get("version") or "latest"),
        reason=str(obj.get("reason") or ""),
        source=str(obj.get("source") or "config"),
    )


def catalog_from_config(table: Any) -> AlternativesCatalog:
    """
    从配置中的 ``{package: [{name, version, reason, source}, ...]}`` 构建目录，忽略格式不正确的条目。
    """
    if not isinstance(table, dict):
        return AlternativesCatalog()
    entries: dict[str, tuple[AlternativeSuggestion, ...]] = {}
    for package, raw_list in table.items():
        items = raw_list if isinstance(raw_list, list) else [raw_list]
        suggestions = tuple(s for s in (_suggestion_from_obj(obj) for obj in items) if s is not None)
        if suggestions:
            entries[str(package)] = suggestions
    return AlternativesCatalog(entries=entries)
