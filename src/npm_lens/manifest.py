from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from npm_lens.errors import ConfigReadError
from npm_lens.models import DependencyKind

MANIFEST_NAME = "package.json"
LOCKFILE_NAME = "package-lock.json"


class ManifestStatus(str, Enum):
    """
    读取 package.json 的结果状态。
    """

    OK = "ok"
    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True, slots=True)
class ManifestReadResult:
    """
    package.json 的读取结果：区分“不存在”“解析失败”与“成功”。
    """

    path: Path
    status: ManifestStatus
    data: dict[str, Any] = field(default_factory=dict)
    text: str = ""
    error: str | None = None

    def require(self) -> dict[str, Any]:
        """
        成功时返回解析后的数据，否则抛出 ConfigReadError。
        """
        if self.status == ManifestStatus.NOT_FOUND:
            raise ConfigReadError(f"{MANIFEST_NAME} not found: {self.path}", path=self.path)
        if self.status == ManifestStatus.PARSE_ERROR:
            raise ConfigReadError(f"cannot parse {self.path}: {self.error}", path=self.path)
        return self.data


@dataclass(frozen=True, slots=True)
class ManifestDependencies:
    """
    package.json 中按 section 划分的直接依赖（name -> 版本范围）。
    """

    dependencies: dict[str, str]
    dev_dependencies: dict[str, str]
    optional_dependencies: dict[str, str]
    peer_dependencies: dict[str, str]


def manifest_path(project_path: Path) -> Path:
    return project_path / MANIFEST_NAME


def lockfile_path(project_path: Path) -> Path:
    return project_path / LOCKFILE_NAME


def parse_manifest_text(text: str, *, path: Path) -> ManifestReadResult:
    """
    解析 package.json 文本；顶层必须是 JSON 对象。
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        return ManifestReadResult(path=path, status=ManifestStatus.PARSE_ERROR, text=text, error=str(exc))
    if not isinstance(data, dict):
        return ManifestReadResult(
            path=path,
            status=ManifestStatus.PARSE_ERROR,
            text=text,
            error="top-level value is not an object",
        )
    return ManifestReadResult(path=path, status=ManifestStatus.OK, data=data, text=text)


def read_manifest(project_path: Path) -> ManifestReadResult:
    """
    读取项目根目录下的 package.json。
    """
    path = manifest_path(project_path)
    if not path.is_file():
        return ManifestReadResult(path=path, status=ManifestStatus.NOT_FOUND)
    try:
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ManifestReadResult(path=path, status=ManifestStatus.PARSE_ERROR, error=str(exc))
    return parse_manifest_text(text, path=path)


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def extract_dependencies(data: dict[str, Any]) -> ManifestDependencies:
    """
    从 package.json 数据中提取各 section 的直接依赖。
    """
    return ManifestDependencies(
        dependencies=_string_map(data.get("dependencies")),
        dev_dependencies=_string_map(data.get("devDependencies")),
        optional_dependencies=_string_map(data.get("optionalDependencies")),
        peer_dependencies=_string_map(data.get("peerDependencies")),
    )


def root_engine_constraint(data: dict[str, Any]) -> str | None:
    """
    返回 package.json 中的 engines.node（不存在或不是字符串时返回 None）。
    """
    engines = data.get("engines")
    if not isinstance(engines, dict):
        return None
    node = engines.get("node")
    return node if isinstance(node, str) and node.strip() else None


def section_kind(data: dict[str, Any], name: str) -> DependencyKind | None:
    """
    返回直接依赖所在的 section；不存在时返回 None。
    """
    for kind in (DependencyKind.PRODUCTION, DependencyKind.DEVELOPMENT, DependencyKind.OPTIONAL):
        section = data.get(kind.value)
        if isinstance(section, dict) and name in section:
            return kind
    return None


@dataclass(frozen=True, slots=True)
class _Member:
    key: str
    key_start: int
    key_end: int
    value_start: int
    value_end: int


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i] in " \t\r\n":
        i += 1
    return i


def _string_end(text: str, i: int) -> int:
    i += 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i + 1
        i += 1
    raise ValueError("unterminated string")


def _value_end(text: str, i: int) -> int:
    if text[i] == '"':
        return _string_end(text, i)
    if text[i] in "{[":
        depth = 0
        while i < len(text):
            ch = text[i]
            if ch == '"':
                i = _string_end(text, i)
                continue
            if ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        raise ValueError("unterminated container")
    while i < len(text) and text[i] not in ",}] \t\r\n":
        i += 1
    return i


def _members(text: str, open_index: int) -> tuple[list[_Member], int]:
    """
    扫描 ``open_index`` 处的 JSON 对象，返回各成员在原文中的位置以及 ``}`` 的下标。
    """
    members: list[_Member] = []
    i = _skip_ws(text, open_index + 1)
    if text[i] == "}":
        return members, i
    while True:
        key_end = _string_end(text, i)
        colon = _skip_ws(text, key_end)
        value_start = _skip_ws(text, colon + 1)
        value_end = _value_end(text, value_start)
        members.append(_Member(json.loads(text[i:key_end]), i, key_end, value_start, value_end))
        i = _skip_ws(text, value_end)
        if text[i] != ",":
            return members, i
        i = _skip_ws(text, i + 1)


def _last(members: list[_Member], key: str) -> int | None:
    # 重复键以最后一个为准，与 json.loads 一致
    for index in range(len(members) - 1, -1, -1):
        if members[index].key == key:
            return index
    return None


def _line_indent(text: str, index: int) -> str:
    start = text.rfind("\n", 0, index) + 1
    end = start
    while end < index and text[end] in " \t":
        end += 1
    return text[start:end]


def _newline(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def detect_indent(text: str) -> int | str:
    """
    根据根对象第一个键所在行的缩进推断 JSON 缩进；使用 tab 时保留 tab，默认 2 个空格。
    """
    open_index = text.find("{")
    if open_index < 0:
        return 2
    try:
        members, _ = _members(text, open_index)
    except (ValueError, IndexError):
        return 2
    if not members or "\n" not in text[open_index : members[0].key_start]:
        return 2
    indent = _line_indent(text, members[0].key_start)
    if not indent:
        return 2
    if "\t" in indent:
        return "\t"
    return len(indent)


def _render_new(text: str, value: Any, outer: str) -> str:
    """
    渲染新插入的值；对象按原文件的缩进单位与换行符展开。
    """
    if not isinstance(value, dict) or not value:
        return json.dumps(value, ensure_ascii=False)
    indent = detect_indent(text)
    unit = indent if isinstance(indent, str) else " " * indent
    nl = _newline(text)
    inner = outer + unit
    lines = [f"{inner}{json.dumps(k, ensure_ascii=False)}: {_render_new(text, v, inner)}" for k, v in value.items()]
    return "{" + nl + f",{nl}".join(lines) + nl + outer + "}"


def _insert_member(text: str, open_index: int, key: str, value: Any) -> str:
    members, close = _members(text, open_index)
    entry = json.dumps(key, ensure_ascii=False)
    if not members:
        indent = detect_indent(text)
        unit = indent if isinstance(indent, str) else " " * indent
        nl = _newline(text)
        outer = _line_indent(text, open_index)
        member_indent = outer + unit
        body = f"{nl}{member_indent}{entry}: {_render_new(text, value, member_indent)}{nl}{outer}"
        return text[: open_index + 1] + body + text[close:]

    last = members[-1]
    lead_from = open_index + 1 if len(members) == 1 else text.index(",", members[-2].value_end) + 1
    lead = text[lead_from : last.key_start]
    colon = text[last.key_end : last.value_start]
    rendered = _render_new(text, value, _line_indent(text, last.key_start))
    return text[: last.value_end] + f",{lead}{entry}{colon}{rendered}" + text[last.value_end :]


def set_manifest_value(text: str, path: tuple[str, ...], value: Any) -> str:
    """
    在原文本中把 ``path`` 指向的值改为 ``value``，缺失的键按所在对象的格式追加到末尾。

    只改动涉及的字节：换行符、行内数组、转义写法与键顺序都保持原样。
    """
    open_index = text.find("{")
    for depth, key in enumerate(path):
        members, _ = _members(text, open_index)
        index = _last(members, key)
        rest = path[depth + 1 :]
        nested: Any = value
        for inner_key in reversed(rest):
            nested = {inner_key: nested}
        if index is None:
            return _insert_member(text, open_index, key, nested)
        member = members[index]
        if not rest or text[member.value_start] != "{":
            rendered = _render_new(text, nested, _line_indent(text, member.key_start))
            return text[: member.value_start] + rendered + text[member.value_end :]
        open_index = member.value_start
    return text


def delete_manifest_key(text: str, path: tuple[str, ...]) -> str:
    """
    从原文本中删除 ``path`` 指向的成员（连同相邻的逗号），其余字节不变；不存在时原样返回。
    """
    open_index = text.find("{")
    for key in path[:-1]:
        members, _ = _members(text, open_index)
        index = _last(members, key)
        if index is None or text[members[index].value_start] != "{":
            return text
        open_index = members[index].value_start

    members, close = _members(text, open_index)
    index = _last(members, path[-1])
    if index is None:
        return text
    member = members[index]
    if len(members) == 1:
        return text[: open_index + 1] + text[close:]
    if index < len(members) - 1:
        return text[: member.key_start] + text[members[index + 1].key_start :]
    return text[: members[index - 1].value_end] + text[member.value_end :]


def update_engines_field(project_path: Path, node_range: str) -> None:
    """
    将 engines.node 写回 package.json，只改动该字段。
    """
    result = read_manifest(project_path)
    result.require()
    updated = set_manifest_value(result.text, ("engines", "node"), node_range)
    result.path.write_bytes(updated.encode("utf-8"))
