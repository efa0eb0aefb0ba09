from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from npm_lens.errors import ConfigReadError
from npm_lens.models import MutationOperation, ReplaceOp, UpdateOp


def _require_str(obj: dict[str, Any], key: str, index: int) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigReadError(f"plan entry #{index}: missing or invalid {key!r}")
    return value


def operation_from_obj(obj: Any, index: int = 0) -> MutationOperation:
    """
    将计划文件中的一条记录转换为 UpdateOp / ReplaceOp。
    """
    if not isinstance(obj, dict):
        raise ConfigReadError(f"plan entry #{index}: expected an object")
    op_type = obj.get("type")
    if op_type == "update":
        return UpdateOp(
            name=_require_str(obj, "name", index),
            current_version=str(obj.get("current_version") or ""),
            target_version=_require_str(obj, "target_version", index),
        )
    if op_type == "replace":
        return ReplaceOp(
            original_name=_require_str(obj, "original_name", index),
            original_version=str(obj.get("original_version") or ""),
            alternative_name=_require_str(obj, "alternative_name", index),
            alternative_version=str(obj.get("alternative_version") or "latest"),
            reason=str(obj.get("reason") or ""),
        )
    raise ConfigReadError(f"plan entry #{index}: unknown operation type {op_type!r}")


def operation_to_obj(op: MutationOperation) -> dict[str, Any]:
    if isinstance(op, UpdateOp):
        return {
            "type": "update",
            "name": op.name,
            "current_version": op.current_version,
            "target_version": op.target_version,
        }
    return {
        "type": "replace",
        "original_name": op.original_name,
        "original_version": op.original_version,
        "alternative_name": op.alternative_name,
        "alternative_version": op.alternative_version,
        "reason": op.reason,
    }


def load_plan(path: Path) -> list[MutationOperation]:
    """
    读取 JSON 或 YAML 计划文件（顶层为列表，或为带 operations 键的对象）。
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigReadError(f"cannot read plan file {path}: {exc}", path=path) from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigReadError(f"cannot parse plan file {path}: {exc}", path=path) from exc

    if isinstance(data, dict):
        data = data.get("operations")
    if not isinstance(data, list):
        raise ConfigReadError(f"plan file {path} must contain a list of operations", path=path)
    return [operation_from_obj(obj, i) for i, obj in enumerate(data)]
