from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from npm_lens.models import MutationResult
from npm_lens.plan import operation_to_obj
from npm_lens.report import ProjectReport


def report_to_json_obj(report: ProjectReport) -> dict[str, Any]:
    """
    将报告转换为可 JSON 序列化的字典结构。
    """
    data = asdict(report)
    for item in data.get("updates", []):
        if item.get("health") is not None:
            item["health"] = str(item["health"].value)
    return data


def render_json(report: ProjectReport | list[ProjectReport]) -> str:
    """
    渲染 JSON 输出（多个项目时输出数组）。
    """
    if isinstance(report, list):
        return json.dumps([report_to_json_obj(r) for r in report], ensure_ascii=False, indent=2)
    return json.dumps(report_to_json_obj(report), ensure_ascii=False, indent=2)


def mutation_result_to_json_obj(result: MutationResult) -> dict[str, Any]:
    return {
        "ok": result.ok,
        "succeeded": [operation_to_obj(op) for op in result.succeeded],
        "failed": [
            {"operation": operation_to_obj(f.operation), "error": f.error, "kind": f.kind}
            for f in result.failed
        ],
    }


def render_mutation_result(result: MutationResult) -> str:
    return json.dumps(mutation_result_to_json_obj(result), ensure_ascii=False, indent=2)
