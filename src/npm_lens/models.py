from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class DependencyKind(str, Enum):
    """
    依赖类型：决定 package.json 中的 section 以及 npm 的持久化参数。
    """

    PRODUCTION = "dependencies"
    DEVELOPMENT = "devDependencies"
    OPTIONAL = "optionalDependencies"


class HealthTier(str, Enum):
    """
    单个依赖的健康等级（按严重程度递增，Unknown 单独处理）。
    """

    GREEN = "Green"
    YELLOW = "Yellow"
    ORANGE = "Orange"
    RED = "Red"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class ResolvedRange:
    """
    多个 engines.node 约束求交后的 Node.js 版本范围；全部为 None 表示没有满足的候选版本。
    """

    min: str | None = None
    max: str | None = None
    expression: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.min is None


@dataclass(frozen=True, slots=True)
class DependencyRecord:
    """
    一次项目扫描得到的已安装依赖（来自 lockfile 与 node_modules）。
    """

    name: str
    installed_version: str
    engine_constraint: str | None = None
    is_root: bool = False
    is_dev: bool = False
    is_optional: bool = False
    path: str = ""


@dataclass(frozen=True, slots=True)
class AlternativeSuggestion:
    """
    可替换当前依赖的候选包。
    """

    name: str
    version: str = "latest"
    reason: str = ""
    source: str = ""


@dataclass(frozen=True, slots=True)
class RegistryInfo:
    """
    从 npm registry 获取的单个包的元数据；error 非空表示查询失败或包不存在。
    """

    name: str
    versions: dict[str, str | None] = field(default_factory=dict)
    latest: str | None = None
    release_times: dict[str, datetime] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True, slots=True)
class UpdateOp:
    """
    将一个已有依赖更新到目标版本。
    """

    name: str
    current_version: str
    target_version: str


@dataclass(frozen=True, slots=True)
class ReplaceOp:
    """
    卸载一个依赖并以生产依赖的形式安装替代包。
    """

    original_name: str
    original_version: str
    alternative_name: str
    alternative_version: str = "latest"
    reason: str = ""


MutationOperation = Union[UpdateOp, ReplaceOp]


@dataclass(frozen=True, slots=True)
class MutationFailure:
    """
    一条失败的操作以及失败原因。
    """

    operation: MutationOperation
    error: str
    kind: str


@dataclass(slots=True)
class MutationResult:
    """
    一次 apply 运行的结果日志（遇到第一个失败即停止）。
    """

    succeeded: list[MutationOperation] = field(default_factory=list)
    failed: list[MutationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
