from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from npm_lens.alternatives import AlternativesCatalog, catalog_from_config
from npm_lens.errors import ConfigReadError
from npm_lens.npm_commands import PACKAGE_MANAGERS
from npm_lens.registry_client import DEFAULT_REGISTRY_URL, RegistrySettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    npm-lens 的运行配置（可来自配置文件、环境变量与 CLI 参数合并）。
    """

    registry: RegistrySettings = field(default_factory=RegistrySettings)
    max_concurrency: int = 20
    cache_ttl_s: int = 24 * 60 * 60
    use_cache: bool = True
    refresh: bool = False
    package_manager: str = "npm"
    exclude: tuple[str, ...] = ()
    discovery_depth: int = 2
    alternatives: AlternativesCatalog = field(default_factory=AlternativesCatalog)


def _find_default_config_file(cwd: Path) -> Path | None:
    """
    在当前目录查找默认配置文件路径。
    """
    candidates = [
        ".npm-lens.toml",
        ".npm-lens.yaml",
        ".npm-lens.yml",
        "npm-lens.toml",
        "npm-lens.yaml",
        "npm-lens.yml",
    ]
    for name in candidates:
        p = cwd / name
        if p.exists() and p.is_file():
            return p
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    """
    读取 YAML 配置文件（需要 PyYAML）。
    """
    import yaml

    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigReadError(f"cannot parse config file {path}: {exc}", path=path) from exc
    if not isinstance(data, dict):
        return {}
    return data


def _load_config_file(path: Path) -> dict[str, Any]:
    """
    读取 .toml 或 .yaml 配置文件，返回配置字典；文件无法解析时抛出 ConfigReadError。
    """
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = tomllib.loads(path.read_text(encoding="utf-8"))
            return data if isinstance(data, dict) else {}
        if suffix in {".yaml", ".yml"}:
            return _load_yaml(path)
    except OSError as exc:
        raise ConfigReadError(f"cannot read config file {path}: {exc}", path=path) from exc
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigReadError(f"cannot parse config file {path}: {exc}", path=path) from exc
    return {}


def _env_list(key: str) -> list[str]:
    """
    从环境变量读取列表（逗号分隔）。
    """
    value = os.environ.get(key)
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def load_config(config_path: str | None, *, cwd: Path | None = None) -> AppConfig:
    """
    从配置文件与环境变量加载 AppConfig（环境变量优先于配置文件）。
    """
    config_data: dict[str, Any] = {}
    if config_path:
        config_data = _load_config_file(Path(config_path))
    else:
        default = _find_default_config_file(cwd or Path.cwd())
        if default:
            logger.debug("using config file %s", default)
            config_data = _load_config_file(default)

    tool_cfg = config_data.get("npm_lens") if isinstance(config_data, dict) else {}
    if not isinstance(tool_cfg, dict):
        tool_cfg = {}

    registry_url = (
        os.environ.get("NPM_LENS_REGISTRY_URL")
        or str(tool_cfg.get("registry_url") or "")
        or DEFAULT_REGISTRY_URL
    )
    token = os.environ.get("NPM_LENS_TOKEN") or str(tool_cfg.get("token") or "") or None
    retries = _int(tool_cfg.get("retries", 2), 2)
    timeout_s = _float(tool_cfg.get("timeout_s") or 10.0, 10.0)

    settings = RegistrySettings(
        registry_url=registry_url,
        timeout_s=timeout_s,
        retries=max(0, retries),
        token=token,
    )

    max_concurrency = max(1, _int(tool_cfg.get("max_concurrency") or 20, 20))
    cache_ttl_s = _int(tool_cfg.get("cache_ttl_s") or (24 * 60 * 60), 24 * 60 * 60)
    use_cache = bool(tool_cfg.get("use_cache") if "use_cache" in tool_cfg else True)
    refresh = bool(tool_cfg.get("refresh") or False)
    package_manager = os.environ.get("NPM_LENS_PACKAGE_MANAGER") or str(tool_cfg.get("package_manager") or "npm")
    if package_manager not in PACKAGE_MANAGERS:
        logger.warning("unknown package manager %r, falling back to npm", package_manager)
        package_manager = "npm"
    exclude = tuple(_env_list("NPM_LENS_EXCLUDE") or list(tool_cfg.get("exclude") or []))
    discovery_depth = _int(tool_cfg.get("discovery_depth") or 2, 2)

    return AppConfig(
        registry=settings,
        max_concurrency=max_concurrency,
        cache_ttl_s=cache_ttl_s,
        use_cache=use_cache,
        refresh=refresh,
        package_manager=package_manager,
        exclude=exclude,
        discovery_depth=discovery_depth,
        alternatives=catalog_from_config(tool_cfg.get("alternatives")),
    )
