from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from npm_lens.models import RegistryInfo

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
NOT_FOUND_ERROR = "package not found"


@dataclass(frozen=True, slots=True)
class RegistrySettings:
    """
    npm registry 查询配置。
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    timeout_s: float = 10.0
    retries: int = 2
    token: str | None = None


def _build_headers(token: str | None) -> dict[str, str]:
    """
    基于认证配置构造 HTTP Header。
    """
    headers: dict[str, str] = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def parse_timestamp(raw: Any) -> datetime | None:
    """
    解析 registry time 字段中的 ISO-8601 时间戳（兼容结尾的 Z）。
    """
    if not isinstance(raw, str) or not raw:
        return None
    text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_packument(name: str, data: dict[str, Any]) -> RegistryInfo:
    """
    从 registry 返回的 packument 中提取版本、engines.node、latest 与发布时间。
    """
    versions: dict[str, str | None] = {}
    raw_versions = data.get("versions")
    if isinstance(raw_versions, dict):
        for version, manifest in raw_versions.items():
            engine = None
            if isinstance(manifest, dict):
                engines = manifest.get("engines")
                if isinstance(engines, dict) and isinstance(engines.get("node"), str):
                    engine = engines["node"]
            versions[str(version)] = engine

    dist_tags = data.get("dist-tags")
    latest = dist_tags.get("latest") if isinstance(dist_tags, dict) else None

    release_times: dict[str, datetime] = {}
    raw_times = data.get("time")
    if isinstance(raw_times, dict):
        for version, stamp in raw_times.items():
            if version in {"created", "modified"}:
                continue
            parsed = parse_timestamp(stamp)
            if parsed is not None:
                release_times[str(version)] = parsed

    return RegistryInfo(
        name=name,
        versions=versions,
        latest=str(latest) if latest else None,
        release_times=release_times,
        error=None,
    )


def not_found_info(name: str, error: str = NOT_FOUND_ERROR) -> RegistryInfo:
    return RegistryInfo(name=name, error=error)


async def _request_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    retries: int,
) -> tuple[dict[str, Any] | None, int | None, str | None]:
    """
    请求 JSON 并返回 (data, status_code, error)。
    """
    attempt = 0
    while True:
        try:
            resp = await client.get(url)
            if resp.status_code == 404:
                return None, 404, None
            if resp.status_code >= 400:
                return None, resp.status_code, f"http {resp.status_code}"
            data = resp.json()
            if not isinstance(data, dict):
                return None, resp.status_code, "invalid json: not an object"
            return data, resp.status_code, None
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            if attempt >= retries:
                return None, None, str(exc) or exc.__class__.__name__
            backoff = (2**attempt) * 0.25 + random.random() * 0.25
            attempt += 1
            await asyncio.sleep(backoff)
        except ValueError as exc:
            return None, None, f"invalid json: {exc}"


def build_package_url(registry_url: str, name: str) -> str:
    """
    生成 packument 的请求 URL（scoped 包名中的 / 编码为 %2f）。
    """
    base = registry_url.rstrip("/")
    if name.startswith("@"):
        return f"{base}/@{quote(name[1:], safe='')}"
    return f"{base}/{quote(name, safe='')}"


async def fetch_package_info(
    name: str,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
) -> RegistryInfo:
    """
    查询单个包的 registry 元数据；包不存在或请求失败时返回带 error 的 RegistryInfo 而不抛出异常。
    """
    url = build_package_url(settings.registry_url, name)
    data, status, error = await _request_json(client, url, retries=settings.retries)
    if status == 404:
        return not_found_info(name)
    if data is None:
        return not_found_info(name, error or "request failed")
    return parse_packument(name, data)


def create_async_client(settings: RegistrySettings) -> httpx.AsyncClient:
    """
    创建用于访问 registry 的 AsyncClient。
    """
    headers = _build_headers(settings.token)
    timeout = httpx.Timeout(settings.timeout_s)
    return httpx.AsyncClient(headers=headers, timeout=timeout, follow_redirects=True)
