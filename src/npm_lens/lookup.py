from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from npm_lens.cache import CacheDB, registry_scope_key
from npm_lens.models import RegistryInfo
from npm_lens.registry_client import NOT_FOUND_ERROR, RegistrySettings, create_async_client, fetch_package_info

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LookupStats:
    """
    registry 查询统计信息。
    """

    total: int
    cache_hits: int
    fetched: int


def _cacheable(info: RegistryInfo) -> bool:
    return info.error is None or info.error == NOT_FOUND_ERROR


async def fetch_registry_infos(
    names: list[str],
    *,
    settings: RegistrySettings,
    max_concurrency: int,
    cache: CacheDB | None,
    cache_ttl_s: int,
    refresh: bool,
    on_fetch_start: Callable[[int], Any] | None = None,
    on_fetch_complete: Callable[[], Any] | None = None,
) -> tuple[dict[str, RegistryInfo], LookupStats]:
    """
    并行获取多个包的 registry 元数据，支持用户目录全局缓存与增量更新。

    网络错误的结果不写入缓存，下次运行时会重新查询。
    """
    scope = registry_scope_key(settings.registry_url)
    results: dict[str, RegistryInfo] = {}

    cache_hits = 0
    to_fetch: list[str] = []
    for name in names:
        if cache is None or refresh:
            to_fetch.append(name)
            continue

        entry = cache.get(scope=scope, name=name, ttl_s=cache_ttl_s)
        if entry is None:
            to_fetch.append(name)
            continue

        cache_hits += 1
        results[name] = entry.info

    logger.debug("registry lookup: %d cached, %d to fetch from %s", cache_hits, len(to_fetch), scope)
    if on_fetch_start is not None:
        on_fetch_start(len(to_fetch))

    if to_fetch:
        sem = asyncio.Semaphore(max(1, max_concurrency))
        async with create_async_client(settings) as client:

            async def worker(n: str) -> None:
                async with sem:
                    res = await fetch_package_info(n, settings=settings, client=client)
                    results[n] = res
                    if res.error:
                        logger.debug("lookup of %s failed: %s", n, res.error)
                    if cache is not None and _cacheable(res):
                        cache.set(scope=scope, info=res)
                    if on_fetch_complete is not None:
                        on_fetch_complete()

            await asyncio.gather(*(worker(n) for n in to_fetch))

    stats = LookupStats(total=len(names), cache_hits=cache_hits, fetched=len(to_fetch))
    return results, stats
