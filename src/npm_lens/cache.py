from __future__ import annotations

import json
import os
import sqlite3
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from npm_lens.models import RegistryInfo
from npm_lens.registry_client import parse_timestamp


_SCHEMA_VERSION = 1


def default_cache_path() -> Path:
    """
    返回默认缓存数据库路径（用户目录下全局共用）。
    """
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / "npm-lens" / "cache.sqlite3"
        home = Path.home()
        return home / "AppData" / "Local" / "npm-lens" / "cache.sqlite3"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "npm-lens" / "cache.sqlite3"

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        return Path(xdg_cache_home) / "npm-lens" / "cache.sqlite3"

    return Path.home() / ".cache" / "npm-lens" / "cache.sqlite3"


def registry_scope_key(registry_url: str) -> str:
    """
    将 registry 地址归一化为缓存的 scope key。
    """
    return registry_url.strip().rstrip("/")


def info_to_payload(info: RegistryInfo) -> str:
    """
    将 RegistryInfo 序列化为缓存中保存的 JSON 文本。
    """
    return json.dumps(
        {
            "versions": info.versions,
            "latest": info.latest,
            "time": {v: t.isoformat() for v, t in info.release_times.items()},
        },
        sort_keys=True,
    )


def info_from_payload(name: str, payload: str | None, error: str | None) -> RegistryInfo:
    """
    由缓存的 JSON 文本还原 RegistryInfo；内容损坏时视为空的元数据。
    """
    data: Any = {}
    if payload:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            data = {}
    if not isinstance(data, dict):
        data = {}

    versions = data.get("versions") if isinstance(data.get("versions"), dict) else {}
    times = data.get("time") if isinstance(data.get("time"), dict) else {}
    release_times = {}
    for version, stamp in times.items():
        parsed = parse_timestamp(stamp)
        if parsed is not None:
            release_times[str(version)] = parsed

    latest = data.get("latest")
    return RegistryInfo(
        name=name,
        versions={str(k): (str(v) if isinstance(v, str) else None) for k, v in versions.items()},
        latest=str(latest) if latest else None,
        release_times=release_times,
        error=error,
    )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    单个包在缓存中的记录。
    """

    info: RegistryInfo
    fetched_at: int


class CacheDB:
    """
    SQLite 缓存数据库（全局共用）。
    """

    def __init__(self, path: Path) -> None:
        """
        初始化缓存数据库连接（必要时创建表结构）。
        """
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        """
        创建或升级缓存数据库表结构。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS packument_cache (
                scope TEXT NOT NULL,
                name TEXT NOT NULL,
                payload TEXT,
                error TEXT,
                fetched_at INTEGER NOT NULL,
                PRIMARY KEY (scope, name)
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key = 'schema_version'")
        row = cur.fetchone()
        if row is None:
            cur.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?)", (str(_SCHEMA_VERSION),))
            self._conn.commit()
            return

        if int(row["value"]) != _SCHEMA_VERSION:
            cur.execute("DELETE FROM packument_cache")
            cur.execute("UPDATE meta SET value = ? WHERE key = 'schema_version'", (str(_SCHEMA_VERSION),))
            self._conn.commit()

    def get(self, *, scope: str, name: str, ttl_s: int) -> CacheEntry | None:
        """
        获取缓存记录；若过期或不存在则返回 None。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            SELECT payload, error, fetched_at
            FROM packument_cache
            WHERE scope = ? AND name = ?
            """,
            (scope, name),
        )
        row = cur.fetchone()
        if row is None:
            return None

        fetched_at = int(row["fetched_at"])
        if ttl_s > 0 and (time.time() - fetched_at) > ttl_s:
            return None

        return CacheEntry(info=info_from_payload(name, row["payload"], row["error"]), fetched_at=fetched_at)

    def set(self, *, scope: str, info: RegistryInfo) -> None:
        """
        写入缓存记录（查询失败的结果只记录 error）。
        """
        payload = None if info.error else info_to_payload(info)
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO packument_cache(scope, name, payload, error, fetched_at)
            VALUES(?, ?, ?, ?, ?)
            ON CONFLICT(scope, name) DO UPDATE SET
                payload = excluded.payload,
                error = excluded.error,
                fetched_at = excluded.fetched_at
            """,
            (scope, info.name, payload, info.error, int(time.time())),
        )
        self._conn.commit()
