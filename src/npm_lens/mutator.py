from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, Iterable, Mapping

from npm_lens.errors import ConfigMutationError, ConfigReadError, NpmLensError, RollbackError
from npm_lens.manifest import (
    MANIFEST_NAME,
    delete_manifest_key,
    lockfile_path,
    manifest_path,
    parse_manifest_text,
    set_manifest_value,
)
from npm_lens.models import (
    DependencyKind,
    MutationFailure,
    MutationOperation,
    MutationResult,
    ReplaceOp,
    UpdateOp,
)
from npm_lens.npm_commands import CommandRunner, install_command, run_command, uninstall_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileSnapshot:
    """
    文件在某一时刻的原始字节；content 为 None 表示文件当时不存在。
    """

    path: Path
    content: bytes | None

    @classmethod
    def take(cls, path: Path) -> FileSnapshot:
        return cls(path=path, content=path.read_bytes() if path.is_file() else None)

    def restore(self) -> None:
        """
        将文件恢复为快照内容（快照时不存在的文件会被删除）。
        """
        if self.content is None:
            self.path.unlink(missing_ok=True)
        else:
            self.path.write_bytes(self.content)


class ManifestTransaction:
    """
    单个操作的回滚边界：进入时对 package.json 与 package-lock.json 做快照，
    以异常退出且 package.json 已被写入时原样恢复两者。
    """

    def __init__(self, project_path: Path) -> None:
        self._project_path = project_path
        self._dirty = False
        self.manifest: FileSnapshot | None = None
        self.lockfile: FileSnapshot | None = None

    def __enter__(self) -> ManifestTransaction:
        path = manifest_path(self._project_path)
        if not path.is_file():
            raise ConfigReadError(f"{MANIFEST_NAME} not found: {path}", path=path)
        self.manifest = FileSnapshot.take(path)
        self.lockfile = FileSnapshot.take(lockfile_path(self._project_path))
        return self

    @property
    def original_text(self) -> str:
        assert self.manifest is not None and self.manifest.content is not None
        try:
            return self.manifest.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigReadError(f"cannot decode {self.manifest.path}: {exc}", path=self.manifest.path) from exc

    def write_manifest(self, text: str) -> None:
        assert self.manifest is not None
        self._dirty = True
        self.manifest.path.write_bytes(text.encode("utf-8"))

    def rollback(self) -> None:
        """
        恢复快照；写入失败时抛出 RollbackError。
        """
        assert self.manifest is not None and self.lockfile is not None
        try:
            self.manifest.restore()
            self.lockfile.restore()
        except OSError as exc:
            raise RollbackError(f"Rollback failed for {self._project_path}: {exc}") from exc

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None or not self._dirty:
            return False
        logger.warning("Rolling back %s and %s", self.manifest.path.name, self.lockfile.path.name)
        try:
            self.rollback()
        except RollbackError as rollback_exc:
            logger.critical("%s (original error: %s)", rollback_exc, exc)
            raise RollbackError(f"{rollback_exc}; original error: {exc}") from exc
        logger.info("Rollback successful; run `npm install` to resync node_modules if needed")
        return False


def _load(content: str) -> dict[str, Any]:
    return parse_manifest_text(content, path=Path(MANIFEST_NAME)).require()


def update_manifest_content(content: str, name: str, target_version: str, kind: DependencyKind) -> str:
    """
    在内存中将 ``kind`` section 下的依赖版本改为 target_version；依赖不存在时抛出 ConfigMutationError。
    """
    data = _load(content)
    section = data.get(kind.value)
    if not isinstance(section, dict) or name not in section:
        raise ConfigMutationError(f"{name} is not listed in {kind.value}")
    return set_manifest_value(content, (kind.value, name), target_version)


def replace_manifest_content(
    content: str,
    original_name: str,
    alternative_name: str,
    alternative_version: str,
    original_kind: DependencyKind,
) -> str:
    """
    从原 section 删除被替换的依赖，并将替代包写入 dependencies（替代包总是作为生产依赖）。
    """
    data = _load(content)
    section = data.get(original_kind.value)
    if not isinstance(section, dict) or original_name not in section:
        raise ConfigMutationError(f"{original_name} is not listed in {original_kind.value}")
    content = delete_manifest_key(content, (original_kind.value, original_name))
    return set_manifest_value(content, (DependencyKind.PRODUCTION.value, alternative_name), alternative_version)


def _apply_update(
    project_path: Path,
    op: UpdateOp,
    kind: DependencyKind,
    runner: CommandRunner,
    package_manager: str,
) -> None:
    with ManifestTransaction(project_path) as tx:
        tx.write_manifest(update_manifest_content(tx.original_text, op.name, op.target_version, kind))
        logger.info("Updated %s to %s in %s", op.name, op.target_version, kind.value)
        runner(install_command(op.name, op.target_version, kind, package_manager=package_manager), project_path)


def _apply_replacement(
    project_path: Path,
    op: ReplaceOp,
    kind: DependencyKind,
    runner: CommandRunner,
    package_manager: str,
) -> None:
    with ManifestTransaction(project_path) as tx:
        tx.write_manifest(
            replace_manifest_content(
                tx.original_text,
                op.original_name,
                op.alternative_name,
                op.alternative_version,
                kind,
            )
        )
        logger.info("Replaced %s with %s in %s", op.original_name, op.alternative_name, MANIFEST_NAME)
        runner(uninstall_command(op.original_name, kind, package_manager=package_manager), project_path)
        runner(
            install_command(
                op.alternative_name,
                op.alternative_version,
                DependencyKind.PRODUCTION,
                package_manager=package_manager,
            ),
            project_path,
        )


def describe_operation(op: MutationOperation) -> str:
    if isinstance(op, UpdateOp):
        return f"update {op.name} {op.current_version} -> {op.target_version}"
    return f"replace {op.original_name}@{op.original_version} -> {op.alternative_name}@{op.alternative_version}"


def apply_operations(
    project_path: Path,
    operations: Iterable[MutationOperation],
    dependency_types: Mapping[str, DependencyKind],
    *,
    runner: CommandRunner | None = None,
    package_manager: str = "npm",
) -> MutationResult:
    """
    按顺序执行更新/替换队列；任一操作失败时回滚该操作并停止处理剩余操作。
    """
    run = runner or run_command
    result = MutationResult()

    for op in operations:
        logger.info("Attempting to %s", describe_operation(op))
        try:
            if isinstance(op, UpdateOp):
                kind = dependency_types.get(op.name, DependencyKind.PRODUCTION)
                _apply_update(project_path, op, kind, run, package_manager)
            else:
                kind = dependency_types.get(op.original_name, DependencyKind.PRODUCTION)
                _apply_replacement(project_path, op, kind, run, package_manager)
        except NpmLensError as exc:
            logger.error("Failed to %s: %s", describe_operation(op), exc)
            result.failed.append(MutationFailure(operation=op, error=str(exc), kind=exc.kind))
            break
        except OSError as exc:
            logger.error("Failed to %s: %s", describe_operation(op), exc)
            result.failed.append(MutationFailure(operation=op, error=str(exc), kind="io"))
            break
        except Exception as exc:
            logger.exception("Unexpected failure while trying to %s", describe_operation(op))
            result.failed.append(MutationFailure(operation=op, error=str(exc) or type(exc).__name__, kind="unexpected"))
            break
        result.succeeded.append(op)

    if result.failed:
        logger.warning("Stopping further operations due to an error")
    return result
