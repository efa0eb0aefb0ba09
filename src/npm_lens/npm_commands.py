from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from npm_lens.errors import ExternalCommandError
from npm_lens.models import DependencyKind

logger = logging.getLogger(__name__)

_SAVE_FLAGS = {
    "npm": {
        DependencyKind.PRODUCTION: "--save",
        DependencyKind.DEVELOPMENT: "--save-dev",
        DependencyKind.OPTIONAL: "--save-optional",
    },
    "pnpm": {
        DependencyKind.PRODUCTION: "--save-prod",
        DependencyKind.DEVELOPMENT: "--save-dev",
        DependencyKind.OPTIONAL: "--save-optional",
    },
    "yarn": {
        DependencyKind.PRODUCTION: None,
        DependencyKind.DEVELOPMENT: "--dev",
        DependencyKind.OPTIONAL: "--optional",
    },
}

# (install, uninstall)
_VERBS = {
    "npm": ("install", "uninstall"),
    "pnpm": ("add", "remove"),
    "yarn": ("add", "remove"),
}

PACKAGE_MANAGERS = tuple(_VERBS)


def _verbs(package_manager: str) -> tuple[str, str]:
    if package_manager not in _VERBS:
        raise ValueError(f"unsupported package manager: {package_manager!r}")
    return _VERBS[package_manager]


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """
    成功执行的命令输出。
    """

    stdout: str
    stderr: str


CommandRunner = Callable[[list[str], Path], CommandOutput]


def install_command(
    name: str,
    version: str,
    kind: DependencyKind,
    *,
    package_manager: str = "npm",
) -> list[str]:
    """
    生成 ``npm install name@version`` 命令（pnpm/yarn 使用 add），按依赖类型选择持久化参数。
    """
    verb, _ = _verbs(package_manager)
    command = [package_manager, verb, f"{name}@{version}"]
    flag = _SAVE_FLAGS[package_manager][kind]
    if flag:
        command.append(flag)
    return command


def uninstall_command(name: str, kind: DependencyKind, *, package_manager: str = "npm") -> list[str]:
    """
    生成 ``npm uninstall name`` 命令；生产依赖使用包管理器的默认行为。
    """
    _, verb = _verbs(package_manager)
    command = [package_manager, verb, name]
    if package_manager == "npm" and kind != DependencyKind.PRODUCTION:
        command.append(_SAVE_FLAGS["npm"][kind])
    return command


def format_command(command: list[str]) -> str:
    return shlex.join(command)


def run_command(command: list[str], cwd: Path) -> CommandOutput:
    """
    在项目目录中执行命令并等待结束；退出码非零或无法启动时抛出 ExternalCommandError。
    """
    display = format_command(command)
    logger.info("Running: %s (cwd=%s)", display, cwd)
    try:
        result = subprocess.run(command, cwd=cwd, capture_output=True, text=True)
    except OSError as exc:
        raise ExternalCommandError(f'Command "{display}" could not start: {exc}', command=command) from exc

    if result.returncode != 0:
        raise ExternalCommandError(
            f'Command "{display}" failed with exit code {result.returncode}\n'
            f"STDOUT: {result.stdout}\nSTDERR: {result.stderr}",
            command=command,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return CommandOutput(stdout=result.stdout, stderr=result.stderr)
