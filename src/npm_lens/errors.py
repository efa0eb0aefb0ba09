from __future__ import annotations

from pathlib import Path


class NpmLensError(Exception):
    """
    npm-lens 所有可预期错误的基类。
    """

    kind = "error"


class ConfigReadError(NpmLensError):
    """
    package.json 不存在或无法解析（在任何写入之前中止整个项目的处理）。
    """

    kind = "config_read"

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigMutationError(NpmLensError):
    """
    目标依赖不在预期的 section 中（当前操作在写文件之前中止）。
    """

    kind = "config_mutation"


class ExternalCommandError(NpmLensError):
    """
    包管理器命令退出码非零或无法启动。
    """

    kind = "external_command"

    def __init__(
        self,
        message: str,
        *,
        command: list[str],
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class RollbackError(NpmLensError):
    """
    回滚写入本身失败；项目可能处于部分修改的状态。
    """

    kind = "rollback"
