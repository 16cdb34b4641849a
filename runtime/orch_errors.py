# -*- coding: utf-8 -*-
"""
Error taxonomy for the orchestrator.

Every error here is caught at the request boundary and turned into a readable
reply; none of them should ever take the process down.
"""

from __future__ import annotations

from typing import List, Optional


class OrchestratorError(RuntimeError):
    """Base class; user_message() is what the console renders inline."""

    def __init__(self, message: str, *, detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or ""
        # Set by the self-patch flow once a branch exists (never rolled back).
        self.branch = ""

    def _branch_note(self) -> str:
        if not self.branch:
            return ""
        return f"已创建的分支 {self.branch} 未被删除，可手动清理。"

    def user_message(self) -> str:
        lines = [self.message]
        if self.detail:
            lines.append(self.detail)
        note = self._branch_note()
        if note:
            lines.append(note)
        return "\n".join(lines)


class ConfigurationError(OrchestratorError):
    """A required credential/setting is missing."""

    def __init__(self, missing: List[str], *, purpose: str = "") -> None:
        names = ", ".join(missing)
        msg = f"缺少配置：{names}，请在环境变量里配置。"
        if purpose:
            msg = f"{msg}（{purpose}需要）"
        super().__init__(msg)
        self.missing = list(missing)


class UpstreamError(OrchestratorError):
    """Completion endpoint unreachable, timed out, or returned an unexpected shape."""


class PatchFormatError(OrchestratorError):
    def __init__(self, message: str, *, raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_output = raw_output or ""

    def user_message(self) -> str:
        raw = self.raw_output.strip()
        if not raw:
            return self.message
        return f"{self.message}\n模型原始输出：\n{raw[:2000]}"


class MarkerNotFoundError(OrchestratorError):
    def __init__(self, missing: List[str], *, file_path: str = "") -> None:
        names = "、".join(repr(m) for m in missing)
        super().__init__(f"在目标文件中找不到标记 {names}")
        self.missing = list(missing)
        self.file_path = file_path

    def user_message(self) -> str:
        where = f"（文件 {self.file_path}）" if self.file_path else ""
        lines = [f"{self.message}{where}，请检查标记文本是否与文件内容完全一致。"]
        note = self._branch_note()
        if note:
            lines.append(note)
        return "\n".join(lines)


class RemoteWriteError(OrchestratorError):
    PERMISSION_HINT = "请确认 GITHUB_TOKEN 具有仓库 contents 与 pull requests 的写权限。"

    def __init__(self, step: str, detail: str, *, status: Optional[int] = None) -> None:
        code = f" (HTTP {status})" if status else ""
        super().__init__(f"GitHub 操作失败：{step}{code}", detail=detail)
        self.step = step
        self.status = status

    def user_message(self) -> str:
        lines = [self.message]
        if self.detail:
            lines.append(f"详情：{self.detail}")
        note = self._branch_note()
        if note:
            lines.append(note)
        lines.append(self.PERMISSION_HINT)
        return "\n".join(lines)
