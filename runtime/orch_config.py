# -*- coding: utf-8 -*-
"""
Orchestrator config (environment-driven settings + pure helpers).

Hard rules:
- Read the environment at call time (load_settings()), never cache secrets at import.
- Missing credentials are only an error for the branch that needs them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from orch_errors import ConfigurationError

RUNTIME_DIR = Path(__file__).resolve().parent

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MARKER_START = "<!-- AUTO_DEV_START -->"
DEFAULT_MARKER_END = "<!-- AUTO_DEV_END -->"


def _env(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        v = float(raw)
    except ValueError:
        return default
    return v if v > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = DEFAULT_MODEL
    completion_timeout_s: float = 30.0

    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_owner: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    source_timeout_s: float = 20.0

    patch_target_file: str = ""
    patch_marker_start: str = DEFAULT_MARKER_START
    patch_marker_end: str = DEFAULT_MARKER_END

    host: str = "0.0.0.0"
    port: int = 3000
    ui_file: str = str(RUNTIME_DIR / "console.html")

    def require_openai(self) -> None:
        if not self.openai_api_key:
            raise ConfigurationError(["OPENAI_API_KEY"], purpose="对话")

    def require_github(self) -> None:
        missing = []
        if not self.github_token:
            missing.append("GITHUB_TOKEN")
        if not self.github_owner:
            missing.append("GITHUB_OWNER")
        if not self.github_repo:
            missing.append("GITHUB_REPO")
        if not self.patch_target_file:
            missing.append("ORCH_PATCH_TARGET_FILE")
        if missing:
            raise ConfigurationError(missing, purpose="/auto-dev")

    def present_flags(self) -> dict:
        """Which credentials are set (never their values); used for boot logging."""
        return {
            "openai_key": bool(self.openai_api_key),
            "github_token": bool(self.github_token),
            "github_repo": bool(self.github_owner and self.github_repo),
            "patch_target": bool(self.patch_target_file),
        }


def load_settings() -> Settings:
    return Settings(
        openai_api_key=_env("OPENAI_API_KEY"),
        openai_base_url=_env("OPENAI_BASE_URL").rstrip("/"),
        openai_model=_env("OPENAI_MODEL", DEFAULT_MODEL),
        completion_timeout_s=_env_float("ORCH_COMPLETION_TIMEOUT_S", 30.0),
        github_token=_env("GITHUB_TOKEN"),
        github_api_url=_env("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        github_owner=_env("GITHUB_OWNER"),
        github_repo=_env("GITHUB_REPO"),
        github_branch=_env("GITHUB_BRANCH", "main"),
        source_timeout_s=_env_float("ORCH_SOURCE_TIMEOUT_S", 20.0),
        patch_target_file=_env("ORCH_PATCH_TARGET_FILE"),
        patch_marker_start=_env("ORCH_PATCH_MARKER_START", DEFAULT_MARKER_START),
        patch_marker_end=_env("ORCH_PATCH_MARKER_END", DEFAULT_MARKER_END),
        host=_env("ORCH_HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
        ui_file=_env("ORCH_UI_FILE", str(RUNTIME_DIR / "console.html")),
    )
