# -*- coding: utf-8 -*-
"""
GitHub REST client for the self-patch flow.

Capabilities used: read-ref, create-ref, get-file-at-ref, create-or-update-file
(with the file sha as optimistic-concurrency precondition), create-pull-request.

Every failure (transport, timeout, non-2xx, unexpected body) is a RemoteWriteError.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from orch_config import Settings
from orch_errors import RemoteWriteError


@dataclass(frozen=True)
class RemoteFile:
    path: str
    content: str
    sha: str


def _error_detail(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return (r.text or "")[:500]
    if isinstance(data, dict):
        msg = str(data.get("message") or "").strip()
        errs = data.get("errors")
        if isinstance(errs, list) and errs:
            extra = "; ".join(
                str(e.get("message") or e.get("code") or e) if isinstance(e, dict) else str(e)
                for e in errs[:5]
            )
            msg = f"{msg} ({extra})" if msg else extra
        if msg:
            return msg
    return (r.text or "")[:500]


class GitHubHost:
    def __init__(self, settings: Settings, *, session: Any = None) -> None:
        self.api_url = (settings.github_api_url or "https://api.github.com").rstrip("/")
        self.owner = settings.github_owner
        self.repo = settings.github_repo
        self.timeout = settings.source_timeout_s
        self.session = session if session is not None else requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {settings.github_token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

    def _repo_url(self, suffix: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{suffix.lstrip('/')}"

    def _request(self, step: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise RemoteWriteError(step, f"请求超时（{self.timeout:g} 秒）：{e}") from e
        except requests.RequestException as e:
            raise RemoteWriteError(step, str(e)) from e

        if not (200 <= r.status_code < 300):
            raise RemoteWriteError(step, _error_detail(r), status=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise RemoteWriteError(step, "响应不是合法 JSON。", status=r.status_code) from e
        if not isinstance(data, dict):
            raise RemoteWriteError(step, "响应格式异常。", status=r.status_code)
        return data

    # ---- refs ----

    def get_branch_sha(self, branch: str) -> str:
        step = f"读取分支 {branch}"
        data = self._request(step, "GET", self._repo_url(f"git/ref/heads/{quote(branch, safe='/')}"))
        obj = data.get("object")
        sha = obj.get("sha") if isinstance(obj, dict) else None
        if not isinstance(sha, str) or not sha:
            raise RemoteWriteError(step, "响应里没有 object.sha。")
        return sha

    def create_branch(self, name: str, sha: str) -> None:
        self._request(
            f"创建分支 {name}",
            "POST",
            self._repo_url("git/refs"),
            json={"ref": f"refs/heads/{name}", "sha": sha},
        )

    # ---- contents ----

    def get_file(self, path: str, ref: str) -> RemoteFile:
        step = f"读取文件 {path}@{ref}"
        data = self._request(
            step,
            "GET",
            self._repo_url(f"contents/{quote(path, safe='/')}"),
            params={"ref": ref},
        )
        sha = data.get("sha")
        encoded = data.get("content")
        if not isinstance(sha, str) or not isinstance(encoded, str):
            raise RemoteWriteError(step, "响应里缺少 content/sha（目标可能是目录）。")
        try:
            text = base64.b64decode(encoded).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise RemoteWriteError(step, f"文件内容无法按 UTF-8 解码：{e}") from e
        return RemoteFile(path=path, content=text, sha=sha)

    def put_file(self, path: str, content: str, *, sha: str, branch: str, message: str) -> Optional[str]:
        data = self._request(
            f"提交文件 {path}",
            "PUT",
            self._repo_url(f"contents/{quote(path, safe='/')}"),
            json={
                "message": message,
                "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                "sha": sha,
                "branch": branch,
            },
        )
        commit = data.get("commit") if isinstance(data.get("commit"), dict) else {}
        return commit.get("sha")

    # ---- pull requests ----

    def create_pull_request(self, *, head: str, base: str, title: str, body: str) -> str:
        step = "创建 Pull Request"
        data = self._request(
            step,
            "POST",
            self._repo_url("pulls"),
            json={"title": title, "head": head, "base": base, "body": body},
        )
        url = data.get("html_url")
        if not isinstance(url, str) or not url:
            raise RemoteWriteError(step, "响应里没有 html_url。")
        return url
