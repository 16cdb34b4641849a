# -*- coding: utf-8 -*-
"""
Self-patch engine: "/auto-dev <demand>" -> branch + commit + pull request.

Flow (strict order):
  1. model call (JSON-only system prompt)
  2. parse PatchInstruction from the raw reply
  3. read default-branch head sha
  4. create branch auto-dev-<timestamp> at that sha
  5. fetch target file + sha from the default branch
  6-7. splice new content between the markers
  8. commit to the new branch with the captured file sha as precondition
  9. open the pull request
  10. return its URL

The default branch is never written. run() never raises: every failure,
expected or not, becomes a readable reply. A branch created before a later
failure is left in place and named in the reply.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from model_client import CompletionClient
from orch_config import Settings, load_settings
from orch_errors import (
    ConfigurationError,
    MarkerNotFoundError,
    OrchestratorError,
    PatchFormatError,
    RemoteWriteError,
)
from path_engine import branch_name_for, normalize_repo_path
from patch_engine import (
    build_self_patch_system_prompt,
    build_unified_diff,
    parse_patch_instruction,
    splice_between_markers,
)
from source_host import GitHubHost

MAX_TITLE_CHARS = 72


def pr_title_for(demand: str) -> str:
    one_line = " ".join((demand or "").split())
    if len(one_line) > MAX_TITLE_CHARS:
        one_line = one_line[: MAX_TITLE_CHARS - 1].rstrip() + "…"
    return f"[auto-dev] {one_line}"


def pr_body_for(demand: str, file_path: str, diff_text: str) -> str:
    return (
        "由 /auto-dev 自动生成，请审核后再合并。\n\n"
        f"**需求**\n\n{(demand or '').strip()}\n\n"
        f"**修改文件**：`{file_path}`\n\n"
        f"```diff\n{diff_text.rstrip()}\n```\n"
    )


class SelfPatchEngine:
    def __init__(
        self,
        completion: CompletionClient,
        *,
        settings_loader: Callable[[], Settings] = load_settings,
        host_factory: Callable[[Settings], Any] = GitHubHost,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.completion = completion
        self.settings_loader = settings_loader
        self.host_factory = host_factory
        self.clock = clock

    def run(self, demand: str) -> str:
        try:
            url = self._run(demand)
        except PatchFormatError as e:
            print(f"[AUTO-DEV] bad instruction: {e.message}", flush=True)
            return f"自动开发失败：{e.user_message()}"
        except MarkerNotFoundError as e:
            print(f"[AUTO-DEV] markers missing: {e.missing!r}", flush=True)
            return f"自动开发失败：{e.user_message()}"
        except RemoteWriteError as e:
            print(f"[AUTO-DEV] {e.message} :: {e.detail}", flush=True)
            return f"自动开发失败：{e.user_message()}"
        except OrchestratorError as e:
            print(f"[AUTO-DEV] failed: {e.message}", flush=True)
            return f"自动开发失败：{e.user_message()}"
        except Exception as e:
            print(f"[AUTO-DEV] unexpected {type(e).__name__}: {e}", flush=True)
            return f"自动开发失败：内部错误 {type(e).__name__}: {e}"
        return f"已创建 PR：{url}"

    def _run(self, demand: str) -> str:
        s = self.settings_loader()
        s.require_github()
        try:
            target = normalize_repo_path(s.patch_target_file)
        except ValueError as e:
            raise ConfigurationError(["ORCH_PATCH_TARGET_FILE"], purpose="/auto-dev") from e

        # 1) model -> instruction text
        raw = self.completion.complete(
            [
                {
                    "role": "system",
                    "content": build_self_patch_system_prompt(
                        target, s.patch_marker_start, s.patch_marker_end
                    ),
                },
                {"role": "user", "content": demand},
            ]
        )

        # 2) parse
        parsed = parse_patch_instruction(raw)
        if not parsed.ok or parsed.instruction is None:
            raise PatchFormatError(parsed.error, raw_output=raw)
        inst = parsed.instruction
        try:
            file_path = normalize_repo_path(inst.file_path)
        except ValueError as e:
            raise PatchFormatError(str(e), raw_output=raw) from e
        if file_path != target:
            raise PatchFormatError(
                f"filePath {inst.file_path!r} 不是允许修改的文件 {target!r}。", raw_output=raw
            )

        host = self.host_factory(s)
        base = s.github_branch

        # 3) base sha
        base_sha = host.get_branch_sha(base)

        # 4) branch
        branch = branch_name_for(self.clock())
        host.create_branch(branch, base_sha)
        print(f"[AUTO-DEV] branch {branch} @ {base_sha[:7]}", flush=True)

        try:
            # 5) file from the default branch
            remote = host.get_file(file_path, base)

            # 6-7) splice
            try:
                updated = splice_between_markers(
                    remote.content, inst.marker_start, inst.marker_end, inst.new_content
                )
            except MarkerNotFoundError as e:
                e.file_path = file_path
                raise

            # 8) commit with the fetched sha as precondition
            host.put_file(
                file_path,
                updated,
                sha=remote.sha,
                branch=branch,
                message=pr_title_for(demand),
            )

            # 9) pull request
            diff_text = build_unified_diff(
                remote.content, updated, fromfile=f"a/{file_path}", tofile=f"b/{file_path}"
            )
            url = host.create_pull_request(
                head=branch,
                base=base,
                title=pr_title_for(demand),
                body=pr_body_for(demand, file_path, diff_text),
            )
        except OrchestratorError as e:
            e.branch = branch
            raise

        print(f"[AUTO-DEV] pull request {url}", flush=True)
        return url
