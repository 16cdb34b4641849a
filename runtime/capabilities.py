# -*- coding: utf-8 -*-
"""
capabilities.py

Code-backed capabilities registry for the orchestrator.

Purpose:
- Provide a stable map of "feature -> where implemented" served at
  GET /capabilities and checked by `server.py --smoke`.

Notes:
- This module MUST be pure (no side effects) and safe to import anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Capability:
    id: str
    name: str
    purpose: str
    entrypoints: List[str]
    implementation: List[str]
    state_and_artifacts: List[str]


_REGISTRY: List[Capability] = [
    Capability(
        id="http.console",
        name="Operator console",
        purpose="Serve the static chat console page.",
        entrypoints=["HTTP GET /"],
        implementation=["http_api.register_routes() -> handle_root()"],
        state_and_artifacts=["Reads: ORCH_UI_FILE (default runtime/console.html)"],
    ),
    Capability(
        id="http.health",
        name="Liveness",
        purpose="Fixed liveness string for platform health checks.",
        entrypoints=["HTTP GET /health"],
        implementation=["http_api.register_routes() -> handle_health()"],
        state_and_artifacts=["None"],
    ),
    Capability(
        id="http.chat",
        name="Chat relay",
        purpose="Route the latest user turn to memory-write, self-patch, or default chat and return one reply.",
        entrypoints=["HTTP POST /chat {history:[{role, content}, ...]}"],
        implementation=[
            "http_api.register_routes() -> handle_chat()",
            "chat_commands.classify()",
            "chat_pipeline.run_chat_turn()",
            "model_client.CompletionClient.complete()",
        ],
        state_and_artifacts=["Reads: memory_store.MemoryStore (process memory)"],
    ),
    Capability(
        id="chat.memory",
        name="Memory notes",
        purpose="Store '记住：...' notes in process memory and inject them into every default-chat system prompt.",
        entrypoints=["Chat text: 记住：<note> | 记住:<note>", "HTTP GET /memory"],
        implementation=[
            "chat_pipeline.run_chat_turn() (MemoryWrite branch)",
            "memory_store.MemoryStore.append() / render_prefix()",
        ],
        state_and_artifacts=["Writes: process memory only (cleared on restart)"],
    ),
    Capability(
        id="chat.auto_dev",
        name="Self-patch via pull request",
        purpose="Turn a demand into a marker-bounded edit committed on a fresh branch with a pull request.",
        entrypoints=["Chat text: /auto-dev <demand>"],
        implementation=[
            "self_patch.SelfPatchEngine.run()",
            "patch_engine.parse_patch_instruction() / splice_between_markers()",
            "source_host.GitHubHost",
        ],
        state_and_artifacts=[
            "Writes (GitHub): refs/heads/auto-dev-<timestamp>",
            "Writes (GitHub): one commit to ORCH_PATCH_TARGET_FILE on that branch",
            "Writes (GitHub): pull request into GITHUB_BRANCH",
        ],
    ),
    Capability(
        id="http.demo",
        name="Multi-role demo",
        purpose="Run three role prompts plus a summary against a fixed goal and return plain text.",
        entrypoints=["HTTP GET /demo"],
        implementation=["http_api.register_routes() -> handle_demo()", "chat_pipeline.run_demo()"],
        state_and_artifacts=["None (four completion calls)"],
    ),
    Capability(
        id="http.capabilities",
        name="Capabilities registry",
        purpose="Expose this registry as JSON.",
        entrypoints=["HTTP GET /capabilities"],
        implementation=["http_api.register_routes() -> handle_get_capabilities()"],
        state_and_artifacts=["None"],
    ),
]

REQUIRED_IDS = [
    "http.console",
    "http.health",
    "http.chat",
    "chat.memory",
    "chat.auto_dev",
    "http.demo",
]


def _norm_id(s: str) -> str:
    return str(s or "").strip()


def validate_registry(*, required_ids: Optional[List[str]] = None) -> List[str]:
    """
    Deterministic validation of the registry.
    Returns a list of human-readable errors. Empty list means OK.
    """
    errs: List[str] = []

    seen: set = set()
    for i, c in enumerate(_REGISTRY):
        cid = _norm_id(c.id)
        if not cid:
            errs.append(f"registry[{i}] missing id")
            continue
        if cid in seen:
            errs.append(f"duplicate capability id: {cid}")
        seen.add(cid)

        if not _norm_id(c.name):
            errs.append(f"{cid}: missing name")
        if not _norm_id(c.purpose):
            errs.append(f"{cid}: missing purpose")
        for label, items in (
            ("entrypoints", c.entrypoints),
            ("implementation", c.implementation),
            ("state_and_artifacts", c.state_and_artifacts),
        ):
            if not isinstance(items, list) or not any(str(x).strip() for x in items):
                errs.append(f"{cid}: {label} empty")

    for rid in (_norm_id(x) for x in (required_ids or [])):
        if rid and rid not in seen:
            errs.append(f"missing required capability: {rid}")

    return errs


def smoke_test_registry(*, required_ids: List[str]) -> Tuple[bool, str]:
    errs = validate_registry(required_ids=required_ids)
    if errs:
        return False, "capabilities registry FAILED:\n- " + "\n- ".join(errs[:40])
    return True, "ok"


def get_registry_json() -> List[Dict[str, Any]]:
    return [asdict(c) for c in _REGISTRY]
