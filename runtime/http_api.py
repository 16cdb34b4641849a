# -*- coding: utf-8 -*-
"""
HTTP API for the orchestrator.

Design:
- No import of server.py (avoids circular imports).
- server.py builds one AppContext at startup and passes it to register_routes().
- Blocking work (model / GitHub calls) runs in asyncio.to_thread so one slow
  upstream never stalls other requests.
- Every OrchestratorError becomes a JSON response; handlers never let one escape.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aiohttp import web

import capabilities
from chat_pipeline import ALLOWED_ROLES, run_chat_turn, run_demo
from memory_store import MemoryStore
from model_client import CompletionClient
from orch_config import Settings, load_settings
from orch_errors import OrchestratorError, UpstreamError
from self_patch import SelfPatchEngine

ROOT_FALLBACK_TEXT = "AI Orchestrator 正在运行 🚀 ，访问 /demo 看示例。"
HEALTH_TEXT = "ok"


@dataclass
class AppContext:
    settings_loader: Callable[[], Settings] = load_settings
    memory: MemoryStore = field(default_factory=MemoryStore)
    completion: Optional[CompletionClient] = None
    self_patch: Optional[SelfPatchEngine] = None

    def __post_init__(self) -> None:
        if self.completion is None:
            self.completion = CompletionClient(self.settings_loader)
        if self.self_patch is None:
            self.self_patch = SelfPatchEngine(self.completion, settings_loader=self.settings_loader)


def _error_response(e: OrchestratorError) -> web.Response:
    if isinstance(e, UpstreamError):
        status = 502
    else:
        status = 500
    payload: Dict[str, Any] = {"error": e.message}
    if e.detail:
        payload["detail"] = e.detail
    print(f"[HTTP] {status} {type(e).__name__}: {e.message}", flush=True)
    return web.json_response(payload, status=status)


def _bad_request(msg: str) -> web.Response:
    return web.json_response({"error": msg}, status=400)


def validate_history(payload: Any) -> Optional[List[Dict[str, str]]]:
    """Return the validated history list, or None if the body shape is wrong."""
    if not isinstance(payload, dict):
        return None
    history = payload.get("history")
    if not isinstance(history, list) or not history:
        return None
    out: List[Dict[str, str]] = []
    for turn in history:
        if not isinstance(turn, dict):
            return None
        role = turn.get("role")
        content = turn.get("content")
        if role not in ALLOWED_ROLES or not isinstance(content, str):
            return None
        out.append({"role": role, "content": content})
    return out


def register_routes(app: web.Application, *, ctx: AppContext) -> None:
    """Register aiohttp routes on the given app."""

    async def handle_root(request: web.Request) -> web.StreamResponse:
        ui_path = Path(ctx.settings_loader().ui_file).expanduser()
        if not ui_path.is_file():
            return web.Response(text=ROOT_FALLBACK_TEXT, content_type="text/plain", charset="utf-8")
        resp = web.FileResponse(path=ui_path)
        resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return resp

    async def handle_health(request: web.Request) -> web.Response:
        return web.Response(text=HEALTH_TEXT, content_type="text/plain")

    async def handle_chat(request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return _bad_request("Expected JSON body.")

        history = validate_history(payload)
        if history is None:
            return _bad_request("history must be a non-empty list of {role, content} turns.")

        try:
            reply = await asyncio.to_thread(
                run_chat_turn,
                history,
                memory=ctx.memory,
                completion=ctx.completion,
                self_patch=ctx.self_patch,
            )
        except OrchestratorError as e:
            return _error_response(e)
        return web.json_response({"reply": reply})

    async def handle_demo(request: web.Request) -> web.Response:
        try:
            text = await asyncio.to_thread(run_demo, ctx.completion)
        except OrchestratorError as e:
            print(f"[HTTP] /demo failed: {e.message}", flush=True)
            detail = e.detail or e.message
            return web.Response(
                status=500,
                text="出错了：" + detail,
                content_type="text/plain",
                charset="utf-8",
            )
        return web.Response(text=text, content_type="text/plain", charset="utf-8")

    async def handle_get_memory(request: web.Request) -> web.Response:
        notes = list(ctx.memory.notes())
        return web.json_response({"notes": notes, "count": len(notes)})

    async def handle_get_capabilities(request: web.Request) -> web.Response:
        return web.json_response({"ok": True, "capabilities": capabilities.get_registry_json()})

    # ---- Route registrations (single place) ----
    app.router.add_get("/", handle_root)
    app.router.add_get("/health", handle_health)
    app.router.add_post("/chat", handle_chat)
    app.router.add_get("/demo", handle_demo)
    app.router.add_get("/memory", handle_get_memory)
    app.router.add_get("/capabilities", handle_get_capabilities)


def create_app(ctx: Optional[AppContext] = None) -> web.Application:
    app = web.Application()
    register_routes(app, ctx=ctx or AppContext())
    return app
