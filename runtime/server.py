# -*- coding: utf-8 -*-
"""
AI Orchestrator server

Goals:
- Relay chat turns to an OpenAI-compatible completion endpoint (one reply per request).
- Keep "记住：" notes in process memory and inject them into every chat prompt.
- "/auto-dev <demand>": marker-bounded self-patch proposed as a GitHub pull request.
- HTTP only (aiohttp): /, /chat, /demo, /health, /memory, /capabilities.

Environment variables (a .env file in the working directory is loaded too):
- OPENAI_API_KEY                (required for model calls)
- OPENAI_BASE_URL               (optional, for OpenAI-compatible servers)
- OPENAI_MODEL                  (default: gpt-4o-mini)
- ORCH_COMPLETION_TIMEOUT_S     (default: 30)
- GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO, GITHUB_BRANCH (default: main)
- ORCH_PATCH_TARGET_FILE        (file /auto-dev may edit)
- ORCH_PATCH_MARKER_START / ORCH_PATCH_MARKER_END
- ORCH_SOURCE_TIMEOUT_S         (default: 20)
- ORCH_HOST (default: 0.0.0.0), PORT (default: 3000), ORCH_UI_FILE
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional, Tuple

from aiohttp import web
from dotenv import load_dotenv

import capabilities
import http_api
from chat_commands import DefaultChat, MemoryWrite, SelfPatch, classify
from memory_store import MemoryStore
from orch_config import load_settings
from orch_errors import MarkerNotFoundError
from patch_engine import parse_patch_instruction, splice_between_markers
from path_engine import now_iso

_SHUTDOWN_EVENT: Optional[asyncio.Event] = None


def request_shutdown(reason: str = "") -> None:
    print(f"[BOOT] shutdown requested ({reason or 'unknown'})", flush=True)
    if _SHUTDOWN_EVENT is not None:
        _SHUTDOWN_EVENT.set()


async def main() -> None:
    settings = load_settings()
    host = settings.host
    http_port = settings.port

    print(f"[BOOT] OPENAI_MODEL={settings.openai_model}")
    print(f"[BOOT] credentials present: {settings.present_flags()}")
    if settings.github_owner and settings.github_repo:
        print(f"[BOOT] GitHub repo: {settings.github_owner}/{settings.github_repo}@{settings.github_branch}")
    print(f"[BOOT] HTTP: http://{host}:{http_port}  ({now_iso()})", flush=True)

    global _SHUTDOWN_EVENT
    _SHUTDOWN_EVENT = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown, sig.name)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler; Ctrl+C still raises KeyboardInterrupt.
            pass

    # One context per process: the memory store lives here until exit.
    ctx = http_api.AppContext(settings_loader=load_settings)
    app = web.Application()
    http_api.register_routes(app, ctx=ctx)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, http_port)
    # Bind failure is fatal: let it propagate.
    await site.start()
    print(f"[BOOT] AI Orchestrator running on port {http_port}", flush=True)

    try:
        await _SHUTDOWN_EVENT.wait()
    finally:
        await runner.cleanup()


# =============================================================================
# Offline smoke checks (python server.py --smoke)
# =============================================================================

def _smoke_splice() -> Tuple[bool, str]:
    before = "<!--START-->old<!--END-->"
    after = splice_between_markers(before, "<!--START-->", "<!--END-->", "new")
    if after != "<!--START-->\nnew\n<!--END-->":
        return False, f"unexpected splice output: {after!r}"
    if splice_between_markers(after, "<!--START-->", "<!--END-->", "new") != after:
        return False, "splice is not idempotent"
    try:
        splice_between_markers(before, "<!--NOPE-->", "<!--END-->", "x")
    except MarkerNotFoundError:
        pass
    else:
        return False, "missing marker was not rejected"
    parsed = parse_patch_instruction('ok: {"filePath":"a","markerStart":"s","markerEnd":"e","newContent":"n"}')
    if not parsed.ok:
        return False, f"instruction extraction failed: {parsed.error}"
    return True, "ok"


def _smoke_router() -> Tuple[bool, str]:
    cases = [
        ("记住：主账号是A", MemoryWrite("主账号是A")),
        ("记住:x", MemoryWrite("x")),
        ("/auto-dev 加一行提示文字", SelfPatch("加一行提示文字")),
        ("你好", DefaultChat()),
    ]
    for text, expected in cases:
        got = classify(text)
        if got != expected:
            return False, f"classify({text!r}) -> {got!r}, expected {expected!r}"
    if not isinstance(classify("/auto-dev"), SelfPatch) or not classify("/auto-dev").demand:
        return False, "empty /auto-dev demand did not get the default"
    return True, "ok"


def _smoke_memory() -> Tuple[bool, str]:
    m = MemoryStore()
    if m.render_prefix() != "":
        return False, "empty store rendered a prefix"
    m.append("a")
    m.append("b")
    lines = m.render_prefix().splitlines()
    if lines[1:] != ["1. a", "2. b"]:
        return False, f"unexpected prefix lines: {lines!r}"
    return True, "ok"


def _run_smoke_test() -> int:
    rc = 0
    checks = [
        ("splice", _smoke_splice),
        ("router", _smoke_router),
        ("memory", _smoke_memory),
        (
            "capabilities registry",
            lambda: capabilities.smoke_test_registry(required_ids=capabilities.REQUIRED_IDS),
        ),
    ]
    for name, fn in checks:
        ok, note = fn()
        if ok:
            print(f"[SMOKE] {name} OK")
        else:
            print(f"[SMOKE] {name} FAILED: {note}")
            rc = 1
    return rc


def run() -> None:
    # Smoke test short-circuit (must run BEFORE asyncio loop)
    if len(sys.argv) > 1 and sys.argv[1].strip().lower() in ("--smoke", "smoke"):
        raise SystemExit(_run_smoke_test())

    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
