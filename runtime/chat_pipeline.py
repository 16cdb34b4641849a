# -*- coding: utf-8 -*-
"""
chat_pipeline.py

One chat request in, one reply string out.

Pipeline responsibilities:
- classify the latest user turn (chat_commands)
- memory-write: store the note, then answer with it already in the prompt
- self-patch: hand the demand to SelfPatchEngine (never raises)
- default chat: persona + memory block + caller history -> CompletionClient
- /demo: fixed multi-role prompt sequence + summary

Constraints:
- No aiohttp imports; handlers call these through asyncio.to_thread.
- ConfigurationError / UpstreamError from the default-chat branch propagate
  to the HTTP layer.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from chat_commands import MemoryWrite, SelfPatch, classify, intent_name, last_user_text
from memory_store import MemoryStore
from model_client import CompletionClient
from self_patch import SelfPatchEngine

PERSONA = "你是一个智能助理，擅长自动规划和优化主播的生意决策。"

EMPTY_NOTE_HINT = "“记住：”后面没有内容，这次没有记下任何信息。请写成“记住：要记住的内容”。"

ALLOWED_ROLES = ("system", "user", "assistant")


def build_system_prompt(memory: MemoryStore) -> str:
    prefix = memory.render_prefix()
    if not prefix:
        return PERSONA
    return f"{PERSONA}\n\n{prefix}"


def build_chat_messages(history: List[Dict[str, Any]], memory: MemoryStore) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = [{"role": "system", "content": build_system_prompt(memory)}]
    for turn in history or []:
        if not isinstance(turn, dict):
            continue
        role = turn.get("role")
        content = turn.get("content")
        if role in ALLOWED_ROLES and isinstance(content, str):
            messages.append({"role": role, "content": content})
    return messages


def run_chat_turn(
    history: List[Dict[str, Any]],
    *,
    memory: MemoryStore,
    completion: CompletionClient,
    self_patch: SelfPatchEngine,
) -> str:
    intent = classify(last_user_text(history))
    print(f"[CHAT] intent={intent_name(intent)} turns={len(history or [])}", flush=True)

    if isinstance(intent, MemoryWrite):
        if not intent.note:
            return EMPTY_NOTE_HINT
        stored = memory.append(intent.note)
        print(f"[MEMORY] append #{len(memory)}: {stored[:80]!r}", flush=True)
        # Fall through: the reply is generated with the new note already in the prompt.

    if isinstance(intent, SelfPatch):
        return self_patch.run(intent.demand)

    return completion.complete(build_chat_messages(history, memory))


# =============================================================================
# /demo: three virtual roles, then a summary
# =============================================================================

DEMO_GOAL = (
    "为一个搞笑帅哥人设、粉丝主要是20-30岁女生的抖音带货直播间，设计3个适合的爆款方向，"
    "并说明选品逻辑和直播切入点。"
)

DEMO_ROLES = (
    ("选品分析师", "选品分析师", "从成本、毛利、复购率、供应链稳定性角度给出建议，用要点列出来。"),
    ("内容策划", "内容策划", "给每个方向设计1句短视频钩子 + 1句直播间话术，口语化。"),
    ("风控老板", "风控兼老板", "筛掉不靠谱方案，只保留你认为最有机会赚到真金白银的2-3条，并解释风险点。"),
)

DEMO_SUMMARY_INSTRUCTION = (
    "下面是团队不同角色的建议，请你作为总负责人，整理成一份可执行的行动方案，"
    "控制在600字以内，用123分点写清楚要做什么：\n\n"
)


def _single_prompt(completion: CompletionClient, prompt: str) -> str:
    return completion.complete(
        [
            {"role": "system", "content": PERSONA},
            {"role": "user", "content": prompt},
        ]
    )


def run_demo(completion: CompletionClient, *, goal: str = DEMO_GOAL) -> str:
    steps: List[Dict[str, str]] = []
    for name, role_label, task in DEMO_ROLES:
        prompt = f"你是{role_label}。目标：{goal}\n{task}"
        steps.append({"agent": name, "output": _single_prompt(completion, prompt)})

    final_plan = _single_prompt(
        completion,
        DEMO_SUMMARY_INSTRUCTION + json.dumps(steps, ensure_ascii=False, indent=2),
    )

    parts = ["【目标】", goal, "", "【各角色输出】"]
    for s in steps:
        parts.append(f"—— {s['agent']} ——")
        parts.append(s["output"])
        parts.append("")
    parts.append("【总负责人给你的执行方案】")
    parts.append(final_plan)
    return "\n".join(parts) + "\n"
