"""
Chat command router (pure classification, no I/O).

Only the latest user turn is inspected. Recognized prefixes (literal,
case-sensitive, after trimming):
- 记住： / 记住:   -> MemoryWrite(note)
- /auto-dev        -> SelfPatch(demand)
Anything else falls through to DefaultChat.
"""


from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Union

MEMORY_PREFIXES = ("记住：", "记住:")
AUTO_DEV_PREFIX = "/auto-dev"
DEFAULT_DEMAND = "在自动开发区域加一行简短的提示文字，说明这个页面由 AI 自动维护。"


@dataclass(frozen=True)
class MemoryWrite:
    note: str


@dataclass(frozen=True)
class SelfPatch:
    demand: str


@dataclass(frozen=True)
class DefaultChat:
    pass


Intent = Union[MemoryWrite, SelfPatch, DefaultChat]


def last_user_text(history: List[Dict[str, Any]]) -> str:
    for turn in reversed(history or []):
        if isinstance(turn, dict) and turn.get("role") == "user":
            content = turn.get("content")
            return content.strip() if isinstance(content, str) else ""
    return ""


def classify(text: str) -> Intent:
    msg = (text or "").strip()

    for prefix in MEMORY_PREFIXES:
        if msg.startswith(prefix):
            return MemoryWrite(note=msg[len(prefix):].strip())

    if msg.startswith(AUTO_DEV_PREFIX):
        demand = msg[len(AUTO_DEV_PREFIX):].strip()
        return SelfPatch(demand=demand or DEFAULT_DEMAND)

    return DefaultChat()


def intent_name(intent: Intent) -> str:
    if isinstance(intent, MemoryWrite):
        return "memory-write"
    if isinstance(intent, SelfPatch):
        return "self-patch"
    return "default-chat"
