"""
Marker-based patch engine (stdlib-only).

Responsibilities:
- build_self_patch_system_prompt()
- extract/parse the PatchInstruction JSON from model output
- splice_between_markers()
- build_unified_diff()

Constraints:
- No network, no imports from server.py.
- Deterministic behavior.
"""


from __future__ import annotations

import difflib
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from orch_errors import MarkerNotFoundError

# ---- Instruction keys (wire names the model must emit) ----

KEY_FILE_PATH = "filePath"
KEY_MARKER_START = "markerStart"
KEY_MARKER_END = "markerEnd"
KEY_NEW_CONTENT = "newContent"

REQUIRED_KEYS = (KEY_FILE_PATH, KEY_MARKER_START, KEY_MARKER_END, KEY_NEW_CONTENT)


# ---- Prompt builders ----

def build_self_patch_system_prompt(target_file: str, marker_start: str, marker_end: str) -> str:
    example = json.dumps(
        {
            KEY_FILE_PATH: target_file,
            KEY_MARKER_START: marker_start,
            KEY_MARKER_END: marker_end,
            KEY_NEW_CONTENT: "<要放在两个标记之间的新内容>",
        },
        ensure_ascii=False,
        indent=2,
    )
    return (
        "你是自动开发助手，负责把用户的需求变成对单个文件的一处修改。\n\n"
        "你只能输出一个 JSON 对象，不要输出任何解释、标题或 Markdown 代码块。格式：\n"
        f"{example}\n\n"
        "规则（严格）：\n"
        f"- {KEY_FILE_PATH} 必须是 {target_file!r}。\n"
        f"- {KEY_MARKER_START} 和 {KEY_MARKER_END} 必须逐字复制上面的标记，不能改动。\n"
        f"- {KEY_NEW_CONTENT} 是两个标记之间的完整新内容，会整体替换原有内容。\n"
        "- 四个字段都必须是非空字符串。\n"
    )


# ---- Core parsing / validation ----

@dataclass(frozen=True)
class PatchInstruction:
    file_path: str
    marker_start: str
    marker_end: str
    new_content: str


@dataclass(frozen=True)
class PatchParseResult:
    ok: bool
    raw: str
    instruction: Optional[PatchInstruction] = None
    error: str = ""


def _balanced_object_end(text: str, start: int) -> int:
    """Index just past the '}' closing the '{' at start, or -1. Skips braces inside strings."""
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def extract_first_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort: return the first balanced {...} substring that parses as a JSON object.
    Tolerates prose or code fences around the object.
    """
    s = text or ""
    pos = s.find("{")
    while pos >= 0:
        end = _balanced_object_end(s, pos)
        if end > pos:
            try:
                obj = json.loads(s[pos:end])
            except ValueError:
                obj = None
            if isinstance(obj, dict):
                return obj
        pos = s.find("{", pos + 1)
    return None


def parse_patch_instruction(raw: str) -> PatchParseResult:
    obj = extract_first_json_object(raw)
    if obj is None:
        return PatchParseResult(ok=False, raw=raw or "", error="模型输出中没有可解析的 JSON 对象。")

    missing = []
    for k in REQUIRED_KEYS:
        v = obj.get(k)
        if not isinstance(v, str) or not v.strip():
            missing.append(k)
    if missing:
        return PatchParseResult(
            ok=False,
            raw=raw or "",
            error="JSON 缺少必填字段或字段为空：" + ", ".join(missing),
        )

    inst = PatchInstruction(
        file_path=obj[KEY_FILE_PATH].strip(),
        # Markers are matched literally; keep them byte-for-byte.
        marker_start=obj[KEY_MARKER_START],
        marker_end=obj[KEY_MARKER_END],
        new_content=obj[KEY_NEW_CONTENT],
    )
    return PatchParseResult(ok=True, raw=raw or "", instruction=inst)


# ---- Splice ----

def splice_between_markers(content: str, marker_start: str, marker_end: str, new_content: str) -> str:
    """
    Replace exactly the text between the first marker_start and the first
    marker_end after it. Both markers and everything outside them are kept.
    """
    text = content or ""
    s_idx = text.find(marker_start) if marker_start else -1
    if s_idx < 0:
        missing = [marker_start]
        if not marker_end or marker_end not in text:
            missing.append(marker_end)
        raise MarkerNotFoundError(missing)

    head_end = s_idx + len(marker_start)
    e_idx = text.find(marker_end, head_end) if marker_end else -1
    if e_idx < 0:
        raise MarkerNotFoundError([marker_end])

    body = (new_content or "").strip()
    return text[:head_end] + "\n" + body + "\n" + text[e_idx:]


# ---- Unified diff builder ----

def build_unified_diff(
    before_text: str,
    after_text: str,
    fromfile: str = "before",
    tofile: str = "after",
    context: int = 3,
) -> str:
    before_lines = (before_text or "").splitlines(keepends=True)
    after_lines = (after_text or "").splitlines(keepends=True)

    diff_iter = difflib.unified_diff(
        before_lines,
        after_lines,
        fromfile=fromfile,
        tofile=tofile,
        n=context,
    )
    return "".join(diff_iter)
