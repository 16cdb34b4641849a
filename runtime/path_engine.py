# -*- coding: utf-8 -*-
"""
Path / naming helpers (repo paths, branch names, timestamps).
"""

from __future__ import annotations

import time
from typing import List, Optional

BRANCH_PREFIX = "auto-dev"


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def branch_name_for(ts: Optional[float] = None, *, prefix: str = BRANCH_PREFIX) -> str:
    """
    Deterministic branch name from a creation timestamp (UTC, millisecond suffix).
    The same ts always yields the same name.
    """
    t = time.time() if ts is None else float(ts)
    # Floor to whole milliseconds so the seconds stamp and suffix always agree.
    total_ms = int(t * 1000)
    secs, millis = divmod(total_ms, 1000)
    stamp = time.strftime("%Y%m%d-%H%M%S", time.gmtime(secs))
    return f"{prefix}-{stamp}-{millis:03d}"


def normalize_repo_path(path: str) -> str:
    """
    Normalize a repository-relative path as sent to the contents API.
    Rejects empty paths and any '..' segment.
    """
    raw = (path or "").strip().replace("\\", "/")
    parts: List[str] = []
    for seg in raw.split("/"):
        seg = seg.strip()
        if not seg or seg == ".":
            continue
        if seg == "..":
            raise ValueError(f"Path escapes repository root: {path!r}")
        parts.append(seg)
    if not parts:
        raise ValueError("Empty repository path.")
    return "/".join(parts)
