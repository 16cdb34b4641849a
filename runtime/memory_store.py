# -*- coding: utf-8 -*-
"""
In-process memory notes ("记住：..." turns).

One MemoryStore is built at startup and handed to the request handlers.
Notes live for the process lifetime: append-only, insertion ordered,
no dedup, no expiry, shared by every caller.
"""

from __future__ import annotations

import threading
from typing import Iterable, Tuple

MEMORY_HEADING = "以下是用户要求你长期记住的信息，回答时请始终遵守："


class MemoryStore:
    def __init__(self, notes: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._notes: Tuple[str, ...] = ()
        for n in notes:
            self.append(n)

    def append(self, note: str) -> str:
        """
        Append one note and return the stored (trimmed) text.
        Readers hold the old tuple until the swap, so they never see a partial list.
        """
        text = (note or "").strip()
        if not text:
            raise ValueError("Memory note is empty.")
        with self._lock:
            self._notes = self._notes + (text,)
        return text

    def notes(self) -> Tuple[str, ...]:
        return self._notes

    def __len__(self) -> int:
        return len(self._notes)

    def render_prefix(self) -> str:
        snapshot = self._notes
        if not snapshot:
            return ""
        lines = [MEMORY_HEADING]
        for i, n in enumerate(snapshot, start=1):
            lines.append(f"{i}. {n}")
        return "\n".join(lines)
