"""Per-session system event lines, surfaced to the agent on its next turn."""

from __future__ import annotations

from collections import deque

MAX_EVENTS = 20


class SystemEventQueue:
    def __init__(self, *, max_events: int = MAX_EVENTS) -> None:
        self._events: dict[str, deque[str]] = {}
        self._max_events = max_events

    def enqueue(self, text: str, *, session_key: str) -> None:
        line = text.strip()
        if not line or not session_key:
            return
        queue = self._events.setdefault(session_key, deque(maxlen=self._max_events))
        # consecutive duplicates collapse
        if queue and queue[-1] == line:
            return
        queue.append(line)

    def peek(self, session_key: str) -> list[str]:
        return list(self._events.get(session_key, ()))

    def drain(self, session_key: str) -> list[str]:
        queue = self._events.pop(session_key, None)
        return list(queue) if queue else []
