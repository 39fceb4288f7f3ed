"""Free-text abort phrases and the in-memory abort marker."""

from __future__ import annotations

ABORT_TRIGGERS = frozenset({"stop", "esc", "abort", "wait", "exit", "interrupt"})


def is_abort_trigger(text: str | None) -> bool:
    if not text:
        return False
    return text.strip().lower() in ABORT_TRIGGERS


class AbortMemory:
    """Abort markers for runs with no persisted session entry.

    Only a live run loop consults these; they are lost on restart.
    """

    def __init__(self) -> None:
        self._markers: dict[str, bool] = {}

    def set(self, key: str, value: bool) -> None:
        if value:
            self._markers[key] = True
        else:
            self._markers.pop(key, None)

    def get(self, key: str) -> bool:
        return self._markers.get(key, False)

    def consume(self, key: str) -> bool:
        return self._markers.pop(key, False)
