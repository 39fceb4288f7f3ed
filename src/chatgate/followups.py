"""Follow-up queue settings and depth tracking."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from .config import ChatgateConfig
from .sessions import SessionEntry


@dataclass(frozen=True, slots=True)
class QueueSettings:
    mode: str
    debounce_ms: int
    cap: int
    drop: str


def resolve_queue_settings(
    cfg: ChatgateConfig, *, provider: str | None, entry: SessionEntry | None
) -> QueueSettings:
    queue_cfg = cfg.queue
    provider_mode = queue_cfg.by_provider.get(provider or "") if provider else None
    mode = (entry.queue_mode if entry else None) or provider_mode or queue_cfg.mode
    debounce_ms = entry.queue_debounce_ms if entry and entry.queue_debounce_ms is not None else None
    cap = entry.queue_cap if entry and entry.queue_cap is not None else None
    drop = entry.queue_drop if entry else None
    return QueueSettings(
        mode=mode,
        debounce_ms=debounce_ms if debounce_ms is not None else queue_cfg.debounce_ms,
        cap=cap if cap is not None else queue_cfg.cap,
        drop=drop or queue_cfg.drop,
    )


def has_queue_overrides(entry: SessionEntry | None) -> bool:
    if entry is None:
        return False
    return any(
        value is not None
        for value in (entry.queue_debounce_ms, entry.queue_cap, entry.queue_drop)
    )


class FollowupQueues:
    """Messages waiting behind an active run, keyed by session key."""

    def __init__(self) -> None:
        self._queues: dict[str, deque[str]] = {}

    def enqueue(self, key: str, text: str, *, cap: int) -> None:
        queue = self._queues.setdefault(key, deque())
        queue.append(text)
        while len(queue) > cap:
            queue.popleft()

    def depth(self, key: str | None) -> int:
        if not key:
            return 0
        return len(self._queues.get(key, ()))

    def drain(self, key: str) -> list[str]:
        queue = self._queues.pop(key, None)
        return list(queue) if queue else []
