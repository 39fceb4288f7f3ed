"""Session entries and the JSON session store."""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import anyio

from .logging import get_logger

logger = get_logger(__name__)

STATE_VERSION = 1
STATE_FILENAME = "sessions.json"


def now_ms() -> int:
    return int(time.time() * 1000)


def resolve_sessions_path(config_path: Path) -> Path:
    """Get the path for the session store, adjacent to config."""
    return config_path.with_name(STATE_FILENAME)


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(slots=True)
class SessionEntry:
    session_id: str | None = None
    updated_at: int | None = None
    provider: str | None = None
    chat_type: str | None = None
    session_file: str | None = None
    group_activation: str | None = None
    group_activation_needs_system_intro: bool = False
    send_policy: str | None = None
    aborted_last_run: bool = False
    total_tokens: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    context_tokens: int | None = None
    compaction_count: int = 0
    skills_snapshot: Any = None
    queue_mode: str | None = None
    queue_debounce_ms: int | None = None
    queue_cap: int | None = None
    queue_drop: str | None = None
    auth_profile_override: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionEntry:
        known = {f.name for f in fields(cls)} - {"extra"}
        values = {key: data[key] for key in known if key in data}
        extra = {key: value for key, value in data.items() if key not in known}
        entry = cls(**values, extra=extra)
        if not isinstance(entry.compaction_count, int):
            entry.compaction_count = 0
        return entry

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = value
        return data

    def touch(self) -> None:
        self.updated_at = now_ms()


@dataclass(frozen=True, slots=True)
class ParsedSessionKey:
    agent_id: str
    rest: str


def parse_agent_session_key(session_key: str | None) -> ParsedSessionKey | None:
    """Split ``agent:<id>:<rest>`` keys; legacy keys return None."""
    raw = _normalize_text(session_key)
    if raw is None:
        return None
    parts = raw.split(":")
    if len(parts) < 3 or parts[0].lower() != "agent":
        return None
    agent_id = parts[1].strip()
    rest = ":".join(parts[2:]).strip()
    if not agent_id or not rest:
        return None
    return ParsedSessionKey(agent_id=agent_id, rest=rest)


def resolve_session_entry_for_key(
    store: Mapping[str, SessionEntry] | None, session_key: str | None
) -> tuple[SessionEntry | None, str | None]:
    if not store or not session_key:
        return None, None
    direct = store.get(session_key)
    if direct is not None:
        return direct, session_key
    parsed = parse_agent_session_key(session_key)
    if parsed is not None and parsed.rest in store:
        return store[parsed.rest], parsed.rest
    return None, None


def resolve_session_file_path(
    session_id: str, entry: SessionEntry | None, *, sessions_dir: Path
) -> Path:
    if entry is not None and entry.session_file:
        return Path(entry.session_file)
    return sessions_dir / f"{session_id}.jsonl"


class SessionStore:
    """Persist session entries as ``{version, sessions: {key: entry}}`` JSON.

    Callers load a snapshot, mutate entries, and save the whole mapping back
    in a single round trip.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = anyio.Lock()

    @property
    def sessions_dir(self) -> Path:
        return self.path.parent

    async def load(self) -> dict[str, SessionEntry]:
        async with self._lock:
            return self._load_locked()

    async def save(self, entries: Mapping[str, SessionEntry]) -> None:
        async with self._lock:
            self._save_locked(entries)

    def _load_locked(self) -> dict[str, SessionEntry]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("sessions.load_failed", path=str(self.path), error=str(exc))
            return {}
        if not isinstance(payload, dict) or payload.get("version") != STATE_VERSION:
            logger.warning("sessions.version_mismatch", path=str(self.path))
            return {}
        sessions = payload.get("sessions")
        if not isinstance(sessions, dict):
            return {}
        return {
            key: SessionEntry.from_dict(value)
            for key, value in sessions.items()
            if isinstance(key, str) and isinstance(value, dict)
        }

    def _save_locked(self, entries: Mapping[str, SessionEntry]) -> None:
        payload = {
            "version": STATE_VERSION,
            "sessions": {key: entry.to_dict() for key, entry in entries.items()},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        temp_path.replace(self.path)
