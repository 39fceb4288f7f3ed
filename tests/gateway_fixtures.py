from __future__ import annotations

from pathlib import Path
from typing import Any

from chatgate.commands.context import (
    CommandBridge,
    CommandRequest,
    build_command_context,
)
from chatgate.config import ChatgateConfig, ConfigFileStore
from chatgate.restart import RestartAttempt
from chatgate.runs import CompactionRequest, CompactionResult
from chatgate.sessions import SessionEntry, SessionStore
from chatgate.types import IncomingMessage

DEFAULT_SESSION_KEY = "agent:main:main"
DEFAULT_PROVIDER = "acme"
DEFAULT_MODEL = "acme-large"


def make_config(raw: dict[str, Any] | None = None) -> ChatgateConfig:
    return ChatgateConfig.model_validate(raw or {})


def make_message(
    body: str,
    *,
    provider: str = "telegram",
    chat_type: str = "direct",
    authorized: bool = True,
    sender_id: str | None = "42",
    from_id: str | None = None,
    **kwargs: Any,
) -> IncomingMessage:
    return IncomingMessage(
        provider=provider,
        body=body,
        chat_type=chat_type,  # type: ignore[arg-type]
        sender_id=sender_id,
        from_id=from_id if from_id is not None else f"{provider}:{sender_id}",
        command_authorized=authorized,
        **kwargs,
    )


class FakeRuns:
    def __init__(
        self,
        *,
        active: set[str] | None = None,
        wait_result: bool = True,
        compact_result: CompactionResult | None = None,
    ) -> None:
        self.active = set(active or ())
        self.wait_result = wait_result
        self.compact_result = compact_result or CompactionResult(
            ok=True, compacted=True
        )
        self.aborted: list[str] = []
        self.waits: list[tuple[str, int]] = []
        self.compactions: list[CompactionRequest] = []

    def is_active(self, session_id: str) -> bool:
        return session_id in self.active

    def abort(self, session_id: str) -> bool:
        self.aborted.append(session_id)
        return session_id in self.active

    async def wait_for_end(self, session_id: str, timeout_ms: int) -> bool:
        self.waits.append((session_id, timeout_ms))
        return self.wait_result

    async def compact(self, request: CompactionRequest) -> CompactionResult:
        self.compactions.append(request)
        return self.compact_result


class FakeRestarter:
    def __init__(
        self, *, listener: bool = False, attempt: RestartAttempt | None = None
    ) -> None:
        self.listener = listener
        self.attempt = attempt or RestartAttempt(ok=True, method="systemd")
        self.scheduled: list[str] = []
        self.external_calls = 0

    def has_in_process_listener(self) -> bool:
        return self.listener

    def schedule_in_process_restart(self, reason: str) -> None:
        self.scheduled.append(reason)

    async def trigger_external_restart(self) -> RestartAttempt:
        self.external_calls += 1
        return self.attempt


class RecordingConfigStore(ConfigFileStore):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.writes: list[ChatgateConfig] = []

    async def write(self, config: ChatgateConfig) -> None:
        self.writes.append(config)
        await super().write(config)


def make_bridge(tmp_path: Path, **overrides: Any) -> CommandBridge:
    overrides.setdefault("runs", FakeRuns())
    overrides.setdefault(
        "config_store", RecordingConfigStore(tmp_path / "chatgate.toml")
    )
    return CommandBridge(**overrides)


def make_session_store(
    tmp_path: Path, entries: dict[str, SessionEntry] | None = None
) -> tuple[SessionStore, dict[str, SessionEntry]]:
    store = SessionStore(tmp_path / "sessions" / "sessions.json")
    return store, dict(entries or {})


def make_request(
    body: str,
    *,
    cfg: ChatgateConfig | None = None,
    msg: IncomingMessage | None = None,
    session_key: str | None = DEFAULT_SESSION_KEY,
    entry: SessionEntry | None = None,
    session_store: dict[str, SessionEntry] | None = None,
    store: SessionStore | None = None,
    workspace_dir: Path | None = None,
    has_status_directive: bool = False,
    context_tokens: int | None = 200_000,
    **msg_kwargs: Any,
) -> CommandRequest:
    cfg = cfg or make_config()
    msg = msg or make_message(body, **msg_kwargs)
    command = build_command_context(msg, cfg, session_key=session_key)
    return CommandRequest(
        msg=msg,
        cfg=cfg,
        command=command,
        session_key=session_key,
        workspace_dir=workspace_dir or Path.cwd(),
        provider=DEFAULT_PROVIDER,
        model=DEFAULT_MODEL,
        context_tokens=context_tokens,
        session_entry=entry,
        session_store=session_store,
        store=store,
        has_status_directive=has_status_directive,
    )
