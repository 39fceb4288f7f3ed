"""Per-message command context and the services handlers act on."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..abort import AbortMemory
from ..auth import resolve_command_authorization
from ..followups import FollowupQueues
from ..mentions import strip_mentions, strip_structural_prefixes
from ..model_auth import resolve_model_auth_label
from ..overrides import RuntimeOverrides
from ..sessions import SessionEntry, SessionStore
from ..system_events import SystemEventQueue
from ..types import CommandResult, IncomingMessage
from .parse import normalize_command_body, should_handle_text_commands
from .registry import CommandRegistry, default_registry

if TYPE_CHECKING:
    from ..config import ChatgateConfig, ConfigFileStore
    from ..restart import RestartMechanism
    from ..runs import RunRuntime
    from ..usage import UsageLoader

COMPACTION_WAIT_MS = 15_000


@dataclass(frozen=True, slots=True)
class CommandContext:
    surface: str
    provider: str
    provider_id: str | None
    owner_list: tuple[str, ...]
    is_authorized_sender: bool
    sender_id: str | None
    abort_key: str | None
    raw_body_normalized: str
    command_body_normalized: str
    allow_text_commands: bool
    from_id: str | None = None
    to_id: str | None = None


def build_command_context(
    msg: IncomingMessage,
    cfg: ChatgateConfig,
    *,
    session_key: str | None,
    trigger_body: str | None = None,
    registry: CommandRegistry | None = None,
) -> CommandContext:
    """Resolve authorization and the normalized command body for *msg*.

    *trigger_body* is the message text with envelope prefixes already removed;
    when omitted it is derived from ``msg.body``.
    """
    auth = resolve_command_authorization(msg, cfg)
    surface = (msg.surface or msg.provider or "").strip().lower()
    provider = (msg.provider or surface).strip().lower()
    abort_key = session_key or auth.from_id or auth.to_id
    raw_body = (
        trigger_body
        if trigger_body is not None
        else strip_structural_prefixes(msg.body)
    )
    command_source = strip_mentions(raw_body, msg, cfg) if msg.is_group else raw_body
    command_body = normalize_command_body(
        command_source,
        bot_username=msg.bot_username,
        registry=registry or default_registry(),
    )
    return CommandContext(
        surface=surface,
        provider=provider,
        provider_id=auth.provider_id,
        owner_list=auth.owner_list,
        is_authorized_sender=auth.is_authorized_sender,
        sender_id=auth.sender_id,
        abort_key=abort_key,
        raw_body_normalized=raw_body,
        command_body_normalized=command_body,
        allow_text_commands=should_handle_text_commands(
            cfg, surface=surface, command_source=msg.command_source
        ),
        from_id=auth.from_id,
        to_id=auth.to_id,
    )


@dataclass(slots=True)
class CommandRequest:
    """Everything the dispatch chain knows about one inbound message."""

    msg: IncomingMessage
    cfg: ChatgateConfig
    command: CommandContext
    session_key: str | None
    workspace_dir: Path
    provider: str
    model: str
    context_tokens: int | None = None
    session_entry: SessionEntry | None = None
    session_store: dict[str, SessionEntry] | None = None
    store: SessionStore | None = None
    agent_id: str | None = None
    has_status_directive: bool = False
    think_level: str | None = None
    verbose_level: str = "off"
    reasoning_level: str = "off"
    elevated_level: str | None = None

    @property
    def is_group(self) -> bool:
        return self.msg.is_group


@dataclass(slots=True)
class CommandBridge:
    """Long-lived collaborators shared by every dispatch."""

    runs: RunRuntime
    config_store: ConfigFileStore
    registry: CommandRegistry = field(default_factory=default_registry)
    overrides: RuntimeOverrides = field(default_factory=RuntimeOverrides)
    restarter: RestartMechanism | None = None
    usage_loader: UsageLoader | None = None
    abort_memory: AbortMemory = field(default_factory=AbortMemory)
    system_events: SystemEventQueue = field(default_factory=SystemEventQueue)
    followups: FollowupQueues = field(default_factory=FollowupQueues)
    auth_label: Callable[[str | None, SessionEntry | None], str | None] = (
        resolve_model_auth_label
    )
    compact_wait_ms: int = COMPACTION_WAIT_MS
    # None defers to usage.timeout_ms
    usage_timeout_ms: int | None = None
    clock: Callable[[], float] = time.time


Handler = Callable[[CommandBridge, CommandRequest], Awaitable[CommandResult | None]]


async def save_session_store(request: CommandRequest) -> None:
    if request.store is None or request.session_store is None:
        return
    await request.store.save(request.session_store)
