"""Per-message entry point: load state, build the command request, dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .commands.context import CommandBridge, CommandRequest, build_command_context
from .commands.dispatch import dispatch_command
from .config import load_runtime_config
from .logging import get_logger
from .sessions import SessionStore, resolve_session_entry_for_key
from .types import CommandResult, IncomingMessage

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TurnSettings:
    """Model and directive state resolved for the current turn."""

    provider: str
    # None fields fall back to agents.defaults
    model: str | None = None
    context_tokens: int | None = None
    think_level: str | None = None
    verbose_level: str | None = None
    reasoning_level: str = "off"
    elevated_level: str | None = None
    has_status_directive: bool = False


class CommandGateway:
    def __init__(
        self,
        bridge: CommandBridge,
        *,
        sessions: SessionStore,
        workspace_dir: Path,
    ) -> None:
        self.bridge = bridge
        self.sessions = sessions
        self.workspace_dir = workspace_dir

    async def handle_message(
        self,
        msg: IncomingMessage,
        *,
        session_key: str | None,
        turn: TurnSettings,
        trigger_body: str | None = None,
        agent_id: str | None = None,
    ) -> CommandResult:
        cfg = await load_runtime_config(self.bridge.config_store, self.bridge.overrides)
        store = await self.sessions.load()
        entry, resolved_key = resolve_session_entry_for_key(store, session_key)
        key = resolved_key or session_key
        command = build_command_context(
            msg,
            cfg,
            session_key=key,
            trigger_body=trigger_body,
            registry=self.bridge.registry,
        )
        defaults = cfg.agents.defaults
        request = CommandRequest(
            msg=msg,
            cfg=cfg,
            command=command,
            session_key=key,
            workspace_dir=self.workspace_dir,
            provider=turn.provider,
            model=turn.model or defaults.model or "default",
            context_tokens=turn.context_tokens or defaults.context_tokens,
            session_entry=entry,
            session_store=store,
            store=self.sessions,
            agent_id=agent_id,
            has_status_directive=turn.has_status_directive,
            think_level=turn.think_level,
            verbose_level=turn.verbose_level or defaults.verbose_default or "off",
            reasoning_level=turn.reasoning_level,
            elevated_level=turn.elevated_level or defaults.elevated_default,
        )
        result = await dispatch_command(self.bridge, request)
        logger.debug(
            "gateway.dispatched",
            provider=command.provider,
            session_key=key,
            should_continue=result.should_continue,
        )
        return result
