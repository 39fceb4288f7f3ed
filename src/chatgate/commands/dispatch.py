"""Ordered, short-circuiting command dispatch."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..logging import get_logger
from ..send_policy import resolve_send_policy
from ..types import DROP, PASS_THROUGH, CommandResult, reply
from . import builtin
from .context import CommandBridge, CommandRequest, Handler

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchRule:
    name: str
    matches: Callable[[CommandRequest], bool]
    handler: Handler
    requires_auth: bool = True
    text_commands_only: bool = True


DISPATCH_RULES: tuple[DispatchRule, ...] = (
    DispatchRule(
        "reset", builtin.matches_reset, builtin.handle_reset, text_commands_only=False
    ),
    DispatchRule("bash", builtin.matches_bash, builtin.handle_bash),
    # group check comes before the sender check, so the handler gates itself
    DispatchRule(
        "activation",
        builtin.matches_activation,
        builtin.handle_activation,
        requires_auth=False,
    ),
    DispatchRule("send", builtin.matches_send_policy, builtin.handle_send_policy),
    DispatchRule("restart", builtin.matches_restart, builtin.handle_restart),
    DispatchRule("help", builtin.matches_help, builtin.handle_help),
    DispatchRule("commands", builtin.matches_commands, builtin.handle_commands),
    DispatchRule("status", builtin.matches_status, builtin.handle_status),
    DispatchRule("whoami", builtin.matches_whoami, builtin.handle_whoami),
    DispatchRule("config", builtin.matches_config, builtin.handle_config),
    DispatchRule("debug", builtin.matches_debug, builtin.handle_debug),
    DispatchRule("stop", builtin.matches_stop, builtin.abort_session_run),
    DispatchRule(
        "compact",
        builtin.matches_compact,
        builtin.handle_compact,
        text_commands_only=False,
    ),
    # any participant may interrupt a run with a bare abort phrase
    DispatchRule(
        "abort",
        builtin.matches_abort_phrase,
        builtin.abort_session_run,
        requires_auth=False,
    ),
)


def _fallback(request: CommandRequest) -> CommandResult:
    entry = request.session_entry
    policy = resolve_send_policy(
        request.cfg,
        entry=entry,
        session_key=request.session_key,
        provider=(entry.provider if entry else None) or request.command.provider,
        chat_type=entry.chat_type if entry else None,
    )
    if policy == "deny":
        logger.debug(
            "commands.send_blocked", session_key=request.session_key or "unknown"
        )
        return DROP
    return PASS_THROUGH


async def dispatch_command(
    bridge: CommandBridge,
    request: CommandRequest,
    *,
    rules: Sequence[DispatchRule] = DISPATCH_RULES,
) -> CommandResult:
    """Run *request* through *rules*; the first matching rule decides.

    A matched rule from an unauthorized sender drops the message without a
    reply. A handler returning None lets evaluation continue. When nothing
    decides, the session send policy chooses between drop and pass-through.
    """
    command = request.command
    for rule in rules:
        if rule.text_commands_only and not command.allow_text_commands:
            continue
        if not rule.matches(request):
            continue
        if rule.requires_auth and not command.is_authorized_sender:
            logger.debug(
                "commands.unauthorized",
                command=rule.name,
                sender_id=command.sender_id or "<unknown>",
            )
            return DROP
        try:
            result = await rule.handler(bridge, request)
        except Exception:
            logger.exception(
                "commands.handler_failed",
                command=rule.name,
                session_key=request.session_key,
            )
            return reply(f"⚠️ /{rule.name} failed; see gateway logs for details.")
        if result is None:
            continue
        logger.debug(
            "commands.handled",
            command=rule.name,
            has_reply=result.reply is not None,
        )
        return result
    return _fallback(request)
