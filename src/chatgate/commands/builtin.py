"""Built-in command handlers for the dispatch chain.

Each handler receives the shared `CommandBridge` and the per-message
`CommandRequest` and returns a `CommandResult`, or None to let the chain
continue to later rules.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio

from ..abort import is_abort_trigger
from ..config import validate_config_object
from ..config_paths import (
    get_config_value_at_path,
    parse_config_path,
    set_config_value_at_path,
    unset_config_value_at_path,
)
from ..followups import has_queue_overrides, resolve_queue_settings
from ..group_activation import (
    ACTIVATION_USAGE,
    normalize_group_activation,
    parse_activation_command,
)
from ..logging import get_logger
from ..mentions import strip_mentions, strip_structural_prefixes
from ..overrides import apply_config_overrides
from ..runs import CompactionRequest, CompactionResult
from ..send_policy import SEND_USAGE, parse_send_policy_command, send_policy_label
from ..sessions import (
    SessionEntry,
    now_ms,
    resolve_session_entry_for_key,
    resolve_session_file_path,
)
from ..types import DROP, CommandResult, IncomingMessage, reply
from ..usage import (
    build_usage_loader,
    format_usage_summary_line,
    resolve_usage_provider_id,
)
from .bash import (
    BASH_DISABLED,
    BASH_USAGE,
    format_bash_reply,
    is_bash_slash_command,
    parse_bash_command,
    run_bash_command,
)
from .context import CommandBridge, CommandRequest, save_session_store
from .parse import PathCommand, parse_config_command, parse_debug_command
from .status import (
    QueueStatus,
    build_commands_message,
    build_help_message,
    build_status_message,
    format_context_usage_short,
    format_token_count,
)

if TYPE_CHECKING:
    from ..config import ChatgateConfig

logger = get_logger(__name__)

ABORTED_TEXT = "⚙️ Agent was aborted."
GROUP_ONLY_TEXT = "⚙️ Group activation only applies to group chats."
CONFIG_DISABLED = "⚠️ /config is disabled. Set commands.config=true to enable."
DEBUG_DISABLED = "⚠️ /debug is disabled. Set commands.debug=true to enable."
RESTART_DISABLED = "⚠️ /restart is disabled. Set commands.restart=true to enable."
CONFIG_INVALID_ON_DISK = "⚠️ Config file is invalid; fix it before using /config."
COMPACT_MISSING_SESSION = "⚙️ Compaction unavailable (missing session id)."

RESET_BODIES = frozenset({"/reset", "/new"})


def _log_unauthorized(name: str, request: CommandRequest) -> None:
    logger.debug(
        "commands.unauthorized",
        command=name,
        sender_id=request.command.sender_id or "<unknown>",
    )


def _value_label(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return json.dumps(value, ensure_ascii=False)


def _render_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _body(request: CommandRequest) -> str:
    return request.command.command_body_normalized


# reset / new


def matches_reset(request: CommandRequest) -> bool:
    return _body(request) in RESET_BODIES


async def handle_reset(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult | None:
    # the session reset itself happens downstream
    return None


# bash


def matches_bash(request: CommandRequest) -> bool:
    body = _body(request)
    if is_bash_slash_command(body):
        return True
    return body.startswith("!") and request.command.is_authorized_sender


async def handle_bash(bridge: CommandBridge, request: CommandRequest) -> CommandResult:
    cfg = request.cfg
    if cfg.commands.bash is not True:
        return reply(BASH_DISABLED)
    command = parse_bash_command(_body(request))
    if not command:
        return reply(BASH_USAGE)
    timeout_ms = cfg.commands.bash_foreground_ms
    outcome = await run_bash_command(
        command, cwd=request.workspace_dir, timeout_ms=timeout_ms
    )
    return reply(format_bash_reply(command, outcome, timeout_ms=timeout_ms))


# activation


def matches_activation(request: CommandRequest) -> bool:
    return parse_activation_command(_body(request)).has_command


async def handle_activation(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    if not request.is_group:
        return reply(GROUP_ONLY_TEXT)
    if not request.command.is_authorized_sender:
        _log_unauthorized("activation", request)
        return DROP
    parsed = parse_activation_command(_body(request))
    if parsed.mode is None:
        return reply(ACTIVATION_USAGE)
    entry = request.session_entry
    if entry is not None and request.session_store is not None and request.session_key:
        entry.group_activation = parsed.mode
        entry.group_activation_needs_system_intro = True
        entry.touch()
        request.session_store[request.session_key] = entry
        await save_session_store(request)
    return reply(f"⚙️ Group activation set to {parsed.mode}.")


# send policy


def matches_send_policy(request: CommandRequest) -> bool:
    return parse_send_policy_command(_body(request)).has_command


async def handle_send_policy(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    parsed = parse_send_policy_command(_body(request))
    if parsed.mode is None:
        return reply(SEND_USAGE)
    entry = request.session_entry
    if entry is not None and request.session_store is not None and request.session_key:
        entry.send_policy = None if parsed.mode == "inherit" else parsed.mode
        entry.touch()
        request.session_store[request.session_key] = entry
        await save_session_store(request)
    return reply(f"⚙️ Send policy set to {send_policy_label(parsed.mode)}.")


# restart


def matches_restart(request: CommandRequest) -> bool:
    return _body(request) == "/restart"


async def handle_restart(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    if request.cfg.commands.restart is not True:
        return reply(RESTART_DISABLED)
    restarter = bridge.restarter
    if restarter is None:
        return reply("⚠️ Restart failed (unavailable).")
    if restarter.has_in_process_listener():
        restarter.schedule_in_process_restart("/restart")
        return reply(
            "⚙️ Restarting chatgate in-process (SIGUSR1); back in a few seconds."
        )
    attempt = await restarter.trigger_external_restart()
    if not attempt.ok:
        detail = f" Details: {attempt.detail}" if attempt.detail else ""
        logger.warning("restart.failed", method=attempt.method, detail=attempt.detail)
        return reply(f"⚠️ Restart failed ({attempt.method}).{detail}")
    return reply(
        f"⚙️ Restarting chatgate via {attempt.method}; "
        "give me a few seconds to come back online."
    )


# help / commands


def matches_help(request: CommandRequest) -> bool:
    return _body(request) == "/help"


async def handle_help(bridge: CommandBridge, request: CommandRequest) -> CommandResult:
    return reply(build_help_message(request.cfg))


def matches_commands(request: CommandRequest) -> bool:
    return _body(request) == "/commands"


async def handle_commands(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    return reply(build_commands_message(request.cfg, bridge.registry))


# status


def matches_status(request: CommandRequest) -> bool:
    return request.has_status_directive or _body(request) == "/status"


async def _load_usage_line(bridge: CommandBridge, request: CommandRequest) -> str | None:
    provider_id = resolve_usage_provider_id(request.provider)
    loader = bridge.usage_loader or build_usage_loader(request.cfg)
    if provider_id is None or loader is None:
        return None
    timeout_ms = bridge.usage_timeout_ms or request.cfg.usage.timeout_ms
    # the usage line is optional; any failure only omits it
    try:
        with anyio.fail_after(timeout_ms / 1000):
            summary = await loader.load(provider_id, timeout_ms=timeout_ms)
        line = format_usage_summary_line(summary, now=bridge.clock())
    except Exception as exc:
        logger.debug(
            "status.usage_unavailable",
            provider=provider_id,
            error=str(exc) or type(exc).__name__,
        )
        return None
    if line is None and "on" in (request.verbose_level, request.elevated_level):
        first = summary.providers[0] if summary.providers else None
        if first is not None and first.error:
            line = f"📊 Usage: {first.display_name} ({first.error})"
    return line


async def handle_status(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    cfg = request.cfg
    entry = request.session_entry
    usage_line = await _load_usage_line(bridge, request)
    settings = resolve_queue_settings(
        cfg, provider=request.command.provider, entry=entry
    )
    queue_key = request.session_key or (entry.session_id if entry else None)
    group_activation = None
    if request.is_group:
        group_activation = (
            normalize_group_activation(entry.group_activation if entry else None)
            or cfg.messages.group_chat.activation
        )
    text = build_status_message(
        entry=entry,
        session_key=request.session_key,
        provider=request.provider,
        model=request.model,
        context_tokens=request.context_tokens,
        think_level=request.think_level or cfg.agents.defaults.thinking_default,
        verbose_level=request.verbose_level,
        reasoning_level=request.reasoning_level,
        elevated_level=request.elevated_level,
        group_activation=group_activation,
        auth_label=bridge.auth_label(request.provider, entry),
        queue=QueueStatus(
            mode=settings.mode,
            depth=bridge.followups.depth(queue_key),
            debounce_ms=settings.debounce_ms,
            cap=settings.cap,
            drop=settings.drop,
            show_details=has_queue_overrides(entry),
        ),
        usage_line=usage_line,
        now_ms=now_ms(),
    )
    return reply(text)


# whoami


def matches_whoami(request: CommandRequest) -> bool:
    return _body(request) == "/whoami"


async def handle_whoami(bridge: CommandBridge, request: CommandRequest) -> CommandResult:
    msg = request.msg
    sender_id = msg.sender_id or ""
    username = msg.sender_username or ""
    lines = ["🧭 Identity", f"Provider: {request.command.provider}"]
    if sender_id:
        lines.append(f"User id: {sender_id}")
    if username:
        handle = username if username.startswith("@") else f"@{username}"
        lines.append(f"Username: {handle}")
    if msg.is_group and msg.from_id:
        lines.append(f"Chat: {msg.from_id}")
    if msg.message_thread_id is not None:
        lines.append(f"Thread: {msg.message_thread_id}")
    if sender_id:
        lines.append(f"AllowFrom: {sender_id}")
    return reply("\n".join(lines))


# config


def matches_config(request: CommandRequest) -> bool:
    return parse_config_command(_body(request)) is not None


async def handle_config(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult | None:
    if request.cfg.commands.config is not True:
        return reply(CONFIG_DISABLED)
    parsed = parse_config_command(_body(request))
    if parsed is None:
        return None
    if parsed.action == "error":
        return reply(f"⚠️ {parsed.message}")

    snapshot = await bridge.config_store.read_snapshot()
    if not snapshot.valid or not isinstance(snapshot.parsed, dict):
        return reply(CONFIG_INVALID_ON_DISK)
    base = copy.deepcopy(snapshot.parsed)

    if parsed.action == "show":
        return _show_config(base, parsed)

    path_result = parse_config_path(parsed.path)
    if not path_result.ok or path_result.path is None:
        return reply(f"⚠️ {path_result.error or 'Invalid path.'}")

    if parsed.action == "unset":
        if not unset_config_value_at_path(base, path_result.path):
            return reply(f"⚙️ No config value found for {parsed.path}.")
    else:
        set_config_value_at_path(base, path_result.path, parsed.value)

    validated = validate_config_object(base)
    if validated.config is None or not validated.ok:
        issue = validated.issues[0]
        logger.info(
            "config.command_rejected",
            action=parsed.action,
            path=parsed.path,
            issue_path=issue.path,
        )
        return reply(
            f"⚠️ Config invalid after {parsed.action} ({issue.path}: {issue.message})."
        )
    await bridge.config_store.write(validated.config)
    logger.info("config.command_applied", action=parsed.action, path=parsed.path)
    if parsed.action == "unset":
        return reply(f"⚙️ Config updated: {parsed.path} removed.")
    return reply(f"⚙️ Config updated: {parsed.path}={_value_label(parsed.value)}")


def _show_config(base: dict[str, Any], parsed: PathCommand) -> CommandResult:
    path_raw = (parsed.path or "").strip()
    if not path_raw:
        return reply(f"⚙️ Config (raw):\n```json\n{_render_json(base)}\n```")
    path_result = parse_config_path(path_raw)
    if not path_result.ok or path_result.path is None:
        return reply(f"⚠️ {path_result.error or 'Invalid path.'}")
    value = get_config_value_at_path(base, path_result.path)
    return reply(f"⚙️ Config {path_raw}:\n```json\n{_render_json(value)}\n```")


# debug


def matches_debug(request: CommandRequest) -> bool:
    return parse_debug_command(_body(request)) is not None


async def handle_debug(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult | None:
    if request.cfg.commands.debug is not True:
        return reply(DEBUG_DISABLED)
    parsed = parse_debug_command(_body(request))
    if parsed is None:
        return None
    overrides = bridge.overrides
    if parsed.action == "error":
        return reply(f"⚠️ {parsed.message}")
    if parsed.action == "show":
        current = overrides.get()
        if not current:
            return reply("⚙️ Debug overrides: (none)")
        return reply(f"⚙️ Debug overrides (memory-only):\n```json\n{_render_json(current)}\n```")
    if parsed.action == "reset":
        overrides.reset()
        logger.info("debug.overrides_reset")
        return reply("⚙️ Debug overrides cleared; using config on disk.")
    if parsed.action == "unset":
        result = overrides.unset(parsed.path or "")
        if not result.ok:
            return reply(f"⚠️ {result.error or 'Invalid path.'}")
        if not result.removed:
            return reply(f"⚙️ No debug override found for {parsed.path}.")
        return reply(f"⚙️ Debug override removed for {parsed.path}.")
    path_result = parse_config_path(parsed.path or "")
    if not path_result.ok or path_result.path is None:
        return reply(f"⚠️ {path_result.error or 'Invalid path.'}")
    candidate = overrides.get()
    set_config_value_at_path(candidate, path_result.path, parsed.value)
    snapshot = await bridge.config_store.read_snapshot()
    base: dict[str, Any] = {}
    if snapshot.valid and isinstance(snapshot.parsed, dict):
        base = snapshot.parsed
    validated = validate_config_object(apply_config_overrides(base, candidate))
    if not validated.ok:
        issue = validated.issues[0]
        logger.info("debug.override_rejected", path=parsed.path, issue_path=issue.path)
        return reply(f"⚠️ Debug override invalid ({issue.path}: {issue.message}).")
    result = overrides.set(parsed.path or "", parsed.value)
    if not result.ok:
        return reply(f"⚠️ {result.error or 'Invalid override.'}")
    logger.info("debug.override_set", path=parsed.path)
    return reply(f"⚙️ Debug override set: {parsed.path}={_value_label(parsed.value)}")


# stop / abort


@dataclass(frozen=True, slots=True)
class AbortTarget:
    entry: SessionEntry | None
    key: str | None
    session_id: str | None


def resolve_abort_target(
    msg: IncomingMessage,
    *,
    session_key: str | None,
    session_entry: SessionEntry | None,
    session_store: dict[str, SessionEntry] | None,
) -> AbortTarget:
    """Pick the session a stop request applies to.

    An explicit per-message target key wins over the current session key;
    legacy store keys are tried when the structured key is missing.
    """
    target_key = (msg.command_target_session_key or "").strip() or session_key
    entry, key = resolve_session_entry_for_key(session_store, target_key)
    if entry is not None and key:
        return AbortTarget(entry=entry, key=key, session_id=entry.session_id)
    if session_entry is not None and session_key:
        return AbortTarget(
            entry=session_entry, key=session_key, session_id=session_entry.session_id
        )
    return AbortTarget(entry=None, key=target_key, session_id=None)


async def abort_session_run(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    target = resolve_abort_target(
        request.msg,
        session_key=request.session_key,
        session_entry=request.session_entry,
        session_store=request.session_store,
    )
    if target.session_id:
        bridge.runs.abort(target.session_id)
    if target.entry is not None and request.session_store is not None and target.key:
        target.entry.aborted_last_run = True
        target.entry.touch()
        request.session_store[target.key] = target.entry
        await save_session_store(request)
    elif request.command.abort_key:
        # no session to persist on; only a live run loop will see this
        bridge.abort_memory.set(request.command.abort_key, True)
    logger.info(
        "commands.aborted",
        session_key=target.key,
        session_id=target.session_id,
    )
    return reply(ABORTED_TEXT)


def matches_stop(request: CommandRequest) -> bool:
    return _body(request) == "/stop"


def matches_abort_phrase(request: CommandRequest) -> bool:
    return is_abort_trigger(request.command.raw_body_normalized)


# compact


def matches_compact(request: CommandRequest) -> bool:
    body = _body(request)
    return body == "/compact" or body.startswith("/compact ")


def extract_compact_instructions(
    raw_body: str | None, msg: IncomingMessage, cfg: ChatgateConfig
) -> str | None:
    """Return the text following `/compact` in the raw, multi-line body."""
    text = strip_structural_prefixes(raw_body or "")
    if msg.is_group:
        text = strip_mentions(text, msg, cfg)
    text = text.strip()
    if not text.lower().startswith("/compact"):
        return None
    rest = text[len("/compact") :].lstrip()
    if rest.startswith(":"):
        rest = rest[1:].lstrip()
    return rest or None


def format_compaction_label(result: CompactionResult) -> str:
    if not result.ok:
        return "Compaction failed"
    if not result.compacted:
        return "Compaction skipped"
    before = result.tokens_before
    if before and result.tokens_after is not None:
        return (
            f"Compacted ({format_token_count(before)} → "
            f"{format_token_count(result.tokens_after)})"
        )
    if before:
        return f"Compacted ({format_token_count(before)} before)"
    return "Compacted"


async def handle_compact(
    bridge: CommandBridge, request: CommandRequest
) -> CommandResult:
    entry = request.session_entry
    if entry is None or not entry.session_id:
        return reply(COMPACT_MISSING_SESSION)
    session_id = entry.session_id
    runs = bridge.runs
    if runs.is_active(session_id):
        runs.abort(session_id)
        ended = await runs.wait_for_end(session_id, bridge.compact_wait_ms)
        if not ended:
            logger.warning(
                "compact.run_still_active",
                session_id=session_id,
                timeout_ms=bridge.compact_wait_ms,
            )

    msg = request.msg
    cfg = request.cfg
    instructions = extract_compact_instructions(
        msg.command_body or msg.raw_body or msg.body, msg, cfg
    )
    sessions_dir = (
        request.store.sessions_dir if request.store is not None else request.workspace_dir
    )
    owners = request.command.owner_list
    result = await runs.compact(
        CompactionRequest(
            session_id=session_id,
            session_key=request.session_key,
            message_provider=request.command.provider,
            session_file=resolve_session_file_path(
                session_id, entry, sessions_dir=sessions_dir
            ),
            workspace_dir=request.workspace_dir,
            provider=request.provider,
            model=request.model,
            think_level=request.think_level or cfg.agents.defaults.thinking_default,
            custom_instructions=instructions,
            owner_numbers=owners or None,
            skills_snapshot=entry.skills_snapshot,
        )
    )

    total = entry.total_tokens
    if total is None:
        total = (entry.input_tokens or 0) + (entry.output_tokens or 0)
    context_summary = format_context_usage_short(
        total if total > 0 else None,
        request.context_tokens or entry.context_tokens,
    )
    if result.ok and result.compacted:
        entry.compaction_count += 1
        entry.touch()
        if request.session_store is not None and request.session_key:
            request.session_store[request.session_key] = entry
            await save_session_store(request)

    label = format_compaction_label(result)
    reason = (result.reason or "").strip()
    line = f"{label}: {reason} • {context_summary}" if reason else f"{label} • {context_summary}"
    if request.session_key:
        bridge.system_events.enqueue(line, session_key=request.session_key)
    logger.info(
        "compact.finished",
        session_id=session_id,
        ok=result.ok,
        compacted=result.compacted,
    )
    return reply(f"⚙️ {line}")
