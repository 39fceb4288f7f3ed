"""Informational replies: help, command listing and session status."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..sessions import SessionEntry
from .registry import CommandRegistry, list_commands_for_config

if TYPE_CHECKING:
    from ..config import ChatgateConfig


@dataclass(frozen=True, slots=True)
class QueueStatus:
    mode: str
    depth: int
    debounce_ms: int
    cap: int
    drop: str
    show_details: bool = False


def format_token_count(value: int | float | None) -> str:
    if value is None:
        return "?"
    count = max(0, int(value))
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}".rstrip("0").rstrip(".") + "m"
    if count >= 1_000:
        return f"{count / 1_000:.1f}".rstrip("0").rstrip(".") + "k"
    return str(count)


def format_context_usage_short(total: int | None, context: int | None) -> str:
    used = format_token_count(total)
    if not context:
        return f"Context {used}"
    if total is None:
        return f"Context {used}/{format_token_count(context)}"
    percent = min(999, round(total * 100 / context))
    return f"Context {used}/{format_token_count(context)} ({percent}%)"


def format_age(updated_at_ms: int | None, *, now_ms: int) -> str:
    if updated_at_ms is None:
        return "no activity"
    seconds = max(0, (now_ms - updated_at_ms) // 1000)
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 48:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def build_help_message(cfg: ChatgateConfig) -> str:
    lines = [
        "ℹ️ Help",
        "Shortcuts: /new reset | /compact [instructions] | /stop abort the current run",
        "Options: /think <level> | /verbose on|off | /reasoning on|off | "
        "/elevated on|off | /model <id> | /cost on|off",
        "Session: /status | /whoami | /send on|off|inherit | /activation mention|always",
    ]
    admin = [
        name
        for name, enabled in (
            ("/config", cfg.commands.config),
            ("/debug", cfg.commands.debug),
            ("/restart", cfg.commands.restart),
            ("/bash", cfg.commands.bash),
        )
        if enabled
    ]
    if admin:
        lines.append(f"Admin: {' | '.join(admin)}")
    lines.append("More: /commands for all slash commands")
    return "\n".join(lines)


def build_commands_message(cfg: ChatgateConfig, registry: CommandRegistry) -> str:
    lines = ["ℹ️ Slash commands"]
    for command in list_commands_for_config(cfg, registry=registry):
        if not command.text_aliases:
            continue
        primary, *others = command.text_aliases
        line = f"{primary} - {command.description}"
        if others:
            line = f"{line} (aliases: {', '.join(others)})"
        lines.append(line)
    if cfg.commands.text is False:
        lines.append("Text commands are off on native-command surfaces.")
    return "\n".join(lines)


def build_status_message(
    *,
    entry: SessionEntry | None,
    session_key: str | None,
    provider: str,
    model: str,
    context_tokens: int | None,
    think_level: str | None,
    verbose_level: str,
    reasoning_level: str,
    elevated_level: str | None,
    group_activation: str | None,
    auth_label: str | None,
    queue: QueueStatus,
    usage_line: str | None,
    now_ms: int,
) -> str:
    model_line = f"🤖 Model: {provider}/{model}"
    if auth_label:
        model_line = f"{model_line} · 🔑 {auth_label}"
    lines = [model_line]

    total: int | None = None
    if entry is not None:
        total = entry.total_tokens
        if total is None and (entry.input_tokens or entry.output_tokens):
            total = (entry.input_tokens or 0) + (entry.output_tokens or 0)
    context_limit = context_tokens or (entry.context_tokens if entry else None)
    compactions = entry.compaction_count if entry else 0
    lines.append(
        f"📚 {format_context_usage_short(total, context_limit)} · "
        f"🧹 Compactions: {compactions}"
    )

    updated_at = entry.updated_at if entry else None
    lines.append(
        f"🧵 Session: {session_key or 'unknown'} • "
        f"{format_age(updated_at, now_ms=now_ms)}"
    )
    lines.append(
        f"⚙️ Think: {think_level or 'off'} · Verbose: {verbose_level} · "
        f"Reasoning: {reasoning_level} · Elevated: {elevated_level or 'off'}"
    )
    if group_activation:
        lines.append(f"👥 Activation: {group_activation}")

    queue_line = f"🪢 Queue: {queue.mode} (depth {queue.depth}"
    if queue.show_details:
        queue_line += (
            f" · debounce {queue.debounce_ms}ms · cap {queue.cap} · drop {queue.drop}"
        )
    lines.append(queue_line + ")")

    if usage_line:
        lines.append(usage_line)
    return "\n".join(lines)
