"""Command registry, normalization and dispatch."""

from __future__ import annotations

from .context import (
    CommandBridge,
    CommandContext,
    CommandRequest,
    build_command_context,
)
from .dispatch import DISPATCH_RULES, DispatchRule, dispatch_command
from .parse import (
    ResolvedCommand,
    is_command_message,
    normalize_command_body,
    resolve_text_alias,
    resolve_text_command,
    should_handle_text_commands,
)
from .registry import (
    CommandDefinition,
    CommandRegistry,
    CommandRegistryError,
    build_chat_commands,
    default_registry,
    define_command,
    list_native_command_specs,
)

__all__ = [
    "DISPATCH_RULES",
    "CommandBridge",
    "CommandContext",
    "CommandDefinition",
    "CommandRegistry",
    "CommandRegistryError",
    "CommandRequest",
    "DispatchRule",
    "ResolvedCommand",
    "build_chat_commands",
    "build_command_context",
    "default_registry",
    "define_command",
    "dispatch_command",
    "is_command_message",
    "list_native_command_specs",
    "normalize_command_body",
    "resolve_text_alias",
    "resolve_text_command",
    "should_handle_text_commands",
]
