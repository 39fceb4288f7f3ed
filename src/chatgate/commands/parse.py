"""Command body normalization, alias resolution and argument parsing."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from .registry import CommandDefinition, CommandRegistry, default_registry

if TYPE_CHECKING:
    from ..config import ChatgateConfig

_COLON_RE = re.compile(r"^/([^\s:]+)\s*:(.*)$")
_MENTION_RE = re.compile(r"^/([^\s@]+)@(\S+)(.*)$")
_TOKEN_RE = re.compile(r"^/(\S+)(?:\s+(.+))?$", re.DOTALL)
_LEADING_TOKEN_RE = re.compile(r"^/([^\s:]+)(?:\s|$)")
_ACTION_RE = re.compile(r"^(\S+)(?:\s+(.+))?$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ResolvedCommand:
    command: CommandDefinition
    args: str | None = None


def normalize_command_body(
    raw: str,
    *,
    bot_username: str | None = None,
    registry: CommandRegistry | None = None,
) -> str:
    """Turn raw message text into a canonical command body.

    Only the first line is interpreted. ``/cmd: rest`` becomes ``/cmd rest``,
    ``/cmd@bot`` drops a suffix naming *bot_username*, and a known alias is
    replaced by its ``/key`` form. Text after a no-argument alias leaves the
    body untouched.
    """
    trimmed = raw.strip()
    if not trimmed.startswith("/"):
        return trimmed
    registry = registry or default_registry()

    newline = trimmed.find("\n")
    single_line = trimmed if newline == -1 else trimmed[:newline].strip()

    colon_match = _COLON_RE.match(single_line)
    if colon_match is not None:
        command, rest = colon_match.groups()
        rest = rest.lstrip()
        normalized = f"/{command} {rest}" if rest else f"/{command}"
    else:
        normalized = single_line

    command_body = normalized
    mention_name = (bot_username or "").strip().lower()
    if mention_name:
        mention_match = _MENTION_RE.match(normalized)
        if mention_match is not None and mention_match.group(2).lower() == mention_name:
            command_body = f"/{mention_match.group(1)}{mention_match.group(3)}"

    exact = registry.alias_index.get(command_body.lower())
    if exact is not None:
        return exact.canonical

    token_match = _TOKEN_RE.match(command_body)
    if token_match is None:
        return command_body
    token, rest = token_match.groups()
    spec = registry.alias_index.get(f"/{token.lower()}")
    if spec is None:
        return command_body
    if rest and not spec.accepts_args:
        return command_body
    rest = rest.lstrip() if rest else ""
    return f"{spec.canonical} {rest}" if rest else spec.canonical


def is_command_message(raw: str, *, registry: CommandRegistry | None = None) -> bool:
    return normalize_command_body(raw, registry=registry).startswith("/")


def resolve_text_alias(
    raw: str, *, registry: CommandRegistry | None = None
) -> str | None:
    """Return the lowercased alias that *raw* invokes, if any.

    The combined pattern validates shape (trailing text admissible for the
    alias's argument policy); the token lookup confirms identity.
    """
    registry = registry or default_registry()
    trimmed = normalize_command_body(raw, registry=registry).strip()
    if not trimmed.startswith("/"):
        return None
    detection = registry.detection
    normalized = trimmed.lower()
    if normalized in detection.exact:
        return normalized
    if detection.pattern.fullmatch(normalized) is None:
        return None
    token_match = _LEADING_TOKEN_RE.match(normalized)
    if token_match is None:
        return None
    token_key = f"/{token_match.group(1)}"
    return token_key if token_key in registry.alias_index else None


def resolve_text_command(
    raw: str, *, registry: CommandRegistry | None = None
) -> ResolvedCommand | None:
    registry = registry or default_registry()
    trimmed = normalize_command_body(raw, registry=registry).strip()
    alias = resolve_text_alias(trimmed, registry=registry)
    if alias is None:
        return None
    spec = registry.alias_index.get(alias)
    if spec is None:
        return None
    command = registry.find_by_canonical(spec.canonical)
    if command is None:
        return None
    if not spec.accepts_args:
        return ResolvedCommand(command)
    args = trimmed[len(alias) :].strip()
    return ResolvedCommand(command, args or None)


def is_native_command_surface(cfg: ChatgateConfig, surface: str | None) -> bool:
    if not surface or cfg.commands.native is False:
        return False
    surfaces = {name.lower() for name in cfg.commands.native_surfaces}
    return surface.lower() in surfaces


def should_handle_text_commands(
    cfg: ChatgateConfig,
    *,
    surface: str,
    command_source: Literal["text", "native"] | None = None,
) -> bool:
    if command_source == "native":
        return True
    if cfg.commands.text is not False:
        return True
    return not is_native_command_surface(cfg, surface)


PathAction = Literal["show", "set", "unset", "reset", "error"]


@dataclass(frozen=True, slots=True)
class PathCommand:
    """Parsed `/config` or `/debug` invocation."""

    action: PathAction
    path: str | None = None
    value: Any = None
    message: str | None = None


def parse_command_value(raw: str) -> Any:
    """Parse a value as JSON, falling back to the raw string."""
    text = raw.strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    if len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1]
    return text


def _split_path_value(args: str) -> tuple[str | None, str | None]:
    whitespace = re.search(r"\s", args)
    equals = args.find("=")
    if equals > 0 and (whitespace is None or equals < whitespace.start()):
        path, value = args[:equals], args[equals + 1 :]
    elif whitespace is not None:
        path, value = args[: whitespace.start()], args[whitespace.end() :]
    else:
        return None, None
    path = path.strip()
    value = value.strip()
    if not path or not value:
        return None, None
    return path, value


def _parse_path_command(
    body: str, name: str, *, allow_reset: bool
) -> PathCommand | None:
    match = re.match(rf"^/{name}(?:\s+(.*))?$", body.strip(), re.IGNORECASE | re.DOTALL)
    if match is None:
        return None
    rest = (match.group(1) or "").strip()
    if not rest:
        return PathCommand("show")
    action_match = _ACTION_RE.match(rest)
    if action_match is None:
        return PathCommand("error", message=f"Invalid /{name} syntax.")
    action = action_match.group(1).lower()
    args = (action_match.group(2) or "").strip()

    if action in {"show", "get"}:
        return PathCommand("show", path=args or None)
    if action == "reset" and allow_reset:
        if args:
            return PathCommand("error", message=f"Usage: /{name} reset")
        return PathCommand("reset")
    if action == "unset":
        if not args:
            return PathCommand("error", message=f"Usage: /{name} unset path")
        return PathCommand("unset", path=args)
    if action == "set":
        path, value = _split_path_value(args)
        if path is None or value is None:
            return PathCommand("error", message=f"Usage: /{name} set path=value")
        return PathCommand("set", path=path, value=parse_command_value(value))
    actions = "show|set|unset|reset" if allow_reset else "show|set|unset"
    return PathCommand("error", message=f"Usage: /{name} {actions}")


def parse_config_command(body: str) -> PathCommand | None:
    return _parse_path_command(body, "config", allow_reset=False)


def parse_debug_command(body: str) -> PathCommand | None:
    return _parse_path_command(body, "debug", allow_reset=True)
