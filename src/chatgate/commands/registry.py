"""Chat command definitions and the validated command registry.

The registry is built once, validated eagerly, and never changes afterwards.
The alias index and detection pattern are derived from it on first use.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from ..config import ChatgateConfig

CommandScope = Literal["text", "native", "both"]

# commands that only exist when explicitly switched on in config
CONFIG_GATED_COMMANDS = {
    "config": "config",
    "debug": "debug",
    "bash": "bash",
}


class CommandRegistryError(ValueError):
    """Raised when command definitions violate registry invariants."""


@dataclass(frozen=True, slots=True)
class CommandDefinition:
    key: str
    description: str
    text_aliases: tuple[str, ...] = ()
    native_name: str | None = None
    accepts_args: bool = False
    scope: CommandScope = "text"

    @property
    def canonical(self) -> str:
        return f"/{self.key}"


@dataclass(frozen=True, slots=True)
class NativeCommandSpec:
    name: str
    description: str
    accepts_args: bool


@dataclass(frozen=True, slots=True)
class AliasSpec:
    canonical: str
    accepts_args: bool


@dataclass(frozen=True, slots=True)
class CommandDetection:
    exact: frozenset[str]
    pattern: re.Pattern[str]


def define_command(
    *,
    key: str,
    description: str,
    native_name: str | None = None,
    accepts_args: bool = False,
    text_alias: str | None = None,
    text_aliases: Iterable[str] | None = None,
    scope: CommandScope | None = None,
) -> CommandDefinition:
    raw_aliases = (
        list(text_aliases)
        if text_aliases is not None
        else ([text_alias] if text_alias else [])
    )
    aliases = tuple(alias.strip() for alias in raw_aliases if alias.strip())
    if scope is None:
        if native_name:
            scope = "both" if aliases else "native"
        else:
            scope = "text"
    return CommandDefinition(
        key=key,
        description=description,
        text_aliases=aliases,
        native_name=native_name,
        accepts_args=accepts_args,
        scope=scope,
    )


def register_alias(
    definitions: list[CommandDefinition], key: str, *aliases: str
) -> None:
    """Append extra text aliases to the definition with *key*, in place."""
    for index, command in enumerate(definitions):
        if command.key == key:
            break
    else:
        raise CommandRegistryError(f"register_alias: unknown command key: {key}")
    existing = {alias.lower() for alias in command.text_aliases}
    added = list(command.text_aliases)
    for alias in aliases:
        trimmed = alias.strip()
        if not trimmed or trimmed.lower() in existing:
            continue
        existing.add(trimmed.lower())
        added.append(trimmed)
    definitions[index] = replace(command, text_aliases=tuple(added))


def validate_definitions(definitions: Iterable[CommandDefinition]) -> None:
    keys: set[str] = set()
    native_names: set[str] = set()
    text_aliases: set[str] = set()
    for command in definitions:
        if command.key in keys:
            raise CommandRegistryError(f"Duplicate command key: {command.key}")
        keys.add(command.key)

        native_name = (command.native_name or "").strip()
        if command.scope == "text":
            if native_name:
                raise CommandRegistryError(
                    f"Text-only command has native name: {command.key}"
                )
            if not command.text_aliases:
                raise CommandRegistryError(
                    f"Text-only command missing text alias: {command.key}"
                )
        elif not native_name:
            raise CommandRegistryError(
                f"Native command missing native name: {command.key}"
            )
        else:
            native_key = native_name.lower()
            if native_key in native_names:
                raise CommandRegistryError(f"Duplicate native command: {native_name}")
            native_names.add(native_key)

        if command.scope == "native" and command.text_aliases:
            raise CommandRegistryError(
                f"Native-only command has text aliases: {command.key}"
            )

        for alias in command.text_aliases:
            if not alias.startswith("/"):
                raise CommandRegistryError(
                    f"Command alias missing leading '/': {alias}"
                )
            alias_key = alias.lower()
            if alias_key in text_aliases:
                raise CommandRegistryError(f"Duplicate command alias: {alias}")
            text_aliases.add(alias_key)


def _alias_pattern(alias: str, accepts_args: bool) -> str:
    escaped = re.escape(alias)
    if accepts_args:
        return rf"{escaped}(?:\s+.+|\s*:\s*.*)?"
    return rf"{escaped}(?:\s*:\s*)?"


class CommandRegistry:
    """Immutable, validated set of command definitions."""

    def __init__(self, definitions: Iterable[CommandDefinition]) -> None:
        commands = tuple(definitions)
        validate_definitions(commands)
        self._commands = commands
        self._lock = threading.Lock()
        self._alias_index: dict[str, AliasSpec] | None = None
        self._detection: CommandDetection | None = None

    def __len__(self) -> int:
        return len(self._commands)

    def list_definitions(self) -> list[CommandDefinition]:
        return list(self._commands)

    @property
    def alias_index(self) -> dict[str, AliasSpec]:
        index = self._alias_index
        if index is None:
            with self._lock:
                if self._alias_index is None:
                    self._alias_index = self._build_alias_index()
                index = self._alias_index
        return index

    @property
    def detection(self) -> CommandDetection:
        detection = self._detection
        if detection is None:
            alias_index = self.alias_index
            with self._lock:
                if self._detection is None:
                    self._detection = self._build_detection(alias_index)
                detection = self._detection
        return detection

    def _build_alias_index(self) -> dict[str, AliasSpec]:
        index: dict[str, AliasSpec] = {}
        for command in self._commands:
            spec = AliasSpec(canonical=command.canonical, accepts_args=command.accepts_args)
            for alias in command.text_aliases:
                normalized = alias.strip().lower()
                if normalized and normalized not in index:
                    index[normalized] = spec
        return index

    @staticmethod
    def _build_detection(alias_index: dict[str, AliasSpec]) -> CommandDetection:
        patterns = [
            _alias_pattern(alias, spec.accepts_args)
            for alias, spec in alias_index.items()
        ]
        pattern = (
            re.compile(f"(?:{'|'.join(patterns)})", re.IGNORECASE)
            if patterns
            else re.compile(r"(?!)")
        )
        return CommandDetection(exact=frozenset(alias_index), pattern=pattern)

    def resolve_alias(self, alias: str) -> AliasSpec | None:
        return self.alias_index.get(alias.strip().lower())

    def find_by_key(self, key: str) -> CommandDefinition | None:
        for command in self._commands:
            if command.key == key:
                return command
        return None

    def find_by_canonical(self, canonical: str) -> CommandDefinition | None:
        for command in self._commands:
            if command.canonical == canonical:
                return command
        return None

    def find_by_native_name(self, name: str) -> CommandDefinition | None:
        normalized = name.strip().lower()
        for command in self._commands:
            if command.scope == "text" or not command.native_name:
                continue
            if command.native_name.lower() == normalized:
                return command
        return None


def is_command_enabled(cfg: ChatgateConfig, key: str) -> bool:
    flag = CONFIG_GATED_COMMANDS.get(key)
    if flag is None:
        return True
    return getattr(cfg.commands, flag) is True


def list_commands_for_config(
    cfg: ChatgateConfig, *, registry: CommandRegistry | None = None
) -> list[CommandDefinition]:
    registry = registry or default_registry()
    return [
        command
        for command in registry.list_definitions()
        if is_command_enabled(cfg, command.key)
    ]


def list_native_command_specs(
    cfg: ChatgateConfig | None = None, *, registry: CommandRegistry | None = None
) -> list[NativeCommandSpec]:
    registry = registry or default_registry()
    if cfg is not None and cfg.commands.native is False:
        return []
    commands = (
        list_commands_for_config(cfg, registry=registry)
        if cfg is not None
        else registry.list_definitions()
    )
    return [
        NativeCommandSpec(
            name=command.native_name or command.key,
            description=command.description,
            accepts_args=command.accepts_args,
        )
        for command in commands
        if command.scope != "text" and command.native_name
    ]


def build_command_text(command_name: str, args: str | None = None) -> str:
    trimmed = (args or "").strip()
    return f"/{command_name} {trimmed}" if trimmed else f"/{command_name}"


def build_chat_commands() -> CommandRegistry:
    commands = [
        define_command(
            key="help",
            native_name="help",
            description="Show available commands.",
            text_alias="/help",
        ),
        define_command(
            key="commands",
            native_name="commands",
            description="List all slash commands.",
            text_alias="/commands",
        ),
        define_command(
            key="status",
            native_name="status",
            description="Show current status.",
            text_alias="/status",
        ),
        define_command(
            key="whoami",
            native_name="whoami",
            description="Show your sender id.",
            text_alias="/whoami",
        ),
        define_command(
            key="config",
            native_name="config",
            description="Show or set config values.",
            text_alias="/config",
            accepts_args=True,
        ),
        define_command(
            key="debug",
            native_name="debug",
            description="Set runtime debug overrides.",
            text_alias="/debug",
            accepts_args=True,
        ),
        define_command(
            key="cost",
            native_name="cost",
            description="Toggle per-response usage line.",
            text_alias="/cost",
            accepts_args=True,
        ),
        define_command(
            key="stop",
            native_name="stop",
            description="Stop the current run.",
            text_alias="/stop",
        ),
        define_command(
            key="restart",
            native_name="restart",
            description="Restart the gateway.",
            text_alias="/restart",
        ),
        define_command(
            key="activation",
            native_name="activation",
            description="Set group activation mode.",
            text_alias="/activation",
            accepts_args=True,
        ),
        define_command(
            key="send",
            native_name="send",
            description="Set send policy.",
            text_alias="/send",
            accepts_args=True,
        ),
        define_command(
            key="reset",
            native_name="reset",
            description="Reset the current session.",
            text_alias="/reset",
        ),
        define_command(
            key="new",
            native_name="new",
            description="Start a new session.",
            text_alias="/new",
        ),
        define_command(
            key="compact",
            description="Compact the session context.",
            text_alias="/compact",
            scope="text",
            accepts_args=True,
        ),
        define_command(
            key="think",
            native_name="think",
            description="Set thinking level.",
            text_alias="/think",
            accepts_args=True,
        ),
        define_command(
            key="verbose",
            native_name="verbose",
            description="Toggle verbose mode.",
            text_alias="/verbose",
            accepts_args=True,
        ),
        define_command(
            key="reasoning",
            native_name="reasoning",
            description="Toggle reasoning visibility.",
            text_alias="/reasoning",
            accepts_args=True,
        ),
        define_command(
            key="elevated",
            native_name="elevated",
            description="Toggle elevated mode.",
            text_alias="/elevated",
            accepts_args=True,
        ),
        define_command(
            key="model",
            native_name="model",
            description="Show or set the model.",
            text_alias="/model",
            accepts_args=True,
        ),
        define_command(
            key="queue",
            native_name="queue",
            description="Adjust queue settings.",
            text_alias="/queue",
            accepts_args=True,
        ),
        define_command(
            key="bash",
            description="Run host shell commands (host-only).",
            text_alias="/bash",
            scope="text",
            accepts_args=True,
        ),
    ]

    register_alias(commands, "status", "/usage")
    register_alias(commands, "whoami", "/id")
    register_alias(commands, "think", "/thinking", "/t")
    register_alias(commands, "verbose", "/v")
    register_alias(commands, "reasoning", "/reason")
    register_alias(commands, "elevated", "/elev")
    register_alias(commands, "model", "/models")

    return CommandRegistry(commands)


_default_registry: CommandRegistry | None = None
_default_registry_lock = threading.Lock()


def default_registry() -> CommandRegistry:
    """Process-wide registry; built (and validated) on first call."""
    global _default_registry
    if _default_registry is None:
        with _default_registry_lock:
            if _default_registry is None:
                _default_registry = build_chat_commands()
    return _default_registry
