"""Gateway configuration model, validation and the on-disk TOML store."""

from __future__ import annotations

import re
import tomllib
from collections.abc import MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .logging import get_logger
from .overrides import apply_config_overrides

if TYPE_CHECKING:
    from .overrides import RuntimeOverrides

logger = get_logger(__name__)

CONFIG_FILENAME = "chatgate.toml"
DEFAULT_NATIVE_SURFACES = ("discord", "slack", "telegram")

QueueMode = Literal["collect", "followup", "steer", "interrupt"]
QueueDrop = Literal["old", "new", "summarize"]
SendPolicyAction = Literal["allow", "deny"]
GroupActivationMode = Literal["mention", "always"]


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CommandsConfig(_Section):
    native: bool | Literal["auto"] = "auto"
    text: bool = True
    native_surfaces: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NATIVE_SURFACES)
    )
    bash: bool = False
    bash_foreground_ms: int = Field(default=2000, ge=0, le=30_000)
    config: bool = False
    debug: bool = False
    restart: bool = False
    use_access_groups: bool = True
    allow_from: dict[str, list[str]] = Field(default_factory=dict)


class SendPolicyMatch(_Section):
    provider: str | None = None
    chat_type: Literal["direct", "group"] | None = None
    key_prefix: str | None = None


class SendPolicyRule(_Section):
    action: SendPolicyAction
    match: SendPolicyMatch = Field(default_factory=SendPolicyMatch)


class SendPolicyConfig(_Section):
    default: SendPolicyAction = "allow"
    rules: list[SendPolicyRule] = Field(default_factory=list)


class SessionConfig(_Section):
    send_policy: SendPolicyConfig | None = None


class GroupChatConfig(_Section):
    mention_patterns: list[str] = Field(default_factory=list)
    activation: GroupActivationMode = "mention"

    @field_validator("mention_patterns")
    @classmethod
    def _compile_patterns(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid mention pattern {pattern!r}: {exc}") from exc
        return value


class MessagesConfig(_Section):
    group_chat: GroupChatConfig = Field(default_factory=GroupChatConfig)


class AgentDefaults(_Section):
    model: str | None = None
    context_tokens: int | None = Field(default=None, gt=0)
    thinking_default: str | None = None
    verbose_default: str | None = None
    elevated_default: str | None = None


class AgentsConfig(_Section):
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class QueueConfig(_Section):
    mode: QueueMode = "collect"
    debounce_ms: int = Field(default=1000, ge=0)
    cap: int = Field(default=20, ge=1)
    drop: QueueDrop = "summarize"
    by_provider: dict[str, QueueMode] = Field(default_factory=dict)


class UsageConfig(_Section):
    endpoint: str | None = None
    timeout_ms: int = Field(default=3500, gt=0)
    api_key_env: str | None = None


class GatewayServiceConfig(_Section):
    systemd_unit: str = "chatgate-gateway.service"
    launchd_label: str = "com.chatgate.gateway"


class ChatgateConfig(_Section):
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    gateway: GatewayServiceConfig = Field(default_factory=GatewayServiceConfig)


@dataclass(frozen=True, slots=True)
class ConfigIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidation:
    config: ChatgateConfig | None
    issues: tuple[ConfigIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.issues


@dataclass(frozen=True, slots=True)
class ConfigSnapshot:
    path: Path
    exists: bool
    valid: bool
    parsed: dict[str, Any] | None
    config: ChatgateConfig | None = None
    issues: tuple[ConfigIssue, ...] = ()


def validate_config_object(raw: Any) -> ConfigValidation:
    """Validate an entire configuration object.

    Issues carry dotted paths (``commands.bash_foreground_ms``) in the order
    pydantic reports them, so ``issues[0]`` is the first offending path.
    """
    if not isinstance(raw, dict):
        return ConfigValidation(None, (ConfigIssue("<root>", "config must be a table"),))
    try:
        config = ChatgateConfig.model_validate(raw)
    except ValidationError as exc:
        issues = tuple(
            ConfigIssue(
                path=".".join(str(part) for part in error["loc"]) or "<root>",
                message=error["msg"],
            )
            for error in exc.errors()
        )
        return ConfigValidation(None, issues)
    return ConfigValidation(config)


def dump_config(config: ChatgateConfig) -> dict[str, Any]:
    return config.model_dump(mode="json", exclude_unset=True, exclude_none=True)


def resolve_config_path(state_dir: Path) -> Path:
    return state_dir / CONFIG_FILENAME


class ConfigFileStore:
    """Read-validate-write access to the TOML configuration file.

    The file is never held open between operations.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    async def read_snapshot(self) -> ConfigSnapshot:
        path = self.path
        if not path.exists():
            return ConfigSnapshot(
                path=path,
                exists=False,
                valid=True,
                parsed={},
                config=ChatgateConfig(),
            )
        try:
            parsed = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("config.read_failed", path=str(path), error=str(exc))
            return ConfigSnapshot(
                path=path,
                exists=True,
                valid=False,
                parsed=None,
                issues=(ConfigIssue("<file>", str(exc)),),
            )
        validated = validate_config_object(parsed)
        if not validated.ok:
            logger.warning(
                "config.invalid",
                path=str(path),
                issues=[f"{issue.path}: {issue.message}" for issue in validated.issues],
            )
        return ConfigSnapshot(
            path=path,
            exists=True,
            valid=validated.ok,
            parsed=parsed,
            config=validated.config,
            issues=validated.issues,
        )

    async def write(self, config: ChatgateConfig) -> None:
        """Write *config*, editing the existing TOML document in place.

        Comments and layout of keys that keep their value survive the write.
        """
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            document = tomlkit.parse(path.read_text(encoding="utf-8"))
        else:
            document = tomlkit.document()
        _sync_table(document, dump_config(config))
        temp_path = path.with_suffix(path.suffix + ".tmp")
        temp_path.write_text(tomlkit.dumps(document), encoding="utf-8")
        temp_path.replace(path)
        logger.info("config.written", path=str(path))


def _sync_table(table: MutableMapping[str, Any], data: dict[str, Any]) -> None:
    for key in [key for key in table if key not in data]:
        del table[key]
    for key, value in data.items():
        current = table.get(key)
        if isinstance(value, dict) and isinstance(current, MutableMapping):
            _sync_table(current, value)
            continue
        existing = current.unwrap() if hasattr(current, "unwrap") else current
        if key not in table or existing != value:
            table[key] = value


async def load_runtime_config(
    store: ConfigFileStore, overrides: RuntimeOverrides | None = None
) -> ChatgateConfig:
    """Load the on-disk config and apply in-memory debug overrides on top."""
    snapshot = await store.read_snapshot()
    if not snapshot.valid or snapshot.parsed is None:
        issue = snapshot.issues[0] if snapshot.issues else ConfigIssue("<file>", "invalid")
        raise ConfigError(f"Invalid config at {snapshot.path} ({issue.path}: {issue.message})")
    raw = snapshot.parsed
    if overrides is not None:
        raw = apply_config_overrides(raw, overrides.get())
    validated = validate_config_object(raw)
    if validated.config is None:
        issue = validated.issues[0]
        raise ConfigError(f"Debug overrides produce an invalid config ({issue.path}: {issue.message})")
    return validated.config
