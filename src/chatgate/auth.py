"""Resolve whether the sender of a message may run commands."""

from __future__ import annotations

from dataclasses import dataclass

from .config import ChatgateConfig
from .types import IncomingMessage


@dataclass(frozen=True, slots=True)
class CommandAuthorization:
    provider_id: str | None
    owner_list: tuple[str, ...]
    sender_id: str | None
    is_authorized_sender: bool
    from_id: str | None = None
    to_id: str | None = None


def _normalize_id(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_command_authorization(
    msg: IncomingMessage, cfg: ChatgateConfig
) -> CommandAuthorization:
    provider_id = _normalize_id(msg.provider.lower()) if msg.provider else None
    owner_list = tuple(
        owner.strip()
        for owner in cfg.commands.allow_from.get(provider_id or "", [])
        if owner.strip()
    )
    sender_id = _normalize_id(msg.sender_id) or _normalize_id(msg.from_id)
    from_id = _normalize_id(msg.from_id)
    authorized = msg.command_authorized
    if authorized and cfg.commands.use_access_groups and owner_list:
        allowed = set(owner_list)
        authorized = "*" in allowed or any(
            candidate in allowed for candidate in (sender_id, from_id) if candidate
        )
    return CommandAuthorization(
        provider_id=provider_id,
        owner_list=owner_list,
        sender_id=sender_id,
        is_authorized_sender=authorized,
        from_id=from_id,
        to_id=_normalize_id(msg.to_id),
    )
