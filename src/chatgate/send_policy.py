"""Session send policy: the `/send` command and policy resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from .config import ChatgateConfig
from .sessions import SessionEntry

SendPolicy = Literal["allow", "deny"]
SendPolicyMode = Literal["allow", "deny", "inherit"]

SEND_USAGE = "⚙️ Usage: /send on|off|inherit"

_SEND_RE = re.compile(r"^/send(?:\s+([a-zA-Z]+))?\s*$", re.IGNORECASE)
_MODE_ALIASES: dict[str, SendPolicyMode] = {
    "on": "allow",
    "allow": "allow",
    "off": "deny",
    "deny": "deny",
    "inherit": "inherit",
    "default": "inherit",
    "reset": "inherit",
}


@dataclass(frozen=True, slots=True)
class SendPolicyCommand:
    has_command: bool
    mode: SendPolicyMode | None = None


def normalize_send_policy(raw: str | None) -> SendPolicy | None:
    value = (raw or "").strip().lower()
    if value == "allow":
        return "allow"
    if value == "deny":
        return "deny"
    return None


def parse_send_policy_command(body: str) -> SendPolicyCommand:
    match = _SEND_RE.match(body.strip())
    if match is None:
        return SendPolicyCommand(has_command=False)
    token = (match.group(1) or "").lower()
    return SendPolicyCommand(has_command=True, mode=_MODE_ALIASES.get(token))


def send_policy_label(mode: SendPolicyMode) -> str:
    if mode == "inherit":
        return "inherit"
    return "on" if mode == "allow" else "off"


def resolve_send_policy(
    cfg: ChatgateConfig,
    *,
    entry: SessionEntry | None,
    session_key: str | None,
    provider: str | None,
    chat_type: str | None,
) -> SendPolicy:
    override = normalize_send_policy(entry.send_policy if entry else None)
    if override is not None:
        return override
    policy = cfg.session.send_policy
    if policy is None:
        return "allow"
    allowed_match = False
    for rule in policy.rules:
        match = rule.match
        if match.provider and match.provider.lower() != (provider or "").lower():
            continue
        if match.chat_type and match.chat_type != chat_type:
            continue
        if match.key_prefix and not (session_key or "").startswith(match.key_prefix):
            continue
        if rule.action == "deny":
            return "deny"
        allowed_match = True
    if allowed_match:
        return "allow"
    return policy.default
