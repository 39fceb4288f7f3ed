"""Group activation modes and the `/activation` command."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

GroupActivation = Literal["mention", "always"]

ACTIVATION_USAGE = "⚙️ Usage: /activation mention|always"

_ACTIVATION_RE = re.compile(r"^/activation(?:\s+([a-zA-Z]+))?\s*$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ActivationCommand:
    has_command: bool
    mode: GroupActivation | None = None


def normalize_group_activation(raw: str | None) -> GroupActivation | None:
    value = (raw or "").strip().lower()
    if value == "mention":
        return "mention"
    if value == "always":
        return "always"
    return None


def parse_activation_command(body: str) -> ActivationCommand:
    match = _ACTIVATION_RE.match(body.strip())
    if match is None:
        return ActivationCommand(has_command=False)
    return ActivationCommand(
        has_command=True, mode=normalize_group_activation(match.group(1))
    )
