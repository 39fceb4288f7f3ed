"""Strip envelope labels and bot mentions from inbound message text."""

from __future__ import annotations

import re

from .config import ChatgateConfig
from .types import IncomingMessage

CURRENT_MESSAGE_MARKER = "[Current message - respond to this]"

_ENVELOPE_RE = re.compile(r"^\s*\[[^\]\n]+\]\s*")
_SENDER_LABEL_RE = re.compile(r"^[ \t]*[A-Za-z0-9+()\-_. ]+:[ \t]+(?=\S)")
_INLINE_SPACE_RE = re.compile(r"[ \t]{2,}")


def strip_structural_prefixes(text: str) -> str:
    """Drop history wrappers, envelope tags and a leading sender label.

    Line breaks inside the remaining message are preserved.
    """
    if CURRENT_MESSAGE_MARKER in text:
        text = text[text.index(CURRENT_MESSAGE_MARKER) + len(CURRENT_MESSAGE_MARKER) :]
    text = text.lstrip()
    while True:
        stripped = _ENVELOPE_RE.sub("", text, count=1)
        if stripped == text:
            break
        text = stripped
    if not text.startswith("/"):
        text = _SENDER_LABEL_RE.sub("", text, count=1)
    return text.strip()


def mention_patterns(cfg: ChatgateConfig, msg: IncomingMessage) -> list[re.Pattern[str]]:
    patterns = [
        re.compile(pattern, re.IGNORECASE)
        for pattern in cfg.messages.group_chat.mention_patterns
    ]
    username = (msg.bot_username or "").strip().lstrip("@")
    if username:
        patterns.append(re.compile(rf"@{re.escape(username)}\b", re.IGNORECASE))
    return patterns


def strip_mentions(text: str, msg: IncomingMessage, cfg: ChatgateConfig) -> str:
    result = text
    for pattern in mention_patterns(cfg, msg):
        result = pattern.sub(" ", result)
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in result.split("\n")]
    return "\n".join(lines).strip()
