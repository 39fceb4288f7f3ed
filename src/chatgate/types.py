"""Message and reply types shared across the gateway core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ChatType = Literal["direct", "group"]
CommandSource = Literal["text", "native"]


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    provider: str
    body: str
    surface: str | None = None
    raw_body: str | None = None
    command_body: str | None = None
    chat_type: ChatType = "direct"
    sender_id: str | None = None
    sender_username: str | None = None
    from_id: str | None = None
    to_id: str | None = None
    message_thread_id: str | int | None = None
    command_source: CommandSource = "text"
    command_target_session_key: str | None = None
    command_authorized: bool = False
    bot_username: str | None = None

    @property
    def is_group(self) -> bool:
        return self.chat_type == "group"


@dataclass(frozen=True, slots=True)
class ReplyPayload:
    text: str


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of the dispatch chain.

    ``should_continue`` is True only for pass-through; a False result with no
    reply is a silent drop.
    """

    should_continue: bool
    reply: ReplyPayload | None = None


PASS_THROUGH = CommandResult(should_continue=True)
DROP = CommandResult(should_continue=False)


def reply(text: str) -> CommandResult:
    return CommandResult(should_continue=False, reply=ReplyPayload(text=text))
