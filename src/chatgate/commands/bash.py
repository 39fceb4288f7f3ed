"""Host shell execution for `/bash` and `!` lines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import anyio

from ..logging import get_logger

logger = get_logger(__name__)

BASH_DISABLED = "⚠️ bash is disabled. Set commands.bash=true to enable."
BASH_USAGE = "⚙️ Usage: /bash <command> (or !<command>)"
MAX_OUTPUT_CHARS = 3500

_BASH_SLASH_RE = re.compile(r"^/bash(?:\s+(.*))?$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class BashOutcome:
    exit_code: int | None
    output: str
    timed_out: bool = False


def is_bash_slash_command(body: str) -> bool:
    return body == "/bash" or body.startswith("/bash ")


def parse_bash_command(body: str) -> str | None:
    """Extract the shell command from a `/bash` or `!` body.

    Returns None when *body* is neither form, and an empty string when the
    form matched but no command followed.
    """
    stripped = body.strip()
    if stripped.startswith("!"):
        return stripped[1:].strip()
    match = _BASH_SLASH_RE.match(stripped)
    if match is None:
        return None
    return (match.group(1) or "").strip()


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def truncate_output(text: str, *, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "\n…(truncated)"


async def run_bash_command(command: str, *, cwd: Path, timeout_ms: int) -> BashOutcome:
    logger.info("bash.run", cwd=str(cwd), timeout_ms=timeout_ms)
    with anyio.move_on_after(timeout_ms / 1000) as scope:
        result = await anyio.run_process(
            ["bash", "-lc", command], cwd=cwd, check=False
        )
    if scope.cancelled_caught:
        logger.warning("bash.timed_out", timeout_ms=timeout_ms)
        return BashOutcome(exit_code=None, output="", timed_out=True)
    output = _decode(result.stdout) + _decode(result.stderr)
    return BashOutcome(exit_code=result.returncode, output=output.strip())


def format_bash_reply(command: str, outcome: BashOutcome, *, timeout_ms: int) -> str:
    if outcome.timed_out:
        return f"⚠️ bash: `{command}` did not finish within {timeout_ms}ms and was stopped."
    header = f"⚙️ bash exit {outcome.exit_code}: `{command}`"
    if not outcome.output:
        return f"{header}\n(no output)"
    return f"{header}\n```\n{truncate_output(outcome.output)}\n```"
