"""Contract with the embedded agent run runtime, plus an in-process registry."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import anyio

from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CompactionRequest:
    session_id: str
    session_key: str | None
    message_provider: str
    session_file: Path
    workspace_dir: Path
    provider: str
    model: str
    think_level: str | None = None
    custom_instructions: str | None = None
    owner_numbers: tuple[str, ...] | None = None
    skills_snapshot: Any = None


@dataclass(frozen=True, slots=True)
class CompactionResult:
    ok: bool
    compacted: bool
    tokens_before: int | None = None
    tokens_after: int | None = None
    reason: str | None = None


Compactor = Callable[[CompactionRequest], Awaitable[CompactionResult]]


class RunRuntime(Protocol):
    def is_active(self, session_id: str) -> bool: ...

    def abort(self, session_id: str) -> bool: ...

    async def wait_for_end(self, session_id: str, timeout_ms: int) -> bool: ...

    async def compact(self, request: CompactionRequest) -> CompactionResult: ...


@dataclass(slots=True)
class _ActiveRun:
    ended: anyio.Event
    cancel_scope: anyio.CancelScope | None = None
    aborted: bool = False


class EmbeddedRuns:
    """Track generation runs executing inside this process.

    A run loop calls `start` before generating and `finish` when it returns;
    `abort` cancels the run's scope when one was registered.
    """

    def __init__(self, compactor: Compactor | None = None) -> None:
        self._runs: dict[str, _ActiveRun] = {}
        self._compactor = compactor

    def start(
        self, session_id: str, *, cancel_scope: anyio.CancelScope | None = None
    ) -> None:
        self._runs[session_id] = _ActiveRun(
            ended=anyio.Event(), cancel_scope=cancel_scope
        )
        logger.debug("runs.started", session_id=session_id)

    def finish(self, session_id: str) -> None:
        run = self._runs.pop(session_id, None)
        if run is None:
            return
        run.ended.set()
        logger.debug("runs.finished", session_id=session_id, aborted=run.aborted)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._runs

    def is_aborted(self, session_id: str) -> bool:
        run = self._runs.get(session_id)
        return run is not None and run.aborted

    def abort(self, session_id: str) -> bool:
        run = self._runs.get(session_id)
        if run is None:
            return False
        run.aborted = True
        if run.cancel_scope is not None:
            run.cancel_scope.cancel()
        logger.info("runs.abort_requested", session_id=session_id)
        return True

    async def wait_for_end(self, session_id: str, timeout_ms: int) -> bool:
        """Wait for the run to finish; False when the bound elapsed first."""
        run = self._runs.get(session_id)
        if run is None:
            return True
        with anyio.move_on_after(timeout_ms / 1000):
            await run.ended.wait()
            return True
        logger.warning("runs.wait_timed_out", session_id=session_id, timeout_ms=timeout_ms)
        return False

    async def compact(self, request: CompactionRequest) -> CompactionResult:
        if self._compactor is None:
            return CompactionResult(
                ok=False, compacted=False, reason="no compactor configured"
            )
        return await self._compactor(request)
