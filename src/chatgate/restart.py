"""Gateway restart: in-process signal first, service manager as fallback."""

from __future__ import annotations

import os
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Protocol

import anyio

from .config import GatewayServiceConfig
from .logging import get_logger

logger = get_logger(__name__)

RESTART_SIGNAL = getattr(signal, "SIGUSR1", None)


@dataclass(frozen=True, slots=True)
class RestartAttempt:
    ok: bool
    method: str
    detail: str | None = None


class RestartMechanism(Protocol):
    def has_in_process_listener(self) -> bool: ...

    def schedule_in_process_restart(self, reason: str) -> None: ...

    async def trigger_external_restart(self) -> RestartAttempt: ...


def _format_process_error(stderr: bytes | str | None) -> str:
    if isinstance(stderr, bytes):
        text = stderr.decode("utf-8", errors="replace").strip()
    elif isinstance(stderr, str):
        text = stderr.strip()
    else:
        text = ""
    return text or "command failed"


class ProcessRestarter:
    def __init__(
        self,
        service: GatewayServiceConfig,
        *,
        delay_s: float = 1.0,
        platform: str = sys.platform,
    ) -> None:
        self._service = service
        self._delay_s = delay_s
        self._platform = platform

    def has_in_process_listener(self) -> bool:
        if RESTART_SIGNAL is None:
            return False
        return callable(signal.getsignal(RESTART_SIGNAL))

    def schedule_in_process_restart(self, reason: str) -> None:
        if RESTART_SIGNAL is None:
            return
        logger.info("restart.scheduled", reason=reason, method="SIGUSR1")
        # delayed so the confirmation reply goes out first
        timer = threading.Timer(
            self._delay_s, os.kill, args=(os.getpid(), RESTART_SIGNAL)
        )
        timer.daemon = True
        timer.start()

    def _external_command(self) -> tuple[str, list[str]] | None:
        if self._platform.startswith("linux"):
            return "systemd", [
                "systemctl",
                "--user",
                "restart",
                self._service.systemd_unit,
            ]
        if self._platform == "darwin":
            return "launchctl", [
                "launchctl",
                "kickstart",
                "-k",
                f"gui/{os.getuid()}/{self._service.launchd_label}",
            ]
        return None

    async def trigger_external_restart(self) -> RestartAttempt:
        resolved = self._external_command()
        if resolved is None:
            return RestartAttempt(
                ok=False,
                method="unsupported",
                detail=f"no restart mechanism for platform {self._platform}",
            )
        method, args = resolved
        logger.info("restart.external", method=method, args=args)
        try:
            result = await anyio.run_process(args, check=False)
        except OSError as exc:
            return RestartAttempt(ok=False, method=method, detail=str(exc))
        if result.returncode == 0:
            return RestartAttempt(ok=True, method=method)
        return RestartAttempt(
            ok=False, method=method, detail=_format_process_error(result.stderr)
        )
