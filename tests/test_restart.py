from __future__ import annotations

import signal
from types import SimpleNamespace

import anyio
import pytest

from chatgate import restart
from chatgate.config import GatewayServiceConfig
from chatgate.restart import ProcessRestarter, _format_process_error


@pytest.mark.anyio
async def test_unsupported_platform() -> None:
    restarter = ProcessRestarter(GatewayServiceConfig(), platform="plan9")
    attempt = await restarter.trigger_external_restart()
    assert attempt.ok is False
    assert attempt.method == "unsupported"
    assert "plan9" in (attempt.detail or "")


@pytest.mark.anyio
async def test_linux_restart_uses_systemctl(monkeypatch) -> None:
    calls: list[list[str]] = []

    async def fake_run_process(args, *, check):
        calls.append(args)
        return SimpleNamespace(returncode=0, stderr=b"")

    monkeypatch.setattr(restart.anyio, "run_process", fake_run_process)
    restarter = ProcessRestarter(
        GatewayServiceConfig(systemd_unit="bot.service"), platform="linux"
    )

    attempt = await restarter.trigger_external_restart()

    assert attempt.ok is True
    assert attempt.method == "systemd"
    assert calls == [["systemctl", "--user", "restart", "bot.service"]]


@pytest.mark.anyio
async def test_failed_restart_reports_stderr(monkeypatch) -> None:
    async def fake_run_process(args, *, check):
        return SimpleNamespace(returncode=5, stderr=b"Unit bot.service not found.\n")

    monkeypatch.setattr(restart.anyio, "run_process", fake_run_process)
    restarter = ProcessRestarter(GatewayServiceConfig(), platform="linux")

    attempt = await restarter.trigger_external_restart()

    assert attempt.ok is False
    assert attempt.detail == "Unit bot.service not found."


@pytest.mark.anyio
async def test_missing_binary_is_reported(monkeypatch) -> None:
    async def fake_run_process(args, *, check):
        raise FileNotFoundError("launchctl")

    monkeypatch.setattr(restart.anyio, "run_process", fake_run_process)
    restarter = ProcessRestarter(GatewayServiceConfig(), platform="darwin")

    attempt = await restarter.trigger_external_restart()

    assert attempt.ok is False
    assert attempt.method == "launchctl"
    assert attempt.detail == "launchctl"


def test_format_process_error() -> None:
    assert _format_process_error(b"  boom \n") == "boom"
    assert _format_process_error("text") == "text"
    assert _format_process_error(None) == "command failed"
    assert _format_process_error(b"") == "command failed"


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs SIGUSR1")
def test_in_process_listener_follows_signal_handler() -> None:
    restarter = ProcessRestarter(GatewayServiceConfig())
    previous = signal.getsignal(signal.SIGUSR1)
    try:
        signal.signal(signal.SIGUSR1, signal.SIG_DFL)
        assert restarter.has_in_process_listener() is False
        signal.signal(signal.SIGUSR1, lambda signum, frame: None)
        assert restarter.has_in_process_listener() is True
    finally:
        signal.signal(signal.SIGUSR1, previous)


@pytest.mark.anyio
@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs SIGUSR1")
async def test_scheduled_restart_delivers_signal() -> None:
    seen: list[int] = []
    previous = signal.getsignal(signal.SIGUSR1)

    def on_signal(signum, frame) -> None:
        seen.append(signum)

    signal.signal(signal.SIGUSR1, on_signal)
    try:
        ProcessRestarter(GatewayServiceConfig(), delay_s=0.01).schedule_in_process_restart(
            "test"
        )
        with anyio.fail_after(2):
            while not seen:
                await anyio.sleep(0.01)
    finally:
        signal.signal(signal.SIGUSR1, previous)

    assert seen == [signal.SIGUSR1]
