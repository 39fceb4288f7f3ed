from __future__ import annotations

from pathlib import Path

import pytest

from chatgate.config import ConfigError
from chatgate.gateway import CommandGateway, TurnSettings
from chatgate.sessions import SessionEntry, SessionStore
from gateway_fixtures import FakeRestarter, make_bridge, make_message

TURN = TurnSettings(provider="acme", model="acme-large")


def _gateway(tmp_path: Path, **bridge_overrides) -> CommandGateway:
    return CommandGateway(
        make_bridge(tmp_path, **bridge_overrides),
        sessions=SessionStore(tmp_path / "sessions.json"),
        workspace_dir=tmp_path,
    )


@pytest.mark.anyio
async def test_status_uses_stored_session_and_config_context(tmp_path: Path) -> None:
    (tmp_path / "chatgate.toml").write_text(
        "[agents.defaults]\ncontext_tokens = 100000\n", encoding="utf-8"
    )
    gateway = _gateway(tmp_path)
    await gateway.sessions.save(
        {"telegram:42": SessionEntry(session_id="legacy-id", total_tokens=5_000)}
    )

    result = await gateway.handle_message(
        make_message("[Telegram] /status"),
        session_key="agent:main:telegram:42",
        turn=TURN,
    )

    assert result.reply is not None
    assert "🤖 Model: acme/acme-large" in result.reply.text
    assert "Context 5k/100k (5%)" in result.reply.text
    assert "🧵 Session: telegram:42 •" in result.reply.text


@pytest.mark.anyio
async def test_debug_override_enables_restart(tmp_path: Path) -> None:
    (tmp_path / "chatgate.toml").write_text("[commands]\ndebug = true\n", encoding="utf-8")
    restarter = FakeRestarter(listener=True)
    gateway = _gateway(tmp_path, restarter=restarter)
    key = "agent:main:main"

    disabled = await gateway.handle_message(make_message("/restart"), session_key=key, turn=TURN)
    assert disabled.reply is not None
    assert disabled.reply.text.startswith("⚠️ /restart is disabled")

    await gateway.handle_message(
        make_message("/debug set commands.restart=true"), session_key=key, turn=TURN
    )
    enabled = await gateway.handle_message(make_message("/restart"), session_key=key, turn=TURN)

    assert enabled.reply is not None
    assert "in-process" in enabled.reply.text
    assert restarter.scheduled == ["/restart"]


@pytest.mark.anyio
async def test_plain_text_passes_through(tmp_path: Path) -> None:
    result = await _gateway(tmp_path).handle_message(
        make_message("what's the weather?"), session_key="agent:main:main", turn=TURN
    )
    assert result.should_continue is True
    assert result.reply is None


@pytest.mark.anyio
async def test_send_off_persists_and_blocks_later_messages(tmp_path: Path) -> None:
    gateway = _gateway(tmp_path)
    key = "agent:main:main"
    await gateway.sessions.save({key: SessionEntry(session_id="s1")})

    result = await gateway.handle_message(make_message("/send off"), session_key=key, turn=TURN)
    assert result.reply is not None
    assert result.reply.text == "⚙️ Send policy set to off."
    assert (await gateway.sessions.load())[key].send_policy == "deny"

    blocked = await gateway.handle_message(make_message("hello"), session_key=key, turn=TURN)
    assert blocked.should_continue is False
    assert blocked.reply is None


@pytest.mark.anyio
async def test_invalid_config_file_raises(tmp_path: Path) -> None:
    (tmp_path / "chatgate.toml").write_text('[queue]\nmode = "shout"\n', encoding="utf-8")
    with pytest.raises(ConfigError, match="queue.mode"):
        await _gateway(tmp_path).handle_message(
            make_message("/status"), session_key="agent:main:main", turn=TURN
        )


@pytest.mark.anyio
async def test_rejected_debug_override_keeps_gateway_usable(tmp_path: Path) -> None:
    (tmp_path / "chatgate.toml").write_text("[commands]\ndebug = true\n", encoding="utf-8")
    gateway = _gateway(tmp_path)
    key = "agent:main:main"

    rejected = await gateway.handle_message(
        make_message("/debug set commands.bogus=1"), session_key=key, turn=TURN
    )
    assert rejected.reply is not None
    assert rejected.reply.text.startswith("⚠️ Debug override invalid (commands.bogus: ")

    status = await gateway.handle_message(make_message("/status"), session_key=key, turn=TURN)
    assert status.reply is not None
    assert status.reply.text.startswith("🤖 Model: acme/acme-large")

    reset = await gateway.handle_message(make_message("/debug reset"), session_key=key, turn=TURN)
    assert reset.reply is not None
    assert reset.reply.text == "⚙️ Debug overrides cleared; using config on disk."


@pytest.mark.anyio
async def test_turn_gaps_fall_back_to_agent_defaults(tmp_path: Path) -> None:
    (tmp_path / "chatgate.toml").write_text(
        '[agents.defaults]\nmodel = "acme-small"\nverbose_default = "on"\n',
        encoding="utf-8",
    )
    gateway = _gateway(tmp_path)

    defaulted = await gateway.handle_message(
        make_message("/status"),
        session_key="agent:main:main",
        turn=TurnSettings(provider="acme"),
    )
    explicit = await gateway.handle_message(
        make_message("/status"), session_key="agent:main:main", turn=TURN
    )

    assert defaulted.reply is not None
    assert "🤖 Model: acme/acme-small" in defaulted.reply.text
    assert "Verbose: on" in defaulted.reply.text
    assert explicit.reply is not None
    assert "🤖 Model: acme/acme-large" in explicit.reply.text
