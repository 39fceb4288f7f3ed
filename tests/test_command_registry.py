"""Tests for command definitions and the validated registry."""

from __future__ import annotations

import pytest

from chatgate.commands.registry import (
    CommandDefinition,
    CommandRegistry,
    CommandRegistryError,
    build_command_text,
    default_registry,
    define_command,
    is_command_enabled,
    list_commands_for_config,
    list_native_command_specs,
    register_alias,
)
from gateway_fixtures import make_config


# --- default registry invariants ---


def test_default_registry_aliases_start_with_slash_and_are_unique() -> None:
    seen: set[str] = set()
    for command in default_registry().list_definitions():
        for alias in command.text_aliases:
            assert alias.startswith("/")
            assert alias.lower() not in seen
            seen.add(alias.lower())


def test_default_registry_scope_rules_hold() -> None:
    for command in default_registry().list_definitions():
        if command.scope == "text":
            assert command.text_aliases
            assert not command.native_name
        if command.scope == "native":
            assert command.native_name
            assert not command.text_aliases
        if command.scope == "both":
            assert command.native_name


def test_default_registry_is_built_once() -> None:
    assert default_registry() is default_registry()


def test_list_definitions_returns_a_copy() -> None:
    registry = default_registry()
    listed = registry.list_definitions()
    listed.clear()
    assert len(registry.list_definitions()) == len(registry)


def test_extra_aliases_resolve_to_their_command() -> None:
    registry = default_registry()
    assert registry.resolve_alias("/T").canonical == "/think"
    assert registry.resolve_alias("/usage").canonical == "/status"
    assert registry.resolve_alias("/id").canonical == "/whoami"
    assert registry.resolve_alias("/nope") is None


def test_alias_index_and_detection_are_cached() -> None:
    registry = default_registry()
    assert registry.alias_index is registry.alias_index
    assert registry.detection is registry.detection


def test_detection_pattern_respects_argument_policy() -> None:
    pattern = default_registry().detection.pattern
    assert pattern.fullmatch("/think deep") is not None
    assert pattern.fullmatch("/think: deep") is not None
    assert pattern.fullmatch("/help:") is not None
    assert pattern.fullmatch("/help extra") is None


# --- find helpers ---


def test_find_by_native_name_is_case_insensitive() -> None:
    command = default_registry().find_by_native_name("STATUS")
    assert command is not None
    assert command.key == "status"


def test_find_by_native_name_skips_text_only_commands() -> None:
    assert default_registry().find_by_native_name("compact") is None
    assert default_registry().find_by_native_name("bash") is None


# --- construction failures ---


def test_duplicate_alias_across_commands_is_rejected() -> None:
    with pytest.raises(CommandRegistryError, match="Duplicate command alias"):
        CommandRegistry(
            [
                define_command(key="a", description="a", text_alias="/x"),
                define_command(key="b", description="b", text_alias="/X"),
            ]
        )


def test_duplicate_native_name_is_rejected() -> None:
    with pytest.raises(CommandRegistryError, match="Duplicate native command"):
        CommandRegistry(
            [
                define_command(key="a", description="a", native_name="go"),
                define_command(key="b", description="b", native_name="GO"),
            ]
        )


def test_duplicate_key_is_rejected() -> None:
    with pytest.raises(CommandRegistryError, match="Duplicate command key"):
        CommandRegistry(
            [
                define_command(key="a", description="a", text_alias="/a"),
                define_command(key="a", description="a", text_alias="/b"),
            ]
        )


def test_alias_without_slash_is_rejected() -> None:
    with pytest.raises(CommandRegistryError, match="missing leading '/'"):
        CommandRegistry([define_command(key="a", description="a", text_alias="a")])


def test_text_only_command_with_native_name_is_rejected() -> None:
    command = CommandDefinition(
        key="a", description="a", text_aliases=("/a",), native_name="a", scope="text"
    )
    with pytest.raises(CommandRegistryError, match="Text-only command has native name"):
        CommandRegistry([command])


def test_text_only_command_without_alias_is_rejected() -> None:
    command = CommandDefinition(key="a", description="a", scope="text")
    with pytest.raises(CommandRegistryError, match="missing text alias"):
        CommandRegistry([command])


def test_native_only_command_with_alias_is_rejected() -> None:
    command = CommandDefinition(
        key="a", description="a", text_aliases=("/a",), native_name="a", scope="native"
    )
    with pytest.raises(CommandRegistryError, match="Native-only command has text aliases"):
        CommandRegistry([command])


def test_native_command_without_native_name_is_rejected() -> None:
    command = CommandDefinition(key="a", description="a", scope="both")
    with pytest.raises(CommandRegistryError, match="missing native name"):
        CommandRegistry([command])


# --- define_command / register_alias ---


def test_define_command_infers_scope() -> None:
    assert define_command(key="a", description="", text_alias="/a").scope == "text"
    assert define_command(key="a", description="", native_name="a").scope == "native"
    both = define_command(key="a", description="", native_name="a", text_alias="/a")
    assert both.scope == "both"


def test_define_command_drops_blank_aliases() -> None:
    command = define_command(key="a", description="", text_aliases=[" /a ", "  "])
    assert command.text_aliases == ("/a",)


def test_register_alias_appends_and_skips_duplicates() -> None:
    commands = [define_command(key="a", description="", text_alias="/a")]
    register_alias(commands, "a", "/A", "/alpha")
    assert commands[0].text_aliases == ("/a", "/alpha")


def test_register_alias_unknown_key_raises() -> None:
    with pytest.raises(CommandRegistryError, match="unknown command key"):
        register_alias([], "missing", "/m")


# --- config filtering ---


def test_config_gated_commands_follow_flags() -> None:
    cfg = make_config()
    assert is_command_enabled(cfg, "status") is True
    assert is_command_enabled(cfg, "config") is False
    assert is_command_enabled(cfg, "bash") is False
    enabled = make_config({"commands": {"bash": True, "debug": True}})
    assert is_command_enabled(enabled, "bash") is True
    assert is_command_enabled(enabled, "debug") is True


def test_list_commands_for_config_filters_disabled() -> None:
    keys = {command.key for command in list_commands_for_config(make_config())}
    assert "status" in keys
    assert "config" not in keys
    assert "debug" not in keys
    assert "bash" not in keys


def test_native_specs_skip_text_only_and_disabled() -> None:
    names = {spec.name for spec in list_native_command_specs(make_config())}
    assert "status" in names
    assert "compact" not in names
    assert "config" not in names
    all_names = {spec.name for spec in list_native_command_specs()}
    assert "config" in all_names


def test_native_specs_empty_when_native_disabled() -> None:
    assert list_native_command_specs(make_config({"commands": {"native": False}})) == []
    auto = list_native_command_specs(make_config({"commands": {"native": "auto"}}))
    assert {spec.name for spec in auto} == {
        spec.name for spec in list_native_command_specs(make_config())
    }


def test_build_command_text() -> None:
    assert build_command_text("think", " deep ") == "/think deep"
    assert build_command_text("status") == "/status"
