"""Dotted-path access into nested configuration mappings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

INVALID_PATH_MESSAGE = "Invalid path. Use dot notation (e.g. commands.text)."


@dataclass(frozen=True, slots=True)
class ConfigPathResult:
    path: tuple[str, ...] | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.path is not None and self.error is None


def parse_config_path(raw: str | None) -> ConfigPathResult:
    trimmed = (raw or "").strip()
    if not trimmed:
        return ConfigPathResult(None, INVALID_PATH_MESSAGE)
    parts = tuple(part.strip() for part in trimmed.split("."))
    if any(not part for part in parts):
        return ConfigPathResult(None, INVALID_PATH_MESSAGE)
    return ConfigPathResult(parts)


def get_config_value_at_path(root: Any, path: tuple[str, ...]) -> Any:
    current = root
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_config_value_at_path(
    root: dict[str, Any], path: tuple[str, ...], value: Any
) -> None:
    current = root
    for part in path[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[path[-1]] = value


def unset_config_value_at_path(root: dict[str, Any], path: tuple[str, ...]) -> bool:
    """Remove the leaf at *path*, pruning parents left empty.

    Returns True when a value was removed.
    """
    parents: list[tuple[dict[str, Any], str]] = []
    current: Any = root
    for part in path[:-1]:
        if not isinstance(current, dict):
            return False
        child = current.get(part)
        if not isinstance(child, dict):
            return False
        parents.append((current, part))
        current = child
    leaf = path[-1]
    if not isinstance(current, dict) or leaf not in current:
        return False
    del current[leaf]
    for parent, key in reversed(parents):
        if parent[key]:
            break
        del parent[key]
    return True
