"""In-memory configuration overrides used by `/debug`.

Overrides are process-wide and never persisted; they are merged onto the
on-disk config whenever the runtime config is resolved.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from .config_paths import (
    parse_config_path,
    set_config_value_at_path,
    unset_config_value_at_path,
)


@dataclass(frozen=True, slots=True)
class OverrideUpdate:
    ok: bool
    removed: bool = False
    error: str | None = None


def apply_config_overrides(
    base: dict[str, Any], overrides: dict[str, Any]
) -> dict[str, Any]:
    """Return a deep copy of *base* with *overrides* merged in.

    Nested tables merge key by key; any other value replaces the base value.
    """
    merged = copy.deepcopy(base)
    _merge_into(merged, overrides)
    return merged


def _merge_into(target: dict[str, Any], source: dict[str, Any]) -> None:
    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)


class RuntimeOverrides:
    def __init__(self) -> None:
        self._overrides: dict[str, Any] = {}

    def get(self) -> dict[str, Any]:
        return copy.deepcopy(self._overrides)

    def set(self, path: str, value: Any) -> OverrideUpdate:
        parsed = parse_config_path(path)
        if not parsed.ok or parsed.path is None:
            return OverrideUpdate(ok=False, error=parsed.error)
        set_config_value_at_path(self._overrides, parsed.path, value)
        return OverrideUpdate(ok=True)

    def unset(self, path: str) -> OverrideUpdate:
        parsed = parse_config_path(path)
        if not parsed.ok or parsed.path is None:
            return OverrideUpdate(ok=False, error=parsed.error)
        removed = unset_config_value_at_path(self._overrides, parsed.path)
        return OverrideUpdate(ok=True, removed=removed)

    def reset(self) -> None:
        self._overrides = {}
