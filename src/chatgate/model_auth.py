"""Human-readable label for the credential a provider will use."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

from .sessions import SessionEntry


def format_api_key_snippet(api_key: str) -> str:
    compact = re.sub(r"\s+", "", api_key)
    if not compact:
        return "unknown"
    edge = 6 if len(compact) >= 12 else 4
    return f"{compact[:edge]}…{compact[-edge:]}"


def _env_prefix(provider: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", provider.upper()).strip("_")


def resolve_model_auth_label(
    provider: str | None,
    entry: SessionEntry | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> str | None:
    resolved = (provider or "").strip()
    if not resolved:
        return None
    override = (entry.auth_profile_override or "").strip() if entry else ""
    if override:
        return f"profile {override}"
    environ = os.environ if env is None else env
    prefix = _env_prefix(resolved)
    oauth_var = f"{prefix}_OAUTH_TOKEN"
    if environ.get(oauth_var, "").strip():
        return f"oauth ({oauth_var})"
    key_var = f"{prefix}_API_KEY"
    api_key = environ.get(key_var, "").strip()
    if api_key:
        return f"api-key {format_api_key_snippet(api_key)} ({key_var})"
    return "unknown"
