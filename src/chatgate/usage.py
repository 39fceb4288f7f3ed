"""Provider usage summaries for `/status`."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from .config import ChatgateConfig


@dataclass(frozen=True, slots=True)
class UsageWindow:
    label: str
    used_percent: float
    resets_at: float | None = None


@dataclass(frozen=True, slots=True)
class ProviderUsage:
    provider: str
    display_name: str
    windows: tuple[UsageWindow, ...] = ()
    error: str | None = None


@dataclass(frozen=True, slots=True)
class UsageSummary:
    providers: tuple[ProviderUsage, ...] = ()


class UsageLoader(Protocol):
    async def load(self, provider: str, *, timeout_ms: int) -> UsageSummary: ...


def resolve_usage_provider_id(provider: str | None) -> str | None:
    value = (provider or "").strip().lower()
    return value or None


def _parse_window(window: dict[str, Any]) -> UsageWindow:
    try:
        used_percent = float(window.get("used_percent") or 0.0)
        resets_at = (
            float(window["resets_at"]) if window.get("resets_at") is not None else None
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid usage window: {window!r}") from exc
    return UsageWindow(
        label=str(window.get("label") or "window"),
        used_percent=used_percent,
        resets_at=resets_at,
    )


def parse_usage_summary(data: Any) -> UsageSummary:
    """Build a `UsageSummary` from the endpoint payload.

    Raises ValueError when the payload does not have the documented shape.
    """
    if not isinstance(data, dict):
        raise ValueError("usage response must be a JSON object")
    items = data.get("providers") or []
    if not isinstance(items, list):
        raise ValueError("usage providers must be a list")
    providers: list[ProviderUsage] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        provider = str(item.get("provider") or "").strip()
        if not provider:
            continue
        raw_windows = item.get("windows") or []
        if not isinstance(raw_windows, list):
            raise ValueError(f"usage windows for {provider} must be a list")
        windows = tuple(
            _parse_window(window) for window in raw_windows if isinstance(window, dict)
        )
        error = item.get("error")
        providers.append(
            ProviderUsage(
                provider=provider,
                display_name=str(item.get("display_name") or provider),
                windows=windows,
                error=str(error) if error else None,
            )
        )
    return UsageSummary(providers=tuple(providers))


def _format_reset(seconds: float) -> str:
    minutes = max(0, int(seconds // 60))
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_usage_summary_line(summary: UsageSummary, *, now: float) -> str | None:
    for entry in summary.providers:
        if entry.error or not entry.windows:
            continue
        parts = []
        for window in entry.windows:
            left = max(0, 100 - round(window.used_percent))
            part = f"{window.label} {left}% left"
            if window.resets_at is not None:
                part = f"{part} ⏱{_format_reset(window.resets_at - now)}"
            parts.append(part)
        return f"📊 Usage: {entry.display_name} " + " · ".join(parts)
    return None


class HttpUsageLoader:
    """Fetch usage summaries from a JSON endpoint.

    The endpoint answers ``GET <endpoint>?provider=<id>`` with
    ``{"providers": [{"provider", "display_name", "windows", "error"}]}``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._api_key = api_key
        self._transport = transport

    async def load(self, provider: str, *, timeout_ms: int) -> UsageSummary:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000, transport=self._transport
        ) as client:
            response = await client.get(
                self.endpoint, params={"provider": provider}, headers=headers
            )
        response.raise_for_status()
        return parse_usage_summary(response.json())


def build_usage_loader(
    cfg: ChatgateConfig,
    *,
    env: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpUsageLoader | None:
    """Loader for ``usage.endpoint``; None when no endpoint is configured."""
    usage = cfg.usage
    endpoint = (usage.endpoint or "").strip()
    if not endpoint:
        return None
    environ = os.environ if env is None else env
    api_key = environ.get(usage.api_key_env, "").strip() if usage.api_key_env else ""
    return HttpUsageLoader(endpoint, api_key=api_key or None, transport=transport)
