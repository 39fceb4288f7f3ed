from __future__ import annotations

import httpx
import pytest

from chatgate.usage import (
    HttpUsageLoader,
    ProviderUsage,
    UsageSummary,
    UsageWindow,
    build_usage_loader,
    format_usage_summary_line,
    parse_usage_summary,
    resolve_usage_provider_id,
)
from gateway_fixtures import make_config

PAYLOAD = {
    "providers": [
        {
            "provider": "acme",
            "display_name": "Acme",
            "windows": [
                {"label": "5h", "used_percent": 12.4, "resets_at": 1_000 + 3_900},
                {"label": "week", "used_percent": 60},
            ],
        }
    ]
}


@pytest.mark.anyio
async def test_http_loader_sends_provider_and_auth_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=PAYLOAD)

    loader = HttpUsageLoader(
        "https://usage.example/api/usage",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )

    summary = await loader.load("acme", timeout_ms=3500)

    (request,) = seen
    assert request.url.params["provider"] == "acme"
    assert request.headers["Authorization"] == "Bearer secret"
    assert summary.providers[0].display_name == "Acme"
    assert summary.providers[0].windows[0] == UsageWindow("5h", 12.4, 4_900.0)


@pytest.mark.anyio
async def test_http_loader_omits_auth_header_without_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"providers": []})

    loader = HttpUsageLoader(
        "https://usage.example/api/usage", transport=httpx.MockTransport(handler)
    )

    assert await loader.load("acme", timeout_ms=100) == UsageSummary()
    assert "Authorization" not in seen[0].headers


@pytest.mark.anyio
async def test_http_loader_raises_on_server_error() -> None:
    loader = HttpUsageLoader(
        "https://usage.example/api/usage",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await loader.load("acme", timeout_ms=100)


def test_parse_usage_summary_rejects_non_object() -> None:
    with pytest.raises(ValueError, match="JSON object"):
        parse_usage_summary(["nope"])


def test_parse_usage_summary_skips_malformed_entries() -> None:
    summary = parse_usage_summary(
        {"providers": ["junk", {"display_name": "nameless"}, {"provider": "acme", "error": "quota"}]}
    )
    assert summary.providers == (
        ProviderUsage(provider="acme", display_name="acme", error="quota"),
    )


def test_format_usage_line_with_resets() -> None:
    line = format_usage_summary_line(parse_usage_summary(PAYLOAD), now=1_000)
    assert line == "📊 Usage: Acme 5h 88% left ⏱1h 5m · week 40% left"


def test_format_usage_line_skips_errored_providers() -> None:
    summary = UsageSummary(
        providers=(
            ProviderUsage("a", "A", error="unauthorized"),
            ProviderUsage("b", "B", windows=(UsageWindow("day", 100.0, 1_000 + 2 * 86_400 + 3 * 3_600),)),
        )
    )
    assert format_usage_summary_line(summary, now=1_000) == "📊 Usage: B day 0% left ⏱2d 3h"


def test_format_usage_line_without_windows() -> None:
    assert format_usage_summary_line(UsageSummary(), now=0) is None


def test_resolve_usage_provider_id() -> None:
    assert resolve_usage_provider_id(" Acme ") == "acme"
    assert resolve_usage_provider_id("") is None
    assert resolve_usage_provider_id(None) is None


@pytest.mark.parametrize(
    "payload, match",
    [
        ({"providers": "acme"}, "providers must be a list"),
        ({"providers": [{"provider": "acme", "windows": 5}]}, "windows for acme"),
        (
            {"providers": [{"provider": "acme", "windows": [{"used_percent": [1]}]}]},
            "invalid usage window",
        ),
        (
            {"providers": [{"provider": "acme", "windows": [{"resets_at": "soon"}]}]},
            "invalid usage window",
        ),
    ],
)
def test_parse_usage_summary_rejects_malformed_shapes(payload, match) -> None:
    with pytest.raises(ValueError, match=match):
        parse_usage_summary(payload)


def test_build_usage_loader_needs_endpoint() -> None:
    assert build_usage_loader(make_config()) is None
    assert build_usage_loader(make_config({"usage": {"endpoint": "  "}})) is None


@pytest.mark.anyio
async def test_build_usage_loader_reads_key_from_env() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=PAYLOAD)

    cfg = make_config(
        {"usage": {"endpoint": "https://usage.example/api/usage", "api_key_env": "ACME_USAGE_KEY"}}
    )
    transport = httpx.MockTransport(handler)
    loader = build_usage_loader(
        cfg, env={"ACME_USAGE_KEY": " k-123 "}, transport=transport
    )

    assert loader is not None
    assert loader.endpoint == "https://usage.example/api/usage"
    await loader.load("acme", timeout_ms=100)
    assert seen[0].headers["Authorization"] == "Bearer k-123"

    unset = build_usage_loader(cfg, env={}, transport=transport)
    assert unset is not None
    await unset.load("acme", timeout_ms=100)
    assert "Authorization" not in seen[1].headers
