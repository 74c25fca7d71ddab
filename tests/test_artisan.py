"""
Tests for artisan code resolution (nihonto_search/search/artisan.py).

Covers:
- Code-shape detection
- HttpArtisanRegistry: success, 404, retry on 429 / 5xx, client errors
- resolve_artisan_codes_from_text: never raises, filters placeholder codes
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from nihonto_search.search.artisan import (
    HttpArtisanRegistry,
    find_artisan_code,
    looks_like_artisan_code,
    resolve_artisan_codes_from_text,
)
from nihonto_search.search.exceptions import ArtisanLookupError

REGISTRY_URL = "https://registry.test/api"


class FakeRegistry:
    """In-memory ArtisanRegistry."""

    def __init__(self, codes: list[str] | None = None, error: Exception | None = None, delay: float = 0):
        self.codes = codes or []
        self.error = error
        self.delay = delay
        self.calls: list[list[str]] = []

    async def resolve_codes(self, names: list[str]) -> list[str]:
        self.calls.append(names)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.codes

    async def display_name(self, code: str) -> str | None:
        return None


# ---------------------------------------------------------------------------
# Code shapes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "token",
    ["MAS590", "KUN12.1", "GOT3-2a", "NS-Ko-Bizen", "NS-Soshu", "NC-GOT12", "tmpMAS7", "GOTO_ICHI12", "mas590"],
)
def test_code_shapes_recognised(token: str) -> None:
    assert looks_like_artisan_code(token) is True


@pytest.mark.parametrize("token", ["katana", "bizen", "70cm", "NS-", "", "MASAMUNE590X1"])
def test_non_codes_rejected(token: str) -> None:
    assert looks_like_artisan_code(token) is False


def test_find_artisan_code_returns_first() -> None:
    assert find_artisan_code(["juyo", "MAS590", "KUN12"]) == "MAS590"
    assert find_artisan_code(["juyo", "katana"]) is None


# ---------------------------------------------------------------------------
# HTTP registry client
# ---------------------------------------------------------------------------


async def test_resolve_codes_success() -> None:
    """Names are sent as one space-joined q parameter."""
    with respx.mock(base_url=REGISTRY_URL) as mock:
        route = mock.get("/artisans/resolve").mock(
            return_value=httpx.Response(200, json={"codes": ["MAS590", "MAS591"]})
        )

        async with HttpArtisanRegistry(base_url=REGISTRY_URL, api_key="secret") as registry:
            codes = await registry.resolve_codes(["masamune", "soshu"])

    assert codes == ["MAS590", "MAS591"]
    request = route.calls.last.request
    assert request.url.params["q"] == "masamune soshu"
    assert request.headers["Authorization"] == "Bearer secret"


async def test_resolve_codes_not_found() -> None:
    with respx.mock(base_url=REGISTRY_URL) as mock:
        mock.get("/artisans/resolve").mock(return_value=httpx.Response(404))

        async with HttpArtisanRegistry(base_url=REGISTRY_URL) as registry:
            assert await registry.resolve_codes(["nobody"]) == []


async def test_resolve_codes_empty_names_skips_request() -> None:
    with respx.mock(base_url=REGISTRY_URL, assert_all_called=False) as mock:
        route = mock.get("/artisans/resolve")

        async with HttpArtisanRegistry(base_url=REGISTRY_URL) as registry:
            assert await registry.resolve_codes([]) == []

    assert not route.called


async def test_retry_on_rate_limit() -> None:
    with respx.mock(base_url=REGISTRY_URL) as mock:
        route = mock.get("/artisans/resolve").mock(
            side_effect=[
                httpx.Response(429),
                httpx.Response(200, json={"codes": ["MAS590"]}),
            ]
        )

        async with HttpArtisanRegistry(base_url=REGISTRY_URL, base_backoff=0) as registry:
            codes = await registry.resolve_codes(["masamune"])

    assert codes == ["MAS590"]
    assert route.call_count == 2


async def test_retry_on_server_error_then_give_up() -> None:
    with respx.mock(base_url=REGISTRY_URL) as mock:
        route = mock.get("/artisans/resolve").mock(return_value=httpx.Response(503))

        with pytest.raises(ArtisanLookupError, match="after 3 attempts"):
            async with HttpArtisanRegistry(base_url=REGISTRY_URL, max_retries=2, base_backoff=0) as registry:
                await registry.resolve_codes(["masamune"])

    assert route.call_count == 3


async def test_client_error_not_retried() -> None:
    with respx.mock(base_url=REGISTRY_URL) as mock:
        route = mock.get("/artisans/resolve").mock(return_value=httpx.Response(400))

        with pytest.raises(ArtisanLookupError, match="400"):
            async with HttpArtisanRegistry(base_url=REGISTRY_URL, base_backoff=0) as registry:
                await registry.resolve_codes(["masamune"])

    assert route.call_count == 1


async def test_display_name() -> None:
    with respx.mock(base_url=REGISTRY_URL) as mock:
        mock.get("/artisans/MAS590").mock(
            return_value=httpx.Response(200, json={"code": "MAS590", "name_romaji": "Masamune"})
        )
        mock.get("/artisans/XX1").mock(return_value=httpx.Response(404))

        async with HttpArtisanRegistry(base_url=REGISTRY_URL) as registry:
            assert await registry.display_name("MAS590") == "Masamune"
            assert await registry.display_name("XX1") is None


async def test_request_outside_context_manager() -> None:
    registry = HttpArtisanRegistry(base_url=REGISTRY_URL)

    with pytest.raises(ArtisanLookupError, match="not initialized"):
        await registry.resolve_codes(["masamune"])


# ---------------------------------------------------------------------------
# Best-effort resolution
# ---------------------------------------------------------------------------


async def test_resolution_dedupes_and_drops_placeholders() -> None:
    registry = FakeRegistry(codes=["MAS590", "UNKNOWN", "MAS590", "MAS591"])

    codes = await resolve_artisan_codes_from_text(registry, ["masamune", "x"])

    assert codes == ["MAS590", "MAS591"]
    assert registry.calls == [["masamune"]]


async def test_resolution_failure_yields_no_codes() -> None:
    registry = FakeRegistry(error=ArtisanLookupError("down"))

    assert await resolve_artisan_codes_from_text(registry, ["masamune"]) == []


async def test_resolution_timeout_yields_no_codes() -> None:
    registry = FakeRegistry(codes=["MAS590"], delay=1.0)

    assert await resolve_artisan_codes_from_text(registry, ["masamune"], timeout=0.01) == []


async def test_resolution_without_registry_or_words() -> None:
    registry = FakeRegistry(codes=["MAS590"])

    assert await resolve_artisan_codes_from_text(None, ["masamune"]) == []
    assert await resolve_artisan_codes_from_text(registry, ["a"]) == []
    assert registry.calls == []
