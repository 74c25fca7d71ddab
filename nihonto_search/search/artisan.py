"""
Nihonto Search — Artisan Code Resolution

Maker and school codes (MAS590, NS-Ko-Bizen, ...) are assigned by an external
artisan registry. Two uses in the browse pipeline:

(a) A code-shaped token anywhere in the query disables category gating for
    the request: maker codes cross categories.
(b) Residual romaji words naming a known maker are resolved to codes and
    matched by artisan_id equality alongside field substrings, instead of
    the full-text branch.

Resolution is best-effort. Any registry failure resolves to no codes and the
query falls through to full-text search.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from nihonto_search.config import settings
from nihonto_search.search.exceptions import ArtisanLookupError

logger = structlog.get_logger(__name__)

ARTISAN_CODE_RE = re.compile(
    r"^[A-Z]{1,4}\d{1,5}(?:[.\-]\d)?[A-Za-z]?$"
    r"|^NS-[A-Za-z]+(?:-[A-Za-z]+)*$"
    r"|^NC-[A-Z]+\d+[A-Za-z]?$"
    r"|^tmp[A-Z]{1,4}\d+[A-Za-z]?$"
    r"|^[A-Z]+(?:_[A-Z]+)+\d+$",
    re.IGNORECASE,
)

# Placeholder codes assigned when attribution failed
UNKNOWN_ARTISAN_CODES: frozenset[str] = frozenset({"UNKNOWN", "unknown"})

MIN_NAME_LENGTH: int = 2


def looks_like_artisan_code(token: str) -> bool:
    """
    True if the token has the structure of a registry code.

    Examples:
        >>> looks_like_artisan_code("MAS590")
        True
        >>> looks_like_artisan_code("NS-Ko-Bizen")
        True
        >>> looks_like_artisan_code("katana")
        False
    """
    return bool(token) and ARTISAN_CODE_RE.match(token) is not None


def find_artisan_code(words: list[str]) -> str | None:
    """Return the first code-shaped word, if any."""
    for word in words:
        if looks_like_artisan_code(word):
            return word
    return None


# ---------------------------------------------------------------------------
# Registry protocol
# ---------------------------------------------------------------------------

class ArtisanRegistry(Protocol):
    """Name → code resolution and code → display name lookup."""

    async def resolve_codes(self, names: list[str]) -> list[str]:
        ...

    async def display_name(self, code: str) -> str | None:
        ...


# ---------------------------------------------------------------------------
# HTTP registry client
# ---------------------------------------------------------------------------

class ArtisanResolveResponse(BaseModel):
    codes: list[str] = Field(default_factory=list, description="Matching artisan codes")


class ArtisanRecord(BaseModel):
    code: str = Field(..., description="Registry code")
    name_romaji: str | None = Field(default=None, description="Display name")
    school: str | None = None


class HttpArtisanRegistry:
    """
    Async client for the artisan registry API.

    Usage:
        async with HttpArtisanRegistry() as registry:
            codes = await registry.resolve_codes(["norishige"])
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        max_retries: int = 2,
        base_backoff: float = 0.25,
        timeout: float | None = None,
    ):
        self._base_url = base_url or settings.ARTISAN_REGISTRY_URL
        self._api_key = api_key if api_key is not None else settings.ARTISAN_REGISTRY_API_KEY
        self._max_retries = max_retries
        self._base_backoff = base_backoff
        self._timeout = timeout or settings.ARTISAN_LOOKUP_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpArtisanRegistry:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """GET with retry and exponential backoff. Returns None on 404."""
        if self._client is None:
            raise ArtisanLookupError("Registry client not initialized. Use 'async with'.")

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(path, params=params)

                if response.status_code == 404:
                    return None

                if response.status_code == 429:
                    wait_time = self._base_backoff * (2 ** attempt)
                    logger.warning(
                        "artisan_registry_rate_limited",
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                        source="artisan",
                    )
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.error(
                    "artisan_registry_http_error",
                    status_code=e.response.status_code,
                    attempt=attempt + 1,
                    path=path,
                    source="artisan",
                )
                if e.response.status_code >= 500:
                    await asyncio.sleep(self._base_backoff * (2 ** attempt))
                    continue
                raise ArtisanLookupError(f"Registry returned {e.response.status_code}") from e

            except httpx.RequestError as e:
                last_error = e
                logger.error(
                    "artisan_registry_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                    source="artisan",
                )
                await asyncio.sleep(self._base_backoff * (2 ** attempt))
                continue

        raise ArtisanLookupError(
            f"Artisan registry request failed after {self._max_retries + 1} attempts"
        ) from last_error

    async def resolve_codes(self, names: list[str]) -> list[str]:
        """
        Resolve romaji names to registry codes.

        Args:
            names: Normalized romaji words, e.g. ["norishige"].

        Returns:
            Codes of every artisan whose name matches, possibly empty.

        Raises:
            ArtisanLookupError: Registry unreachable or returned an error.
        """
        if not names:
            return []
        data = await self._request("/artisans/resolve", params={"q": " ".join(names)})
        if data is None:
            return []
        return ArtisanResolveResponse.model_validate(data).codes

    async def display_name(self, code: str) -> str | None:
        data = await self._request(f"/artisans/{code}")
        if data is None:
            return None
        return ArtisanRecord.model_validate(data).name_romaji


# ---------------------------------------------------------------------------
# Best-effort resolution
# ---------------------------------------------------------------------------

async def resolve_artisan_codes_from_text(
    registry: ArtisanRegistry | None,
    words: list[str],
    timeout: float | None = None,
) -> list[str]:
    """
    Resolve residual romaji words to artisan codes. Never raises.

    Words shorter than two characters are ignored. A missing registry, a
    timeout or any lookup error yields [].
    """
    names = [word for word in words if len(word) >= MIN_NAME_LENGTH]
    if registry is None or not names:
        return []

    try:
        codes = await asyncio.wait_for(
            registry.resolve_codes(names),
            timeout=timeout or settings.ARTISAN_LOOKUP_TIMEOUT_SECONDS,
        )
    except Exception as e:
        logger.warning(
            "artisan_resolution_failed",
            names=names,
            error=str(e) or type(e).__name__,
            source="artisan",
        )
        return []

    resolved = [code for code in dict.fromkeys(codes) if code not in UNKNOWN_ARTISAN_CODES]
    if resolved:
        logger.debug("artisan_codes_resolved", names=names, codes=resolved, source="artisan")
    return resolved
