"""Valorant rank lookup through the HenrikDev API.

Lookups are cached per Riot account for five minutes. Any failure (missing
key, HTTP error, unexpected payload) is logged and treated as unranked so a
flaky third-party API never blocks team formation.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from urllib.parse import quote

import httpx

from bobbybot.models.valorant import RankInfo, RiotAccount

logger = logging.getLogger(__name__)

RANK_CACHE_TTL_SECONDS = 300
RANK_CACHE_MAX_ENTRIES = 100

_RANK_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


class RankLookupError(Exception):
    """Raised when the rank API cannot produce a rank for an account."""


class RankClient:
    """Async HenrikDev client with a small TTL cache."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.henrikdev.xyz",
        *,
        http_client: httpx.AsyncClient | None = None,
        ttl: float = RANK_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = api_key
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=_RANK_TIMEOUT,
            headers={"User-Agent": "BobbyBot/1.0"},
        )
        self._owns_client = http_client is None
        self._ttl = ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, RankInfo]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_rank(self, account: RiotAccount) -> RankInfo:
        """Fetch the current rank for *account*, bypassing the cache.

        Raises RankLookupError on any failure.
        """
        path = (
            f"/valorant/v2/mmr/{quote(account.region)}/"
            f"{quote(account.name)}/{quote(account.tag)}"
        )
        try:
            response = await self._client.get(path, headers={"Authorization": self.api_key})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RankLookupError(f"rank request failed for {account}: {exc}") from exc

        current = (payload.get("data") or {}).get("current_data") or {}
        tier = current.get("currenttier")
        if tier is None:
            raise RankLookupError(f"no current rank in response for {account}")
        try:
            return RankInfo(tier=int(tier), rr=int(current.get("ranking_in_tier") or 0))
        except ValueError as exc:
            raise RankLookupError(f"invalid rank data for {account}: {exc}") from exc

    async def get_rank(self, account: RiotAccount) -> RankInfo | None:
        """Cached lookup; None when the rank is unavailable."""
        if not self.enabled:
            return None
        key = str(account).lower()
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[0] < self._ttl:
            return cached[1]
        try:
            rank = await self.fetch_rank(account)
        except RankLookupError as exc:
            logger.warning("rank_lookup_failed account=%s err=%s", account, exc)
            return None
        if len(self._cache) >= RANK_CACHE_MAX_ENTRIES:
            oldest = min(self._cache, key=lambda k: self._cache[k][0])
            del self._cache[oldest]
        self._cache[key] = (now, rank)
        return rank

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
