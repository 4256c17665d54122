# boards/cm/state.py – Cached view of the Challenge Mode boards

from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import logging
from typing import FrozenSet, Optional

from pydantic import ValidationError

from rolekeeper.boards.cache import Clock, TTLCache, utcnow
from rolekeeper.boards.cm.client import CmClient
from rolekeeper.boards.cm.models import (
    ActiveProfilesResponse, AggregatedResponse, CmLeaderboard, Profile, ProfileResponse,
)
from rolekeeper.errors import DataIntegrityError, RoleManagerError, UpstreamFormatError

log = logging.getLogger(__name__)


def parse_steam_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise DataIntegrityError(f"Invalid steam id {raw!r}: expected a number") from None


class CmBoardsState:
    """Aggregate, active-profile and profile caches for board.portal2.sr.

    The three aggregates are also kept warm by :meth:`schedule_refresh`,
    independently of request-driven expiry.
    """

    def __init__(self, cache_persist_time: dt.timedelta,
                 client: Optional[CmClient] = None,
                 clock: Clock = utcnow):
        self.cache_persist_time = cache_persist_time
        self.client = client or CmClient()
        self._clock = clock

        self.aggregates: TTLCache[CmLeaderboard, AggregatedResponse] = TTLCache(cache_persist_time, "cm.aggregates", clock)
        self.active_profiles: TTLCache[int, FrozenSet[str]] = TTLCache(cache_persist_time, "cm.active_profiles", clock)
        self.profiles: TTLCache[int, Profile] = TTLCache(cache_persist_time, "cm.profiles", clock)

        self._refresh_task: Optional[asyncio.Task] = None

    async def close(self) -> None:
        await self.stop_refresh()
        await self.client.close()

    # ───────────────────────────── Aggregates ──────────────────────────
    async def _load_aggregate(self, leaderboard: CmLeaderboard) -> AggregatedResponse:
        payload = await self.client.get_aggregate(leaderboard)
        try:
            aggregate = AggregatedResponse.model_validate(payload)
        except ValidationError as e:
            raise UpstreamFormatError(f"board.portal2.sr {leaderboard.page}", str(e)) from e

        fetched_at = self._clock()
        for steam_id, place in aggregate.points.items():
            await self.profiles.put(parse_steam_id(steam_id), place.user_data, fetched_at)

        log.debug("Fetched %s aggregate (%d players)", leaderboard.value, len(aggregate.points))
        return aggregate

    async def fetch_aggregate(self, leaderboard: CmLeaderboard) -> AggregatedResponse:
        return await self.aggregates.get_or_fetch(leaderboard, self._load_aggregate)

    async def refresh_aggregates(self) -> None:
        """Refetch every aggregate, ignoring freshness."""
        for leaderboard in CmLeaderboard:
            await self.aggregates.refresh(leaderboard, self._load_aggregate)

    # ───────────────────────────── Profiles ────────────────────────────
    async def fetch_active_profiles(self, months: int) -> FrozenSet[str]:
        """Steam ids with board activity in the last ``months`` months."""
        async def load(key: int) -> FrozenSet[str]:
            try:
                return ActiveProfilesResponse.model_validate(await self.client.get_active_profiles(key)).ids()
            except ValidationError as e:
                raise UpstreamFormatError("board.portal2.sr active profiles", str(e)) from e

        return await self.active_profiles.get_or_fetch(months, load)

    async def fetch_profile(self, steam_id: int) -> Profile:
        async def load(key: int) -> Profile:
            try:
                return ProfileResponse.model_validate(await self.client.get_profile(key)).user_data
            except ValidationError as e:
                raise UpstreamFormatError(f"board.portal2.sr profile {key}", str(e)) from e

        return await self.profiles.get_or_fetch(steam_id, load)

    # ───────────────────────────── Background refresh ──────────────────
    def schedule_refresh(self, interval: dt.timedelta) -> asyncio.Task:
        """Start the periodic aggregate refresh (no-op if already running)."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop(interval.total_seconds()),
                                                     name="cm-aggregate-refresh")
        return self._refresh_task

    async def _refresh_loop(self, seconds: float) -> None:
        while True:
            try:
                await self.refresh_aggregates()
                log.info("Refreshed CM aggregates")
            except RoleManagerError:
                log.exception("Failed to refresh CM aggregates")
            await asyncio.sleep(seconds)

    async def stop_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def has_aggregates(self) -> bool:
        """True once every aggregate was fetched at least once."""
        return all(self.aggregates.entry(lb) is not None for lb in CmLeaderboard)

    def cache_stats(self) -> dict:
        return {cache.name: cache.stats() for cache in (self.aggregates, self.active_profiles, self.profiles)}
