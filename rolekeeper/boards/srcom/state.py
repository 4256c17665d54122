# boards/srcom/state.py – Cached view of speedrun.com shared by every command

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from pydantic import ValidationError

from rolekeeper.boards.cache import Clock, TTLCache, utcnow
from rolekeeper.boards.srcom.board import BoardDefinition, VariableSelection
from rolekeeper.boards.srcom.client import SrcomClient
from rolekeeper.boards.srcom.models import (
    Category, CategoryId, Embedded, Game, GameId, Leaderboard, LeaderboardPlace,
    LevelId, Run, User, UserId, Variable, VariableId,
)
from rolekeeper.boards.srcom.resolver import HighestRunMemo, PartnerRestriction, get_highest_run
from rolekeeper.errors import UpstreamFormatError

log = logging.getLogger(__name__)

LatestRunKey = Tuple[UserId, Optional[GameId], Optional[CategoryId]]


@dataclass
class CachedLeaderboard:
    """A leaderboard together with the best-run memo computed against it."""
    leaderboard: Leaderboard
    highest_runs: HighestRunMemo = field(default_factory=dict)


def _parse(model, payload, what: str):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise UpstreamFormatError(f"speedrun.com {what}", str(e)) from e


class SrComBoardsState:
    """Leaderboard, game, category, user and variable caches for speedrun.com."""

    def __init__(self, cache_persist_time: dt.timedelta,
                 client: Optional[SrcomClient] = None,
                 clock: Clock = utcnow):
        self.cache_persist_time = cache_persist_time
        self.client = client or SrcomClient()
        self._clock = clock

        self.leaderboards: TTLCache[BoardDefinition, CachedLeaderboard] = TTLCache(cache_persist_time, "srcom.leaderboards", clock)
        self.games: TTLCache[GameId, Game] = TTLCache(cache_persist_time, "srcom.games", clock)
        self.categories: TTLCache[CategoryId, Category] = TTLCache(cache_persist_time, "srcom.categories", clock)
        self.users: TTLCache[UserId, User] = TTLCache(cache_persist_time, "srcom.users", clock)
        self.variables: TTLCache[VariableId, Variable] = TTLCache(cache_persist_time, "srcom.variables", clock)
        self.latest_runs: TTLCache[LatestRunKey, Optional[Run]] = TTLCache(cache_persist_time, "srcom.latest_runs", clock)

    async def close(self) -> None:
        await self.client.close()

    # ───────────────────────────── Leaderboards ────────────────────────
    async def _load_leaderboard(self, board: BoardDefinition) -> CachedLeaderboard:
        leaderboard = _parse(Leaderboard, await self.client.get_leaderboard(board), f"leaderboard {board.path()}")
        await self._populate_embedded(leaderboard)
        log.debug("Fetched leaderboard %s (%d runs)", board.path(), len(leaderboard.runs))
        return CachedLeaderboard(leaderboard)

    async def _populate_embedded(self, leaderboard: Leaderboard) -> None:
        """Warm the secondary caches with what the leaderboard request embedded."""
        fetched_at = self._clock()

        if isinstance(leaderboard.game, Embedded):
            await self.games.put(leaderboard.game.data.id, leaderboard.game.data, fetched_at)
        if isinstance(leaderboard.category, Embedded):
            await self.categories.put(leaderboard.category.data.id, leaderboard.category.data, fetched_at)
        try:
            users = leaderboard.embedded_users()
        except ValidationError as e:
            raise UpstreamFormatError(f"speedrun.com leaderboard {leaderboard.weblink}", str(e)) from e
        for user in users:
            await self.users.put(user.id, user, fetched_at)
        if leaderboard.variables is not None:
            for variable in leaderboard.variables.data:
                await self.variables.put(variable.id, variable, fetched_at)

    async def fetch_cached_leaderboard(self, board: BoardDefinition) -> CachedLeaderboard:
        return await self.leaderboards.get_or_fetch(board, self._load_leaderboard)

    async def fetch_leaderboard(self, board: BoardDefinition) -> Leaderboard:
        return (await self.fetch_cached_leaderboard(board)).leaderboard

    async def fetch_user_highest_run(self, user_id: UserId,
                                     partner_restriction: Optional[PartnerRestriction],
                                     game: GameId,
                                     category: CategoryId,
                                     variables: VariableSelection = (),
                                     level: Optional[LevelId] = None) -> Optional[LeaderboardPlace]:
        """Best verified place of ``user_id`` on a board, memoized with the cached board."""
        cached = await self.fetch_cached_leaderboard(BoardDefinition.create(game, category, variables, level))
        return get_highest_run(cached.leaderboard, user_id, partner_restriction, cached.highest_runs)

    # ───────────────────────────── Single entities ─────────────────────
    async def fetch_game(self, game_id: GameId) -> Game:
        async def load(key: GameId) -> Game:
            return _parse(Game, await self.client.get_game(key), f"game {key}")
        return await self.games.get_or_fetch(game_id, load)

    async def fetch_category(self, category_id: CategoryId) -> Category:
        async def load(key: CategoryId) -> Category:
            return _parse(Category, await self.client.get_category(key), f"category {key}")
        return await self.categories.get_or_fetch(category_id, load)

    async def fetch_user(self, user_id: UserId) -> User:
        async def load(key: UserId) -> User:
            return _parse(User, await self.client.get_user(key), f"user {key}")
        return await self.users.get_or_fetch(user_id, load)

    async def fetch_variable(self, variable_id: VariableId) -> Variable:
        async def load(key: VariableId) -> Variable:
            return _parse(Variable, await self.client.get_variable(key), f"variable {key}")
        return await self.variables.get_or_fetch(variable_id, load)

    async def fetch_latest_verified_run(self, user_id: UserId,
                                        game: Optional[GameId] = None,
                                        category: Optional[CategoryId] = None) -> Optional[Run]:
        """Most recently performed verified run of a user, optionally within one game/category."""
        async def load(key: LatestRunKey) -> Optional[Run]:
            user, game_id, category_id = key
            payload = await self.client.get_user_runs(user, game_id, category_id)
            if not isinstance(payload, list):
                raise UpstreamFormatError(f"speedrun.com runs of {user}", "expected a list of runs")
            runs = [_parse(Run, item, f"runs of {user}") for item in payload]
            dated = [r for r in runs if r.status.verified and r.achieved_on is not None]
            return max(dated, key=lambda r: r.achieved_on, default=None)

        return await self.latest_runs.get_or_fetch((user_id, game, category), load)

    def cache_stats(self) -> dict:
        return {
            cache.name: cache.stats()
            for cache in (self.leaderboards, self.games, self.categories, self.users, self.variables, self.latest_runs)
        }
