# boards/srcom/client.py

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from rolekeeper.boards.client import BoardClient
from rolekeeper.boards.ratelimit import RateLimiter
from rolekeeper.boards.srcom.board import BoardDefinition
from rolekeeper.errors import UpstreamFormatError

SRCOM_API_BASE = "https://www.speedrun.com/api/v1"

# speedrun.com allows 100 requests per minute per client
SRCOM_RATE_LIMIT = 100
SRCOM_RATE_WINDOW = 60

LEADERBOARD_EMBEDS = "game,category,players,variables"

log = logging.getLogger(__name__)


class SrcomClient(BoardClient):
    """speedrun.com API v1 client. Every method returns the unwrapped ``data`` payload."""

    def __init__(self, base_url: str = SRCOM_API_BASE, limiter: Optional[RateLimiter] = None):
        super().__init__(base_url, limiter or RateLimiter(SRCOM_RATE_LIMIT, SRCOM_RATE_WINDOW, name="speedrun.com"))

    async def _get_data(self, url: str) -> Any:
        body = await self._request(url)
        if not isinstance(body, dict) or "data" not in body:
            raise UpstreamFormatError(url, "missing 'data' envelope")
        return body["data"]

    def leaderboard_url(self, board: BoardDefinition) -> str:
        params = board.query_params() + [("embed", LEADERBOARD_EMBEDS)]
        return f"{self.url(board.path())}?{urlencode(params, safe=',')}"

    async def get_leaderboard(self, board: BoardDefinition) -> Dict[str, Any]:
        """Leaderboard with game, category, players and variables embedded."""
        return await self._get_data(self.leaderboard_url(board))

    async def get_game(self, game_id: str) -> Dict[str, Any]:
        return await self._get_data(self.url(f"games/{quote(game_id, safe='')}"))

    async def get_category(self, category_id: str) -> Dict[str, Any]:
        return await self._get_data(self.url(f"categories/{quote(category_id, safe='')}"))

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        return await self._get_data(self.url(f"users/{quote(user_id, safe='')}"))

    async def get_variable(self, variable_id: str) -> Dict[str, Any]:
        return await self._get_data(self.url(f"variables/{quote(variable_id, safe='')}"))

    async def get_user_runs(self, user_id: str, game: Optional[str] = None,
                            category: Optional[str] = None, count: int = 20) -> List[Dict[str, Any]]:
        """Most recent verified runs of a user, newest first."""
        params = [("user", user_id), ("status", "verified"), ("orderby", "date"), ("direction", "desc")]
        if game:
            params.append(("game", game))
        if category:
            params.append(("category", category))
        params.append(("max", str(count)))
        return await self._get_data(f"{self.url('runs')}?{urlencode(params)}")
