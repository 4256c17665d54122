# boards/cm/client.py

from typing import Any, Optional

from rolekeeper.boards.client import BoardClient
from rolekeeper.boards.cm.models import CmLeaderboard
from rolekeeper.boards.ratelimit import RateLimiter

CM_API_BASE = "https://board.portal2.sr"

CM_RATE_LIMIT = 100
CM_RATE_WINDOW = 60


class CmClient(BoardClient):
    """board.portal2.sr client (Portal 2 Challenge Mode boards)."""

    def __init__(self, base_url: str = CM_API_BASE, limiter: Optional[RateLimiter] = None):
        super().__init__(base_url, limiter or RateLimiter(CM_RATE_LIMIT, CM_RATE_WINDOW, name="board.portal2.sr"))

    async def get_aggregate(self, leaderboard: CmLeaderboard) -> Any:
        return await self._request(self.url(f"{leaderboard.page}/json"))

    async def get_active_profiles(self, months: int) -> Any:
        return await self._request(self.url("api-v2/active-profiles"), method="POST", data={"months": str(months)})

    async def get_profile(self, steam_id: int) -> Any:
        return await self._request(self.url(f"profile/{steam_id}/json"))
