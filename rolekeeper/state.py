# state.py – Long-lived objects shared by every cog

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from rolekeeper.boards.cm.client import CmClient
from rolekeeper.boards.cm.state import CmBoardsState
from rolekeeper.boards.ratelimit import RateLimiter
from rolekeeper.boards.srcom.client import SrcomClient
from rolekeeper.boards.srcom.state import SrComBoardsState
from rolekeeper.database import (
    ManualRoleAssignment, VerifiedConnection, create_session_factory,
    find_manual_assignments, find_verified_connections,
)


@dataclass
class BotState:
    srcom: SrComBoardsState
    cm: CmBoardsState
    sessions: sessionmaker

    @classmethod
    def from_settings(cls, settings) -> "BotState":
        srcom_client = SrcomClient(
            settings.SRCOM_API_BASE,
            RateLimiter(settings.SRCOM_RATE_LIMIT, settings.SRCOM_RATE_WINDOW, name="speedrun.com"),
        )
        cm_client = CmClient(
            settings.CM_API_BASE,
            RateLimiter(settings.CM_RATE_LIMIT, settings.CM_RATE_WINDOW, name="board.portal2.sr"),
        )
        return cls(
            srcom=SrComBoardsState(settings.cache_persist_time, srcom_client),
            cm=CmBoardsState(settings.cache_persist_time, cm_client),
            sessions=create_session_factory(settings.DB_URL),
        )

    def _connections(self, user_id: Optional[int]) -> List[VerifiedConnection]:
        with self.sessions() as session:
            rows = find_verified_connections(session, user_id)
            session.expunge_all()
            return rows

    def _manual_assignments(self) -> List[ManualRoleAssignment]:
        with self.sessions() as session:
            rows = find_manual_assignments(session)
            session.expunge_all()
            return rows

    async def connections(self, user_id: Optional[int] = None) -> List[VerifiedConnection]:
        return await asyncio.to_thread(self._connections, user_id)

    async def manual_assignments(self) -> List[ManualRoleAssignment]:
        return await asyncio.to_thread(self._manual_assignments)

    async def close(self) -> None:
        await self.cm.close()
        await self.srcom.close()
