# boards/cm/models.py – board.portal2.sr payloads

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CmLeaderboard(str, Enum):
    OVERALL = "Overall"
    SINGLE_PLAYER = "SinglePlayer"
    COOP = "Coop"

    @property
    def page(self) -> str:
        return _PAGES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_PAGES = {
    CmLeaderboard.OVERALL: "aggregated/overall",
    CmLeaderboard.SINGLE_PLAYER: "aggregated/sp",
    CmLeaderboard.COOP: "aggregated/coop",
}
_LABELS = {
    CmLeaderboard.OVERALL: "Overall",
    CmLeaderboard.SINGLE_PLAYER: "Single Player",
    CmLeaderboard.COOP: "Cooperative",
}


class CmModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Profile(CmModel):
    board_name: Optional[str] = Field(None, alias="boardname")
    avatar: Optional[str] = None


class AggregatedScoreData(CmModel):
    score: int
    player_rank: int = Field(alias="playerRank")
    score_rank: int = Field(alias="scoreRank")


class AggregatedPlace(CmModel):
    user_data: Profile = Field(alias="userData")
    score_data: AggregatedScoreData = Field(alias="scoreData")


class AggregatedResponse(CmModel):
    points: Dict[str, AggregatedPlace] = Field(alias="Points")

    def place(self, steam_id: str) -> Optional[AggregatedPlace]:
        return self.points.get(steam_id)


class ProfileResponse(CmModel):
    profile_number: str = Field(alias="profileNumber")
    user_data: Profile = Field(alias="userData")


class ActiveProfile(CmModel):
    profile_number: str


class ActiveProfilesResponse(CmModel):
    profiles: List[Union[str, ActiveProfile]]

    def ids(self) -> frozenset:
        return frozenset(p if isinstance(p, str) else p.profile_number for p in self.profiles)
