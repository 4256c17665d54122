# boards/srcom/models.py – speedrun.com API v1 payloads

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar, Union, NewType

from pydantic import BaseModel, ConfigDict, Field, field_validator

GameId = NewType("GameId", str)
CategoryId = NewType("CategoryId", str)
LevelId = NewType("LevelId", str)
UserId = NewType("UserId", str)
VariableId = NewType("VariableId", str)
VariableValueId = NewType("VariableValueId", str)
RunId = NewType("RunId", str)
PlatformId = NewType("PlatformId", str)
RegionId = NewType("RegionId", str)

T = TypeVar("T")


class SrcomModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Embedded(SrcomModel, Generic[T]):
    """``{"data": ...}`` wrapper used by both envelopes and ``embed=`` payloads."""
    data: T


class Link(SrcomModel):
    rel: Optional[str] = None
    uri: str


class Names(SrcomModel):
    international: str
    japanese: Optional[str] = None
    twitch: Optional[str] = None


# ───────────────────────────── Games / categories ──────────────────

class Ruleset(SrcomModel):
    show_milliseconds: bool = Field(False, alias="show-milliseconds")
    require_verification: bool = Field(True, alias="require-verification")
    require_video: bool = Field(False, alias="require-video")
    run_times: List[str] = Field(default_factory=list, alias="run-times")
    default_time: Optional[str] = Field(None, alias="default-time")
    emulators_allowed: bool = Field(False, alias="emulators-allowed")


class Game(SrcomModel):
    id: GameId
    names: Names
    abbreviation: Optional[str] = None
    weblink: str
    released: Optional[int] = None
    release_date: Optional[str] = Field(None, alias="release-date")
    ruleset: Optional[Ruleset] = None
    romhack: bool = False
    moderators: Dict[str, str] = Field(default_factory=dict)
    links: Optional[List[Link]] = None

    @property
    def name(self) -> str:
        return self.names.international


class PlayerCount(SrcomModel):
    type: Literal["exactly", "up-to"]
    value: int


class Category(SrcomModel):
    id: CategoryId
    name: str
    weblink: str
    category_type: str = Field("per-game", alias="type")
    rules: Optional[str] = None
    players: Optional[PlayerCount] = None
    miscellaneous: bool = False
    links: Optional[List[Link]] = None


class VariableValue(SrcomModel):
    label: str
    rules: Optional[str] = None


class VariableValues(SrcomModel):
    values: Dict[VariableValueId, VariableValue] = Field(default_factory=dict)
    default: Optional[VariableValueId] = None


class VariableScope(SrcomModel):
    type: str


class Variable(SrcomModel):
    id: VariableId
    name: str
    category: Optional[CategoryId] = None
    scope: Optional[VariableScope] = None
    mandatory: bool = False
    user_defined: bool = Field(False, alias="user-defined")
    obsoletes: bool = False
    values: VariableValues
    is_subcategory: bool = Field(False, alias="is-subcategory")
    links: Optional[List[Link]] = None

    def label(self, value: VariableValueId) -> str:
        choice = self.values.values.get(value)
        return choice.label if choice else value


# ───────────────────────────── Users ───────────────────────────────

class User(SrcomModel):
    id: UserId
    names: Names
    pronouns: Optional[str] = None
    weblink: str
    role: Optional[str] = None
    signup: Optional[str] = None
    links: Optional[List[Link]] = None

    @property
    def name(self) -> str:
        return self.names.international


# ───────────────────────────── Runs ────────────────────────────────

class RunStatus(SrcomModel):
    status: Literal["new", "verified", "rejected"]
    examiner: Optional[UserId] = None
    verify_date: Optional[str] = Field(None, alias="verify-date")
    reason: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.status == "verified"


class RunPlayer(SrcomModel):
    rel: Literal["user", "guest"]
    id: Optional[UserId] = None
    name: Optional[str] = None
    uri: Optional[str] = None


class RunTimes(SrcomModel):
    primary: str
    primary_t: float
    realtime: Optional[str] = None
    realtime_t: float = 0
    realtime_noloads: Optional[str] = None
    realtime_noloads_t: float = 0
    ingame: Optional[str] = None
    ingame_t: float = 0


class RunSystem(SrcomModel):
    platform: Optional[PlatformId] = None
    emulated: bool = False
    region: Optional[RegionId] = None


class Run(SrcomModel):
    id: RunId
    weblink: str
    game: GameId
    level: Optional[LevelId] = None
    category: Optional[CategoryId] = None
    comment: Optional[str] = None
    status: RunStatus
    players: List[RunPlayer]
    date: Optional[dt.date] = None
    submitted: Optional[dt.date] = None
    times: RunTimes
    system: Optional[RunSystem] = None
    values: Dict[VariableId, VariableValueId] = Field(default_factory=dict)

    @field_validator("date", "submitted", mode="before")
    @classmethod
    def _date_part(cls, value: Any) -> Any:
        # `submitted` is a full timestamp, only its calendar day matters
        if isinstance(value, str):
            return value[:10]
        return value

    def has_player(self, user_id: UserId) -> bool:
        return any(p.rel == "user" and p.id == user_id for p in self.players)

    def partner_ids(self, user_id: UserId) -> List[UserId]:
        return [p.id for p in self.players if p.rel == "user" and p.id is not None and p.id != user_id]

    @property
    def achieved_on(self) -> Optional[dt.date]:
        """Date the run was performed, falling back to its submission date."""
        return self.date or self.submitted


# ───────────────────────────── Leaderboards ────────────────────────

class LeaderboardPlace(SrcomModel):
    place: int
    run: Run


class Leaderboard(SrcomModel):
    weblink: str
    game: Union[Embedded[Game], GameId]
    category: Union[Embedded[Category], CategoryId]
    level: Optional[LevelId] = None
    platform: Optional[PlatformId] = None
    region: Optional[RegionId] = None
    emulators: Optional[bool] = None
    video_only: bool = Field(False, alias="video-only")
    timing: Optional[str] = None
    values: Dict[VariableId, VariableValueId] = Field(default_factory=dict)
    runs: List[LeaderboardPlace] = Field(default_factory=list)
    links: Optional[List[Link]] = None
    players: Optional[Embedded[List[Dict[str, Any]]]] = None
    variables: Optional[Embedded[List[Variable]]] = None

    @property
    def game_id(self) -> GameId:
        return self.game.data.id if isinstance(self.game, Embedded) else self.game

    @property
    def category_id(self) -> CategoryId:
        return self.category.data.id if isinstance(self.category, Embedded) else self.category

    def embedded_users(self) -> List[User]:
        """Registered players embedded in the response (guests are skipped)."""
        if self.players is None:
            return []
        return [User.model_validate(p) for p in self.players.data if p.get("rel", "user") == "user"]
