# analyzer/user.py
# -----------------------------------------------------------------------------
#  Per-user requirement evaluation.
#  • Linked accounts come from the verified connections table (steam / srcom).
#  • Each requirement is tried account by account, in link order, and stops at
#    the first account that satisfies it.
#  • A badge is kept only if at least one of its requirements is met.
# -----------------------------------------------------------------------------

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Union

from dateutil.relativedelta import relativedelta

from rolekeeper.analyzer.duration import format_seconds
from rolekeeper.analyzer.role_definition import (
    BadgeDefinition, ManualRequirement, PointsRequirement, RankRequirement, RecentRequirement,
    RequirementDefinition, RoleDefinition, TimeRequirement,
)
from rolekeeper.boards.cm.models import CmLeaderboard
from rolekeeper.boards.cm.state import CmBoardsState, parse_steam_id
from rolekeeper.boards.srcom.models import LeaderboardPlace, Run, UserId
from rolekeeper.boards.srcom.state import SrComBoardsState

log = logging.getLogger(__name__)

CONNECTION_STEAM = "steam"
CONNECTION_SRCOM = "srcom"


class Connection(Protocol):
    """A verified account link (see ``rolekeeper.database.VerifiedConnection``)."""
    user_id: int
    connection_type: str
    external_id: str
    removed: bool


# =============================================================
# ---------------------- External accounts --------------------
# =============================================================
@dataclass(frozen=True)
class CmAccount:
    username: str
    id: str

    @property
    def link(self) -> str:
        return f"https://board.portal2.sr/profile/{self.id}"


@dataclass(frozen=True)
class SrcomAccount:
    username: str
    id: UserId
    link: str


ExternalAccount = Union[CmAccount, SrcomAccount]


# =============================================================
# ------------------------- Causes ----------------------------
# =============================================================
@dataclass(frozen=True)
class ManualCause:
    assigned_on: dt.datetime
    note: Optional[str] = None

    def __str__(self) -> str:
        text = f"Manually assigned on {self.assigned_on:%Y-%m-%d}"
        return f"{text}: {self.note}" if self.note else text


@dataclass(frozen=True)
class FullgameRunCause:
    link: str
    rank: int
    time: str
    achieved_on: Optional[dt.date] = None

    def __str__(self) -> str:
        when = f" on {self.achieved_on:%Y-%m-%d}" if self.achieved_on else ""
        return f"[Rank {self.rank} in {self.time}]({self.link}){when}"


@dataclass(frozen=True)
class AggregateScoreCause:
    leaderboard: CmLeaderboard
    score: int
    rank: int

    def __str__(self) -> str:
        return f"{self.score} points, rank {self.rank} on the {self.leaderboard.label} CM leaderboard"


@dataclass(frozen=True)
class RecentActivityCause:
    platform: str
    account: str
    achieved_on: Optional[dt.date] = None
    link: Optional[str] = None

    def __str__(self) -> str:
        if self.link and self.achieved_on:
            return f"[Verified run]({self.link}) on {self.achieved_on:%Y-%m-%d}"
        if self.achieved_on:
            return f"Active on {self.platform} on {self.achieved_on:%Y-%m-%d}"
        return f"Recently active on {self.platform} as {self.account}"


MetRequirementCause = Union[ManualCause, FullgameRunCause, AggregateScoreCause, RecentActivityCause]


@dataclass
class MetRequirement:
    definition: RequirementDefinition
    cause: MetRequirementCause


@dataclass
class AnalyzedBadge:
    definition: BadgeDefinition
    met_requirements: List[MetRequirement] = field(default_factory=list)


@dataclass
class AnalyzedUser:
    discord_user_id: int
    external_accounts: List[ExternalAccount] = field(default_factory=list)
    badges: List[AnalyzedBadge] = field(default_factory=list)

    @property
    def cm_accounts(self) -> List[CmAccount]:
        return [a for a in self.external_accounts if isinstance(a, CmAccount)]

    @property
    def srcom_accounts(self) -> List[SrcomAccount]:
        return [a for a in self.external_accounts if isinstance(a, SrcomAccount)]

    def badge(self, definition: BadgeDefinition) -> Optional[AnalyzedBadge]:
        return next((b for b in self.badges if b.definition == definition), None)


# =============================================================
# ------------------------- Analysis --------------------------
# =============================================================
def user_connections(user_id: int, connections: Iterable[Connection]) -> List[Connection]:
    """Non-removed connections of one Discord user, in link order."""
    return [c for c in connections if c.user_id == user_id and not c.removed]


def group_connections(connections: Iterable[Connection]) -> Dict[int, List[Connection]]:
    """Non-removed connections keyed by Discord user, each list in link order."""
    grouped: Dict[int, List[Connection]] = defaultdict(list)
    for conn in connections:
        if not conn.removed:
            grouped[int(conn.user_id)].append(conn)
    return grouped


def recent_cutoff(today: dt.date, months: int) -> dt.date:
    """First day still inside a trailing window of ``months`` calendar months."""
    return today - relativedelta(months=months)


async def resolve_accounts(connections: Sequence[Connection],
                           srcom_state: SrComBoardsState,
                           cm_state: CmBoardsState) -> List[ExternalAccount]:
    accounts: List[ExternalAccount] = []
    for conn in connections:
        if conn.connection_type == CONNECTION_SRCOM:
            user = await srcom_state.fetch_user(UserId(conn.external_id))
            accounts.append(SrcomAccount(username=user.name, id=user.id, link=user.weblink))
        elif conn.connection_type == CONNECTION_STEAM:
            profile = await cm_state.fetch_profile(parse_steam_id(conn.external_id))
            accounts.append(CmAccount(username=profile.board_name or conn.external_id, id=conn.external_id))
        else:
            log.debug("Ignoring %s connection of user %s", conn.connection_type, conn.user_id)
    return accounts


async def analyze_user(discord_user_id: int,
                       definition: RoleDefinition,
                       connections: Iterable[Connection],
                       srcom_state: SrComBoardsState,
                       cm_state: CmBoardsState,
                       exhaustive: bool = False,
                       today: Optional[dt.date] = None) -> AnalyzedUser:
    """
    Work out which badges of ``definition`` a Discord user qualifies for.

    Args:
        discord_user_id: Discord snowflake of the user
        definition: Badges to evaluate
        connections: Verified connections (of this user or everyone; filtered here)
        srcom_state: Shared speedrun.com cache
        cm_state: Shared CM boards cache
        exhaustive: Evaluate every requirement of a badge instead of stopping
            at the first met one
        today: Reference date for recent-activity windows (defaults to UTC today)

    Returns:
        AnalyzedUser listing only badges with at least one met requirement

    Raises:
        RoleManagerError: any board or data failure aborts the analysis
    """
    today = today or dt.datetime.now(dt.timezone.utc).date()
    accounts = await resolve_accounts(user_connections(discord_user_id, connections), srcom_state, cm_state)
    evaluator = _RequirementEvaluator(accounts, srcom_state, cm_state, today)

    analysis = AnalyzedUser(discord_user_id=discord_user_id, external_accounts=accounts)
    for badge in definition.badges:
        met: List[MetRequirement] = []
        for req in badge.requirements:
            cause = await evaluator.evaluate(req)
            if cause is not None:
                met.append(MetRequirement(req, cause))
                if not exhaustive:
                    break
        if met:
            analysis.badges.append(AnalyzedBadge(badge, met))

    return analysis


class _RequirementEvaluator:
    def __init__(self, accounts: List[ExternalAccount], srcom_state: SrComBoardsState,
                 cm_state: CmBoardsState, today: dt.date):
        self.srcom_accounts = [a for a in accounts if isinstance(a, SrcomAccount)]
        self.cm_accounts = [a for a in accounts if isinstance(a, CmAccount)]
        self.srcom = srcom_state
        self.cm = cm_state
        self.today = today

    async def evaluate(self, req: RequirementDefinition) -> Optional[MetRequirementCause]:
        if isinstance(req, ManualRequirement):
            # Only granted out of band, never by analysis
            return None
        if isinstance(req, RankRequirement):
            return await self._board_requirement(req, lambda place: place.place <= req.top)
        if isinstance(req, TimeRequirement):
            limit = req.seconds
            return await self._board_requirement(req, lambda place: place.run.times.primary_t <= limit)
        if isinstance(req, PointsRequirement):
            return await self._points(req)
        if isinstance(req, RecentRequirement):
            if req.platform == "cm":
                return await self._recent_cm(req)
            return await self._recent_srcom(req)
        raise TypeError(f"Unknown requirement type: {type(req).__name__}")

    async def _board_requirement(self, req: Union[RankRequirement, TimeRequirement],
                                 satisfied) -> Optional[FullgameRunCause]:
        for account in self.srcom_accounts:
            place = await self.srcom.fetch_user_highest_run(
                account.id, req.partner, req.game, req.category, req.board_variables(), req.level)
            if place is not None and satisfied(place):
                return _run_cause(place)
        return None

    async def _points(self, req: PointsRequirement) -> Optional[AggregateScoreCause]:
        if not self.cm_accounts:
            return None
        aggregate = await self.cm.fetch_aggregate(req.leaderboard)
        for account in self.cm_accounts:
            entry = aggregate.place(account.id)
            if entry is not None and entry.score_data.score >= req.points:
                return AggregateScoreCause(req.leaderboard, entry.score_data.score, entry.score_data.player_rank)
        return None

    async def _recent_cm(self, req: RecentRequirement) -> Optional[RecentActivityCause]:
        if not self.cm_accounts:
            return None
        active = await self.cm.fetch_active_profiles(req.months)
        for account in self.cm_accounts:
            if account.id in active:
                return RecentActivityCause("CM boards", account.username, link=account.link)
        return None

    async def _recent_srcom(self, req: RecentRequirement) -> Optional[RecentActivityCause]:
        cutoff = recent_cutoff(self.today, req.months)
        for account in self.srcom_accounts:
            run = await self._latest_run(account, req)
            # Undated runs are never treated as recent
            if run is not None and run.achieved_on is not None and run.achieved_on >= cutoff:
                return RecentActivityCause("speedrun.com", account.username, run.achieved_on, run.weblink)
        return None

    async def _latest_run(self, account: SrcomAccount, req: RecentRequirement) -> Optional[Run]:
        if req.category is not None:
            place = await self.srcom.fetch_user_highest_run(
                account.id, None, req.game, req.category, req.board_variables(), req.level)
            return place.run if place is not None else None
        return await self.srcom.fetch_latest_verified_run(account.id, req.game)


def _run_cause(place: LeaderboardPlace) -> FullgameRunCause:
    run = place.run
    return FullgameRunCause(
        link=run.weblink,
        rank=place.place,
        time=format_seconds(run.times.primary_t),
        achieved_on=run.achieved_on,
    )
