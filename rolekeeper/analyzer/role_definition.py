# analyzer/role_definition.py
# =============================================================
#  Badge definition documents (JSON5)
#
#  {
#    badges: [
#      { name: "Top 10", requirements: [
#          { type: "rank", platform: "srcom", game: "om1m3625",
#            category: "jzd33ndn", top: 10 },
#          { type: "manual" },
#      ]},
#    ]
#  }
#
#  Everything is frozen and hashes structurally: two identical requirements
#  are the same dict key, even when they come from different badges.
# =============================================================

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Dict, Literal, Optional, Tuple, Union

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from rolekeeper.analyzer.duration import format_seconds, parse_duration
from rolekeeper.boards.cm.models import CmLeaderboard
from rolekeeper.boards.srcom.models import CategoryId, GameId, LevelId, VariableId, VariableValueId
from rolekeeper.boards.srcom.resolver import PartnerRestriction
from rolekeeper.errors import ConfigError


class DefinitionModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class VariableDefinition(DefinitionModel):
    variable: VariableId
    choice: VariableValueId


class _SrcomBoardRequirement(DefinitionModel):
    platform: Literal["srcom"] = "srcom"
    game: GameId
    category: CategoryId
    level: Optional[LevelId] = None
    variables: Optional[Tuple[VariableDefinition, ...]] = None
    partner: Optional[PartnerRestriction] = None

    def board_variables(self) -> Dict[VariableId, VariableValueId]:
        return {v.variable: v.choice for v in self.variables or ()}


class ManualRequirement(DefinitionModel):
    type: Literal["manual"]


class RankRequirement(_SrcomBoardRequirement):
    type: Literal["rank"]
    top: int = Field(gt=0)


class TimeRequirement(_SrcomBoardRequirement):
    type: Literal["time"]
    time: str

    @field_validator("time")
    @classmethod
    def _valid_duration(cls, value: str) -> str:
        try:
            parse_duration(value)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return value

    @property
    def seconds(self) -> float:
        return parse_duration(self.time).total_seconds()


class PointsRequirement(DefinitionModel):
    type: Literal["points"]
    leaderboard: CmLeaderboard
    points: int = Field(ge=0)


class RecentRequirement(DefinitionModel):
    type: Literal["recent"]
    platform: Literal["srcom", "cm"]
    game: Optional[GameId] = None
    category: Optional[CategoryId] = None
    level: Optional[LevelId] = None
    variables: Optional[Tuple[VariableDefinition, ...]] = None
    months: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_scope(self) -> "RecentRequirement":
        if self.platform == "cm" and (self.game or self.category or self.variables):
            raise ValueError("cm recent requirements cannot name a game, category or variables")
        if self.category and not self.game:
            raise ValueError("a category needs a game")
        if self.variables and not self.category:
            raise ValueError("variables need a game and category")
        return self

    def board_variables(self) -> Dict[VariableId, VariableValueId]:
        return {v.variable: v.choice for v in self.variables or ()}


RequirementDefinition = Annotated[
    Union[ManualRequirement, RankRequirement, TimeRequirement, PointsRequirement, RecentRequirement],
    Field(discriminator="type"),
]


class BadgeDefinition(DefinitionModel):
    name: str = Field(min_length=1)
    requirements: Tuple[RequirementDefinition, ...]

    @property
    def can_autoremove(self) -> bool:
        """Manually granted badges must never be revoked automatically."""
        return not any(isinstance(r, ManualRequirement) for r in self.requirements)


class RoleDefinition(DefinitionModel):
    badges: Tuple[BadgeDefinition, ...]

    @field_validator("badges")
    @classmethod
    def _unique_names(cls, badges):
        seen = set()
        for badge in badges:
            if badge.name in seen:
                raise ValueError(f"duplicate badge name {badge.name!r}")
            seen.add(badge.name)
        return badges

    def badge(self, name: str) -> Optional[BadgeDefinition]:
        return next((b for b in self.badges if b.name == name), None)


# =============================================================
# ------------------------- Loading ---------------------------
# =============================================================
def load_definition(content: Union[str, bytes]) -> RoleDefinition:
    """Parse a JSON5 role definition document.

    Raises:
        ConfigError: invalid JSON5 or a document that does not match the schema
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigError(f"Invalid role definition file: {e}") from e

    try:
        raw = json5.loads(content)
    except ValueError as e:
        raise ConfigError(f"Invalid role definition file: {e}") from e

    try:
        return RoleDefinition.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid role definition file: {_summarize(e)}") from e


def load_definition_file(path: Path) -> RoleDefinition:
    return load_definition(Path(path).read_text(encoding="utf-8"))


def _summarize(error: ValidationError) -> str:
    lines = []
    for err in error.errors()[:5]:
        loc = ".".join(str(p) for p in err["loc"])
        lines.append(f"{loc}: {err['msg']}")
    more = error.error_count() - len(lines)
    if more > 0:
        lines.append(f"... and {more} more")
    return "; ".join(lines)


# =============================================================
# ------------------------ Formatting -------------------------
# =============================================================
def short_description(req: RequirementDefinition) -> str:
    """One-line description without network lookups (audit log reasons)."""
    if isinstance(req, ManualRequirement):
        return "manual"
    if isinstance(req, RankRequirement):
        return f"top {req.top} on {req.game}/{req.category}"
    if isinstance(req, TimeRequirement):
        return f"sub {format_seconds(req.seconds)} on {req.game}/{req.category}"
    if isinstance(req, PointsRequirement):
        return f"{req.points} {req.leaderboard.value} CM points"
    if isinstance(req, RecentRequirement):
        return f"{req.platform} activity in {req.months} months"
    raise TypeError(f"Unknown requirement type: {type(req).__name__}")


async def format_requirement(req: RequirementDefinition, srcom_state) -> str:
    """Human readable requirement, resolving game/category/variable names."""
    if isinstance(req, ManualRequirement):
        return "Manually assigned"
    if isinstance(req, RankRequirement):
        board = await _format_board(srcom_state, req.game, req.category, req.variables)
        return f"Top {req.top} in {board}{_partner_note(req.partner)}"
    if isinstance(req, TimeRequirement):
        board = await _format_board(srcom_state, req.game, req.category, req.variables)
        return f"Sub {format_seconds(req.seconds)} in {board}{_partner_note(req.partner)}"
    if isinstance(req, PointsRequirement):
        return f"{req.points}+ points on the {req.leaderboard.label} CM leaderboard"
    if isinstance(req, RecentRequirement):
        if req.platform == "cm":
            return f"Activity on the CM boards in the last {req.months} months"
        if req.game is None:
            return f"Verified speedrun.com run in the last {req.months} months"
        board = await _format_board(srcom_state, req.game, req.category, req.variables)
        return f"Verified run in {board} in the last {req.months} months"
    raise TypeError(f"Unknown requirement type: {type(req).__name__}")


def _partner_note(partner: Optional[PartnerRestriction]) -> str:
    if partner is PartnerRestriction.RANK_GTE:
        return " (partners may not outrank the run)"
    return ""


async def _format_board(srcom_state, game_id: GameId, category_id: Optional[CategoryId],
                        variables: Optional[Tuple[VariableDefinition, ...]]) -> str:
    game = await srcom_state.fetch_game(game_id)
    if category_id is None:
        return game.name

    category = await srcom_state.fetch_category(category_id)
    labels = []
    for v in variables or ():
        variable = await srcom_state.fetch_variable(v.variable)
        labels.append(variable.label(v.choice))

    suffix = f" ({', '.join(labels)})" if labels else ""
    return f"{game.name} - {category.name}{suffix}"
