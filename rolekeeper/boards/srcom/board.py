# boards/srcom/board.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from rolekeeper.boards.srcom.models import CategoryId, GameId, LevelId, VariableId, VariableValueId

VariableSelection = Union[Mapping[VariableId, VariableValueId], Iterable[Tuple[VariableId, VariableValueId]]]


@dataclass(frozen=True)
class BoardDefinition:
    """Cache key for one leaderboard.

    ``variables`` is always stored sorted by variable id, so two selections
    with the same pairs compare and hash equal whatever order they were given in.
    """
    game: GameId
    category: CategoryId
    level: Optional[LevelId] = None
    variables: Tuple[Tuple[VariableId, VariableValueId], ...] = field(default=())

    def __post_init__(self):
        pairs = self.variables.items() if isinstance(self.variables, Mapping) else self.variables
        object.__setattr__(self, "variables", tuple(sorted((str(k), str(v)) for k, v in pairs)))

    @classmethod
    def create(cls, game: GameId, category: CategoryId, variables: VariableSelection = (),
               level: Optional[LevelId] = None) -> "BoardDefinition":
        return cls(game=game, category=category, level=level, variables=variables)

    def path(self) -> str:
        game, category = quote(self.game, safe=""), quote(self.category, safe="")
        if self.level:
            return f"leaderboards/{game}/level/{quote(self.level, safe='')}/{category}"
        return f"leaderboards/{game}/category/{category}"

    def query_params(self) -> List[Tuple[str, str]]:
        """One ``var-<id>`` parameter per selected variable, in variable id order."""
        return [(f"var-{var}", value) for var, value in self.variables]
