# analyzer/report.py – Population-level roll-up of user analyses

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rolekeeper.analyzer.role_definition import (
    BadgeDefinition, RequirementDefinition, RoleDefinition, format_requirement,
)
from rolekeeper.analyzer.user import AnalyzedUser, Connection, analyze_user, group_connections
from rolekeeper.boards.cm.state import CmBoardsState
from rolekeeper.boards.srcom.state import SrComBoardsState

log = logging.getLogger(__name__)

PROGRESS_EVERY = 100


@dataclass
class BadgeAnalysis:
    count: int = 0
    requirement_counts: Dict[RequirementDefinition, int] = field(default_factory=dict)


@dataclass
class RoleDefinitionReport:
    definition: RoleDefinition
    badge_analyses: Dict[BadgeDefinition, BadgeAnalysis] = field(default_factory=dict)
    total_users: int = 0
    steam_users: int = 0
    srcom_users: int = 0

    def __post_init__(self):
        for badge in self.definition.badges:
            self.badge_analyses.setdefault(
                badge, BadgeAnalysis(requirement_counts={req: 0 for req in badge.requirements}))

    def add(self, analysis: AnalyzedUser) -> None:
        self.total_users += 1
        if analysis.cm_accounts:
            self.steam_users += 1
        if analysis.srcom_accounts:
            self.srcom_users += 1

        for badge in analysis.badges:
            summary = self.badge_analyses[badge.definition]
            summary.count += 1
            # Identical requirements inside one badge share a counter; count the user once
            for req in {met.definition for met in badge.met_requirements}:
                summary.requirement_counts[req] += 1

    async def badge_summary(self, srcom_state: SrComBoardsState) -> List[Tuple[str, str]]:
        """(title, body) pairs, one per badge, ready to become embed fields."""
        fields: List[Tuple[str, str]] = []
        for badge in self.definition.badges:
            summary = self.badge_analyses[badge]
            lines = []
            for req in badge.requirements:
                text = await format_requirement(req, srcom_state)
                lines.append(f"{text} - **{summary.requirement_counts[req]}/{summary.count}**")
            fields.append((f"{badge.name} - {summary.count}", "\n".join(lines)))
        return fields


def summarize(definition: RoleDefinition, analyses: Iterable[AnalyzedUser]) -> RoleDefinitionReport:
    """Pure reduction of per-user analyses into a report. No I/O."""
    report = RoleDefinitionReport(definition)
    for analysis in analyses:
        report.add(analysis)
    return report


async def full_analysis(definition: RoleDefinition,
                        connections: Sequence[Connection],
                        users: Sequence[int],
                        srcom_state: SrComBoardsState,
                        cm_state: CmBoardsState,
                        today: Optional[dt.date] = None) -> RoleDefinitionReport:
    """
    Analyze every Discord user in ``users`` and roll the results up.

    Users are processed one after another: the first users warm the shared
    caches and the rest mostly read from them. Any error aborts the batch.
    """
    report = RoleDefinitionReport(definition)
    by_user = group_connections(connections)

    for i, user_id in enumerate(users):
        if i % PROGRESS_EVERY == 0:
            log.info("Analyzing user %d/%d", i, len(users))

        analysis = await analyze_user(user_id, definition, by_user.get(user_id, []), srcom_state, cm_state,
                                      exhaustive=True, today=today)
        report.add(analysis)

    return report


def requirement_rows(badge: BadgeDefinition, analyses: Iterable[Tuple[str, AnalyzedUser]]) -> List[List[str]]:
    """
    Rows for a per-badge CSV: user name, number of requirements met, then one
    true/false column per requirement. Users without the badge are skipped.
    """
    rows = []
    for name, analysis in analyses:
        analyzed = analysis.badge(badge)
        if analyzed is None:
            continue
        met = {m.definition for m in analyzed.met_requirements}
        flags = ["true" if req in met else "false" for req in badge.requirements]
        rows.append([name, str(flags.count("true")), *flags])
    return rows
