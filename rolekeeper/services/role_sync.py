# services/role_sync.py
# -----------------------------------------------------------------------------
#  Keeps badge roles of a guild in line with the analysis.
#  • Missing roles are added with the met requirements as audit reason.
#  • Roles of auto-removable badges the member no longer meets are removed,
#    unless a moderator assigned that role by hand.
#  • In dry run nothing is edited, every change is only logged.
# -----------------------------------------------------------------------------

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import discord

from rolekeeper.analyzer.role_definition import RoleDefinition, short_description
from rolekeeper.analyzer.user import Connection, ManualCause, analyze_user, group_connections
from rolekeeper.boards.cm.state import CmBoardsState
from rolekeeper.boards.srcom.state import SrComBoardsState
from rolekeeper.server_config import ServerConfig

log = logging.getLogger(__name__)


@dataclass
class RoleSyncSummary:
    members: int = 0
    added: List[Tuple[int, str]] = field(default_factory=list)
    removed: List[Tuple[int, str]] = field(default_factory=list)
    kept_manual: List[Tuple[int, str, ManualCause]] = field(default_factory=list)
    dry_run: bool = False


async def update_badge_roles(guild: discord.Guild,
                             definition: RoleDefinition,
                             server_config: ServerConfig,
                             connections: Iterable[Connection],
                             manual_assignments: Iterable,
                             srcom_state: SrComBoardsState,
                             cm_state: CmBoardsState,
                             today: Optional[dt.date] = None) -> RoleSyncSummary:
    """
    Analyze every member of ``guild`` and add/remove badge roles.

    Raises:
        RoleManagerError: a failed analysis aborts the whole pass
        discord.HTTPException: a role edit was refused by Discord
    """
    valid_badges = server_config.valid_badges(definition)
    removable = {badge for badge in valid_badges if badge.can_autoremove}
    manual = {(int(a.user_id), int(a.role_id)): a for a in manual_assignments}
    by_user = group_connections(connections)
    summary = RoleSyncSummary(dry_run=server_config.dry_run)

    log.info("Updating badge roles for guild %s (%d badges with roles)", guild.id, len(valid_badges))

    async for member in guild.fetch_members(limit=None):
        if member.bot:
            continue
        summary.members += 1

        analysis = await analyze_user(member.id, definition, by_user.get(member.id, []),
                                      srcom_state, cm_state, exhaustive=False, today=today)
        member_roles = {role.id for role in member.roles}
        to_check = set(removable)

        # Make sure the member has the roles they are supposed to
        for badge in analysis.badges:
            to_check.discard(badge.definition)
            role_id = valid_badges.get(badge.definition)
            if role_id is None or role_id in member_roles:
                continue

            reason = ", ".join(short_description(m.definition) for m in badge.met_requirements)
            log.info("Adding role %s to %s (%s)", badge.definition.name, member.display_name, reason)
            if not server_config.dry_run:
                await member.add_roles(discord.Object(id=role_id), reason=reason[:512])
            summary.added.append((member.id, badge.definition.name))

        # …and doesn't have roles they are not supposed to
        for badge in to_check:
            role_id = valid_badges[badge]
            if role_id not in member_roles:
                continue

            assignment = manual.get((member.id, role_id))
            if assignment is not None:
                cause = ManualCause(assignment.assigned_on, assignment.note)
                log.debug("Keeping role %s on %s: %s", badge.name, member.display_name, cause)
                summary.kept_manual.append((member.id, badge.name, cause))
                continue

            log.info("Removing role %s from %s", badge.name, member.display_name)
            if not server_config.dry_run:
                await member.remove_roles(discord.Object(id=role_id), reason="Badge requirements no longer met")
            summary.removed.append((member.id, badge.name))

    log.info("Badge role update for guild %s: %d members, %d added, %d removed%s",
             guild.id, summary.members, len(summary.added), len(summary.removed),
             " (dry run)" if summary.dry_run else "")
    return summary
