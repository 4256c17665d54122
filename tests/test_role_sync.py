"""Tests for the badge role sync against a mocked guild."""

import datetime as dt
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from factories import FakeConnection
from rolekeeper.analyzer.role_definition import load_definition
from rolekeeper.analyzer.user import AggregateScoreCause, AnalyzedBadge, AnalyzedUser, MetRequirement, group_connections
from rolekeeper.boards.cm.models import CmLeaderboard
from rolekeeper.server_config import ServerConfig
from rolekeeper.services.role_sync import update_badge_roles

DEFINITION = load_definition("""{ badges: [
  { name: "CM", requirements: [{ type: "points", leaderboard: "Overall", points: 100 }] },
  { name: "Legend", requirements: [{ type: "manual" }] },
  { name: "Unmapped", requirements: [{ type: "points", leaderboard: "Coop", points: 1 }] },
] }""")
CM, LEGEND, UNMAPPED = DEFINITION.badges
CM_ROLE, LEGEND_ROLE = 111, 222


def _member(member_id, role_ids=(), bot=False):
    member = MagicMock()
    member.id = member_id
    member.bot = bot
    member.display_name = f"member{member_id}"
    member.roles = [SimpleNamespace(id=r) for r in role_ids]
    member.add_roles = AsyncMock()
    member.remove_roles = AsyncMock()
    return member


def _guild(members):
    async def fetch_members(limit=None):
        for member in members:
            yield member

    guild = MagicMock()
    guild.id = 9000
    guild.fetch_members = MagicMock(side_effect=fetch_members)
    return guild


def _analysis(earners, badges):
    """analyze_user stand-in: members in ``earners`` meet the first requirement of each badge."""
    async def analyze(user_id, *args, **kwargs):
        met = [AnalyzedBadge(b, [MetRequirement(b.requirements[0], AggregateScoreCause(CmLeaderboard.OVERALL, 150, 3))])
               for b in badges] if user_id in earners else []
        return AnalyzedUser(user_id, [], met)
    return AsyncMock(side_effect=analyze)


async def _sync(guild, earners, badges, config=None, manual=()):
    config = config or ServerConfig(badge_roles={"CM": CM_ROLE, "Legend": LEGEND_ROLE})
    analyze = _analysis(earners, badges)
    with patch("rolekeeper.services.role_sync.analyze_user", analyze):
        summary = await update_badge_roles(guild, DEFINITION, config, [], manual, MagicMock(), MagicMock())
    return summary, analyze


class TestGroupConnections:
    def test_groups_active_links_by_user(self):
        grouped = group_connections([
            FakeConnection(1, "srcom", "a"),
            FakeConnection(1, "steam", "7"),
            FakeConnection(2, "srcom", "b", removed=True),
        ])
        assert [c.external_id for c in grouped[1]] == ["a", "7"]
        assert 2 not in grouped


@pytest.mark.asyncio
class TestUpdateBadgeRoles:
    async def test_adds_missing_role(self):
        member = _member(1)
        summary, _ = await _sync(_guild([member]), {1}, [CM])

        member.add_roles.assert_awaited_once()
        role = member.add_roles.await_args.args[0]
        assert role.id == CM_ROLE
        assert member.add_roles.await_args.kwargs["reason"] == "100 Overall CM points"
        assert summary.added == [(1, "CM")]

    async def test_existing_role_is_left_alone(self):
        member = _member(1, [CM_ROLE])
        summary, _ = await _sync(_guild([member]), {1}, [CM])

        member.add_roles.assert_not_awaited()
        member.remove_roles.assert_not_awaited()
        assert summary.added == [] and summary.removed == []

    async def test_removes_role_no_longer_met(self):
        member = _member(1, [CM_ROLE])
        summary, _ = await _sync(_guild([member]), set(), [CM])

        member.remove_roles.assert_awaited_once()
        assert member.remove_roles.await_args.args[0].id == CM_ROLE
        assert summary.removed == [(1, "CM")]

    async def test_manual_badges_are_never_removed(self):
        member = _member(1, [LEGEND_ROLE])
        summary, _ = await _sync(_guild([member]), set(), [])

        member.remove_roles.assert_not_awaited()
        assert summary.removed == []

    async def test_manual_assignment_keeps_role(self):
        member = _member(1, [CM_ROLE])
        assigned = SimpleNamespace(user_id=1, role_id=CM_ROLE, assigned_on=dt.datetime(2024, 1, 2), note="event winner")

        summary, _ = await _sync(_guild([member]), set(), [CM], manual=[assigned])

        member.remove_roles.assert_not_awaited()
        (user_id, badge, cause), = summary.kept_manual
        assert (user_id, badge) == (1, "CM")
        assert str(cause) == "Manually assigned on 2024-01-02: event winner"

    async def test_dry_run_changes_nothing(self):
        adds, drops = _member(1), _member(2, [CM_ROLE])
        config = ServerConfig(badge_roles={"CM": CM_ROLE}, dry_run=True)

        summary, _ = await _sync(_guild([adds, drops]), {1}, [CM], config=config)

        adds.add_roles.assert_not_awaited()
        drops.remove_roles.assert_not_awaited()
        assert summary.dry_run
        assert summary.added == [(1, "CM")] and summary.removed == [(2, "CM")]

    async def test_bots_are_skipped(self):
        bot = _member(1, bot=True)
        summary, analyze = await _sync(_guild([bot]), {1}, [CM])

        analyze.assert_not_awaited()
        bot.add_roles.assert_not_awaited()
        assert summary.members == 0

    async def test_badges_without_role_are_ignored(self):
        member = _member(1)
        summary, _ = await _sync(_guild([member]), {1}, [UNMAPPED])

        member.add_roles.assert_not_awaited()
        assert summary.added == []

    async def test_role_sync_is_not_exhaustive(self):
        summary, analyze = await _sync(_guild([_member(1)]), {1}, [CM])
        assert analyze.await_args.kwargs["exhaustive"] is False
