"""Tests for the cached Challenge Mode boards state."""

import asyncio
import datetime as dt
import logging

import pytest

from factories import FakeClock, aggregate_payload, mock_cm_client
from rolekeeper.boards.cm.models import CmLeaderboard
from rolekeeper.boards.cm.state import CmBoardsState, parse_steam_id
from rolekeeper.errors import DataIntegrityError, TransportError, UpstreamFormatError

TTL = dt.timedelta(minutes=15)
STEAM_ID = "76561198040000001"


@pytest.fixture
def client():
    client = mock_cm_client()
    client.get_aggregate.return_value = aggregate_payload({STEAM_ID: 150, "76561198040000002": 90})
    return client


@pytest.fixture
def state(client):
    return CmBoardsState(TTL, client, FakeClock())


class TestParseSteamId:
    def test_numeric(self):
        assert parse_steam_id(STEAM_ID) == 76561198040000001

    def test_invalid(self):
        with pytest.raises(DataIntegrityError):
            parse_steam_id("not-a-number")


@pytest.mark.asyncio
class TestAggregates:
    async def test_aggregate_is_parsed_and_cached(self, state, client):
        aggregate = await state.fetch_aggregate(CmLeaderboard.OVERALL)
        again = await state.fetch_aggregate(CmLeaderboard.OVERALL)

        assert aggregate is again
        assert aggregate.place(STEAM_ID).score_data.score == 150
        client.get_aggregate.assert_awaited_once_with(CmLeaderboard.OVERALL)

    async def test_aggregate_populates_profiles(self, state, client):
        await state.fetch_aggregate(CmLeaderboard.COOP)

        profile = await state.fetch_profile(parse_steam_id(STEAM_ID))
        assert profile.board_name == "player01"
        client.get_profile.assert_not_awaited()

    async def test_invalid_steam_id_in_aggregate(self, state, client):
        client.get_aggregate.return_value = aggregate_payload({"garbage": 10})
        with pytest.raises(DataIntegrityError):
            await state.fetch_aggregate(CmLeaderboard.OVERALL)

    async def test_malformed_aggregate(self, state, client):
        client.get_aggregate.return_value = {"points": []}
        with pytest.raises(UpstreamFormatError):
            await state.fetch_aggregate(CmLeaderboard.OVERALL)

    async def test_refresh_ignores_freshness(self, state, client):
        for lb in CmLeaderboard:
            await state.fetch_aggregate(lb)
        await state.refresh_aggregates()

        assert client.get_aggregate.await_count == 6
        assert state.has_aggregates()


@pytest.mark.asyncio
class TestProfiles:
    async def test_fetch_profile(self, state, client):
        profile = await state.fetch_profile(1234)
        assert profile.board_name == "steam1234"
        client.get_profile.assert_awaited_once_with(1234)

    async def test_active_profiles_accepts_both_shapes(self, state, client):
        client.get_active_profiles.return_value = {"profiles": ["1", {"profile_number": "2"}]}

        assert await state.fetch_active_profiles(3) == frozenset({"1", "2"})
        client.get_active_profiles.assert_awaited_once_with(3)

    async def test_active_profiles_cached_per_window(self, state, client):
        await state.fetch_active_profiles(3)
        await state.fetch_active_profiles(3)
        await state.fetch_active_profiles(6)
        assert client.get_active_profiles.await_count == 2


@pytest.mark.asyncio
class TestRefreshLoop:
    async def test_failed_pass_is_logged_and_loop_continues(self, state, client, caplog):
        payload = client.get_aggregate.return_value
        calls = 0

        async def get_aggregate(leaderboard):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise TransportError("https://board.portal2.sr/aggregated/overall/json", "HTTP 502: Bad Gateway", 502)
            return payload

        client.get_aggregate.side_effect = get_aggregate

        with caplog.at_level(logging.ERROR, logger="rolekeeper.boards.cm.state"):
            task = state.schedule_refresh(dt.timedelta(milliseconds=10))
            assert state.schedule_refresh(dt.timedelta(milliseconds=10)) is task
            for _ in range(50):
                await asyncio.sleep(0.01)
                if state.has_aggregates():
                    break
            await state.stop_refresh()

        assert state.has_aggregates()
        assert "Failed to refresh CM aggregates" in caplog.text
        assert task.done()

    async def test_close_stops_refresh(self, state, client):
        task = state.schedule_refresh(dt.timedelta(minutes=15))
        await asyncio.sleep(0)
        await state.close()

        assert task.done()
        client.close.assert_awaited_once()
