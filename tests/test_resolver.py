"""Tests for best-run resolution on a speedrun.com leaderboard."""

from unittest.mock import patch

from factories import leaderboard, place_payload
from rolekeeper.boards.srcom import resolver
from rolekeeper.boards.srcom.resolver import PartnerRestriction, get_highest_run


class TestGetHighestRun:
    def test_lowest_place_wins(self):
        board = leaderboard([
            place_payload(4, "r4", ["alice"]),
            place_payload(2, "r2", ["alice"]),
            place_payload(3, "r3", ["bob"]),
        ])
        assert get_highest_run(board, "alice").run.id == "r2"

    def test_no_run_returns_none(self):
        board = leaderboard([place_payload(1, "r1", ["bob"])])
        assert get_highest_run(board, "alice") is None

    def test_unverified_runs_are_ignored(self):
        board = leaderboard([
            place_payload(1, "r1", ["alice"], status="new"),
            place_payload(2, "r2", ["alice"], status="rejected"),
            place_payload(5, "r5", ["alice"]),
        ])
        assert get_highest_run(board, "alice").place == 5

    def test_equal_places_keep_first_seen(self):
        board = leaderboard([
            place_payload(3, "first", ["alice", "bob"]),
            place_payload(3, "second", ["alice", "carol"]),
        ])
        assert get_highest_run(board, "alice").run.id == "first"


class TestPartnerRestriction:
    def test_stronger_partner_rejects_the_run(self):
        """alice's place 3 run is dropped: bob placed 1st without her."""
        board = leaderboard([
            place_payload(1, "bob-solo", ["bob", "dave"]),
            place_payload(3, "carry", ["alice", "bob"]),
            place_payload(6, "own", ["alice", "carol"]),
        ])

        assert get_highest_run(board, "alice").run.id == "carry"
        restricted = get_highest_run(board, "alice", PartnerRestriction.RANK_GTE)
        assert restricted.run.id == "own"

    def test_partner_at_same_place_is_allowed(self):
        board = leaderboard([place_payload(2, "duo", ["alice", "bob"])])
        assert get_highest_run(board, "alice", PartnerRestriction.RANK_GTE).place == 2

    def test_three_way_partner_cycle(self):
        """Partners linked in a ring resolve without looping, in any query order."""
        board = leaderboard([
            place_payload(1, "ab", ["alice", "bob"]),
            place_payload(2, "bc", ["bob", "carol"]),
            place_payload(3, "ca", ["carol", "alice"]),
        ])
        expected = {"alice": "ab", "bob": "ab", "carol": None}

        for order in (["alice", "bob", "carol"], ["carol", "bob", "alice"]):
            memo = {}
            for user in order:
                place = get_highest_run(board, user, PartnerRestriction.RANK_GTE, memo)
                assert (place.run.id if place else None) == expected[user]

    def test_every_run_rejected_returns_none(self):
        board = leaderboard([
            place_payload(1, "bob-best", ["bob", "erin"]),
            place_payload(4, "carry", ["alice", "bob"]),
        ])
        assert get_highest_run(board, "alice", PartnerRestriction.RANK_GTE) is None

    def test_shared_best_run_terminates(self):
        """Two players whose best run is the same run check each other once."""
        board = leaderboard([place_payload(1, "duo", ["alice", "bob"])])
        memo = {}

        assert get_highest_run(board, "alice", PartnerRestriction.RANK_GTE, memo).run.id == "duo"
        assert get_highest_run(board, "bob", PartnerRestriction.RANK_GTE, memo).run.id == "duo"

    def test_guests_are_not_partners(self):
        payload = place_payload(2, "duo", ["alice"])
        payload["run"]["players"].append({"rel": "guest", "name": "SomeGuest"})
        board = leaderboard([place_payload(1, "other", ["bob"]), payload])

        assert get_highest_run(board, "alice", PartnerRestriction.RANK_GTE).place == 2


class TestMemo:
    def test_repeated_queries_scan_once(self):
        board = leaderboard([place_payload(1, "r1", ["alice"])])
        memo = {}

        with patch.object(resolver, "_scan", wraps=resolver._scan) as scan:
            first = get_highest_run(board, "alice", None, memo)
            second = get_highest_run(board, "alice", None, memo)

        assert first is second
        assert scan.call_count == 1

    def test_none_results_are_memoized(self):
        board = leaderboard([place_payload(1, "r1", ["bob"])])
        memo = {}

        with patch.object(resolver, "_scan", wraps=resolver._scan) as scan:
            get_highest_run(board, "alice", None, memo)
            get_highest_run(board, "alice", None, memo)

        assert scan.call_count == 1
        assert memo[("alice", None)] is None

    def test_partner_lookups_are_shared(self):
        """Partners resolved for one player are reused for the next."""
        board = leaderboard([
            place_payload(1, "a", ["alice", "bob"]),
            place_payload(2, "b", ["carol", "bob"]),
        ])
        memo = {}
        get_highest_run(board, "alice", PartnerRestriction.RANK_GTE, memo)
        assert ("bob", None) in memo

        with patch.object(resolver, "_scan", wraps=resolver._scan) as scan:
            result = get_highest_run(board, "carol", PartnerRestriction.RANK_GTE, memo)

        assert result is None
        # carol (restricted) is scanned, bob comes from the memo
        assert scan.call_count == 1


class TestDocumentedCases:
    def test_unverified_best_is_skipped(self):
        board = leaderboard([
            place_payload(5, "five", ["a"]),
            place_payload(2, "two", ["a"]),
            place_payload(9, "nine", ["a"], status="new"),
        ])
        assert get_highest_run(board, "a").place == 2

    def test_carried_player_falls_back_to_own_run(self):
        board = leaderboard([
            place_payload(1, "b-best", ["b"]),
            place_payload(3, "shared", ["a", "b"]),
            place_payload(10, "a-other", ["a"]),
        ])

        assert get_highest_run(board, "a", PartnerRestriction.RANK_GTE).place == 10
        assert get_highest_run(board, "b", PartnerRestriction.RANK_GTE).place == 1
