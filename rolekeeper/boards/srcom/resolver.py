# boards/srcom/resolver.py
# -----------------------------------------------------------------------------
#  Best run of a user on an already-fetched leaderboard.
#
#  With the "rank_gte" partner restriction a shared run only counts when no
#  co-player independently placed better than that run: a carried player must
#  not qualify through a stronger partner. A partner's standing is the same
#  query without restriction, so the recursion is one level deep and the memo
#  keeps a whole board at O(players) scans.
# -----------------------------------------------------------------------------

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Tuple

from rolekeeper.boards.srcom.models import Leaderboard, LeaderboardPlace, UserId


class PartnerRestriction(str, Enum):
    RANK_GTE = "rank_gte"


HighestRunMemo = Dict[Tuple[UserId, Optional[PartnerRestriction]], Optional[LeaderboardPlace]]


def get_highest_run(leaderboard: Leaderboard,
                    user_id: UserId,
                    partner_restriction: Optional[PartnerRestriction] = None,
                    memo: Optional[HighestRunMemo] = None) -> Optional[LeaderboardPlace]:
    """
    Best (lowest ``place``) verified run of ``user_id`` on ``leaderboard``.

    Args:
        leaderboard: Leaderboard to scan
        user_id: speedrun.com user id
        partner_restriction: Optional restriction on the run's co-players
        memo: Per-leaderboard memo, shared between calls on the same board

    Returns:
        The matching place, or None if the user has no qualifying run
    """
    if memo is None:
        memo = {}

    key = (user_id, partner_restriction)
    if key in memo:
        return memo[key]

    best = _scan(leaderboard, user_id, partner_restriction, memo)
    memo[key] = best
    return best


def _scan(leaderboard: Leaderboard,
          user_id: UserId,
          partner_restriction: Optional[PartnerRestriction],
          memo: HighestRunMemo) -> Optional[LeaderboardPlace]:
    best: Optional[LeaderboardPlace] = None

    # Places are not assumed to be sorted; first seen wins on equal places
    for entry in leaderboard.runs:
        run = entry.run
        if not run.status.verified or not run.has_player(user_id):
            continue
        if best is not None and entry.place >= best.place:
            continue

        if partner_restriction is PartnerRestriction.RANK_GTE \
                and not _partners_rank_gte(leaderboard, entry, user_id, memo):
            continue

        best = entry

    return best


def _partners_rank_gte(leaderboard: Leaderboard,
                       entry: LeaderboardPlace,
                       user_id: UserId,
                       memo: HighestRunMemo) -> bool:
    for partner in entry.run.partner_ids(user_id):
        partner_best = get_highest_run(leaderboard, partner, None, memo)
        if partner_best is not None and partner_best.place < entry.place:
            return False
    return True
