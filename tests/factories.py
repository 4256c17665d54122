"""Payload builders and fakes shared by the test modules."""

import datetime as dt
from dataclasses import dataclass
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from rolekeeper.boards.srcom.models import Leaderboard

GAME = "om1m3625"
CATEGORY = "jzd33ndn"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[dt.datetime] = None):
        self.now = start or dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)


@dataclass
class FakeConnection:
    user_id: int
    connection_type: str
    external_id: str
    removed: bool = False


def user_payload(user_id: str) -> Dict:
    return {
        "id": user_id,
        "names": {"international": user_id.capitalize()},
        "weblink": f"https://www.speedrun.com/user/{user_id}",
    }


def run_payload(run_id: str, players: List[str], status: str = "verified", primary_t: float = 60.0,
                date: Optional[str] = "2024-05-01", submitted: Optional[str] = None,
                game: str = GAME, category: str = CATEGORY) -> Dict:
    return {
        "id": run_id,
        "weblink": f"https://www.speedrun.com/run/{run_id}",
        "game": game,
        "category": category,
        "status": {"status": status},
        "players": [{"rel": "user", "id": p, "uri": f"https://www.speedrun.com/api/v1/users/{p}"}
                    for p in players],
        "date": date,
        "submitted": submitted,
        "times": {"primary": f"PT{primary_t}S", "primary_t": primary_t},
        "values": {},
    }


def place_payload(place: int, run_id: str, players: List[str], **kwargs) -> Dict:
    return {"place": place, "run": run_payload(run_id, players, **kwargs)}


def leaderboard_payload(places: List[Dict], game: str = GAME, category: str = CATEGORY) -> Dict:
    player_ids = []
    for entry in places:
        for p in entry["run"]["players"]:
            if p.get("rel") == "user" and p["id"] not in player_ids:
                player_ids.append(p["id"])

    return {
        "weblink": f"https://www.speedrun.com/{game}#{category}",
        "game": {"data": {"id": game, "names": {"international": "Portal 2"},
                          "weblink": f"https://www.speedrun.com/{game}"}},
        "category": {"data": {"id": category, "name": "Inbounds",
                              "weblink": f"https://www.speedrun.com/{game}#{category}"}},
        "runs": places,
        "players": {"data": [dict(user_payload(p), rel="user") for p in player_ids]},
        "variables": {"data": []},
    }


def leaderboard(places: List[Dict], **kwargs) -> Leaderboard:
    return Leaderboard.model_validate(leaderboard_payload(places, **kwargs))


def aggregate_payload(scores: Dict[str, int]) -> Dict:
    ranked = sorted(scores.items(), key=lambda kv: -kv[1])
    return {"Points": {
        steam_id: {
            "userData": {"boardname": f"player{steam_id[-2:]}", "avatar": None},
            "scoreData": {"score": score, "playerRank": rank, "scoreRank": rank},
        }
        for rank, (steam_id, score) in enumerate(ranked, start=1)
    }}


def mock_srcom_client() -> MagicMock:
    client = MagicMock()
    client.get_leaderboard = AsyncMock()
    client.get_game = AsyncMock()
    client.get_category = AsyncMock()
    client.get_user = AsyncMock(side_effect=lambda uid: user_payload(uid))
    client.get_variable = AsyncMock()
    client.get_user_runs = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


def mock_cm_client() -> MagicMock:
    client = MagicMock()
    client.get_aggregate = AsyncMock(return_value=aggregate_payload({}))
    client.get_active_profiles = AsyncMock(return_value={"profiles": []})
    client.get_profile = AsyncMock(side_effect=lambda sid: {
        "profileNumber": str(sid), "userData": {"boardname": f"steam{sid}", "avatar": None}})
    client.close = AsyncMock()
    return client
