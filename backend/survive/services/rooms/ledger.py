from dataclasses import dataclass

from .roster import require_player
from .state import Room


@dataclass
class BoostGrant:
    applied: bool
    points: int


class BoostLedger:
    """One-shot per-player score bonus.

    Granting is idempotent per player: the second grant reports
    ``applied=False`` and leaves points alone. The bonus is not clamped
    upward. Callers hold the room lock.
    """

    def __init__(self, boost_points: int = 5):
        self.boost_points = boost_points

    def grant(self, room: Room, player_name) -> BoostGrant:
        player = require_player(room, player_name)
        if player.has_boost:
            return BoostGrant(applied=False, points=player.points)
        player.points += self.boost_points
        player.has_boost = True
        return BoostGrant(applied=True, points=player.points)
