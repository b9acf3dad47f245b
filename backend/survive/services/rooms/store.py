import threading
import time
import uuid
from typing import Callable, Dict

from survive.errors import RoomNotFound, ValidationError
from .state import INITIAL_ANIMAL, Player, Room
from .roster import validate_name


class RoomStore:
    """Process-wide mapping of room id to Room.

    The store lock only guards the mapping itself; mutating a room is done
    under that room's own lock so unrelated rooms never contend.
    """

    def __init__(self, initial_points: int = 20, max_timer_seconds: int = 3600,
                 clock: Callable[[], float] = time.time):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._initial_points = initial_points
        self._max_timer_seconds = max_timer_seconds
        self._clock = clock

    def create(self, initial_player_name: str, timer_seconds) -> Room:
        name = validate_name(initial_player_name)
        try:
            timer_seconds = int(timer_seconds)
        except (TypeError, ValueError):
            raise ValidationError('gameTimer must be a number of seconds')
        if timer_seconds <= 0 or timer_seconds > self._max_timer_seconds:
            raise ValidationError(f'gameTimer must be between 1 and {self._max_timer_seconds} seconds')

        room = Room(id=str(uuid.uuid4()), timer_seconds=timer_seconds, created_at=self._clock())
        room.players.append(Player(name=name, points=self._initial_points, animal=INITIAL_ANIMAL))
        room.center_index = 0
        with self._lock:
            self._rooms[room.id] = room
        return room

    def get(self, room_id) -> Room:
        room = self._rooms.get(room_id) if isinstance(room_id, str) else None
        if room is None:
            raise RoomNotFound()
        return room

    def delete(self, room_id) -> bool:
        with self._lock:
            return self._rooms.pop(room_id, None) is not None

    def __contains__(self, room_id):
        return room_id in self._rooms
