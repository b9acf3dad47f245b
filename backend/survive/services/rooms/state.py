import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


INITIAL_ANIMAL = 'Aardvark'
ANIMAL_POOL = (
    'Aardvark', 'Lion', 'Tiger', 'Bear', 'Wolf', 'Fox',
    'Owl', 'Otter', 'Panda', 'Zebra', 'Koala', 'Moose',
)


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    ACTIVE = 'active'
    ENDED = 'ended'


@dataclass
class Player:
    """A seat in a room. ``is_center`` is derived from the room, never stored."""
    name: str
    points: int
    animal: Optional[str] = None
    has_boost: bool = False
    session_token: Optional[str] = None
    connected: bool = True
    disconnected_at: Optional[float] = None

    def to_dict(self, is_center: bool = False):
        return {
            'name': self.name,
            'points': self.points,
            'animal': self.animal,
            'isCenter': is_center,
            'hasBoost': self.has_boost,
            'connected': self.connected,
        }


@dataclass
class PendingCall:
    call_id: str
    caller: str
    target: str
    issued_at: float
    deadline: float
    timer: Any = None

    def to_dict(self):
        return {'caller': self.caller, 'target': self.target, 'deadline': self.deadline}


@dataclass
class Room:
    id: str
    timer_seconds: int
    created_at: float
    players: List[Player] = field(default_factory=list)
    center_index: int = 0
    status: RoomStatus = RoomStatus.WAITING
    start_time: Optional[float] = None
    round: int = 0
    pending_call: Optional[PendingCall] = None
    last_called: Optional[dict] = None
    end_timer: Any = None
    lock: Any = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def ends_at(self) -> Optional[float]:
        if self.start_time is None:
            return None
        return self.start_time + self.timer_seconds

    @property
    def center(self) -> Optional[Player]:
        if not self.players:
            return None
        return self.players[self.center_index]

    def is_center(self, player: Player) -> bool:
        return self.center is player

    def standings(self):
        ranked = sorted(self.players, key=lambda p: p.points, reverse=True)
        return [{'name': p.name, 'points': p.points, 'animal': p.animal} for p in ranked]

    def to_dict(self):
        return {
            'gameId': self.id,
            'status': self.status.value,
            'round': self.round,
            'timerSeconds': self.timer_seconds,
            'startTime': self.start_time,
            'endsAt': self.ends_at,
            'centerIndex': self.center_index if self.players else None,
            'pendingCall': self.pending_call.to_dict() if self.pending_call else None,
            'lastCalled': self.last_called,
            'players': [p.to_dict(is_center=(i == self.center_index)) for i, p in enumerate(self.players)],
        }
