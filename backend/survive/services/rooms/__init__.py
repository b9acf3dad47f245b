"""Room domain services: store, roster, turn engine, timers and boosts.

Transport-free game mechanics. Socket handlers and HTTP routes call into
``TurnEngine``; nothing in this package imports Flask.
"""

from .engine import TurnEngine
from .ledger import BoostGrant, BoostLedger
from .roster import JoinOutcome
from .scheduler import BackgroundScheduler, TimerHandle
from .state import ANIMAL_POOL, INITIAL_ANIMAL, PendingCall, Player, Room, RoomStatus
from .store import RoomStore

__all__ = [
    'ANIMAL_POOL',
    'BackgroundScheduler',
    'BoostGrant',
    'BoostLedger',
    'INITIAL_ANIMAL',
    'JoinOutcome',
    'PendingCall',
    'Player',
    'Room',
    'RoomStatus',
    'RoomStore',
    'TimerHandle',
    'TurnEngine',
]
