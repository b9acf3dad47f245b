"""Player roster helpers.

Plain functions over a Room. Callers hold the room lock; nothing here
locks on its own. Join order is significant because ``center_index``
points into ``room.players``.
"""

import secrets
from dataclasses import dataclass
from typing import Iterable, Optional

from survive.errors import PlayerNotFound, ValidationError
from .state import ANIMAL_POOL, Player, Room

MAX_NAME_LENGTH = 30


@dataclass
class JoinOutcome:
    player: Player
    already_exists: bool = False
    started: bool = False
    game: Optional[dict] = None


def validate_name(raw) -> str:
    if not isinstance(raw, str):
        raise ValidationError('playerName is required')
    name = raw.strip().replace('\r', '').replace('\n', '')
    if not name:
        raise ValidationError('playerName is required')
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f'playerName must be at most {MAX_NAME_LENGTH} characters')
    return name


def find_player(room: Room, name) -> Optional[Player]:
    for p in room.players:
        if p.name == name:
            return p
    return None


def index_of(room: Room, name) -> int:
    for i, p in enumerate(room.players):
        if p.name == name:
            return i
    return -1


def require_player(room: Room, name, error_cls=PlayerNotFound) -> Player:
    player = find_player(room, name)
    if player is None:
        raise error_cls(f'{error_cls.default_message}: {name}')
    return player


def find_by_token(room: Room, token) -> Optional[Player]:
    if not token:
        return None
    for p in room.players:
        if p.session_token and secrets.compare_digest(p.session_token, token):
            return p
    return None


def next_animal(room: Room, pool: Iterable[str] = ANIMAL_POOL) -> Optional[str]:
    taken = {p.animal for p in room.players}
    for animal in pool:
        if animal not in taken:
            return animal
    return None


def issue_token(room: Room, player: Player) -> str:
    while True:
        token = secrets.token_urlsafe(16)
        if find_by_token(room, token) is None:
            player.session_token = token
            return token


def add_player(room: Room, name, initial_points: int) -> JoinOutcome:
    """Append a player. A name already seated is reported, not re-added."""
    name = validate_name(name)
    existing = find_player(room, name)
    if existing is not None:
        return JoinOutcome(player=existing, already_exists=True)
    player = Player(name=name, points=initial_points, animal=next_animal(room))
    room.players.append(player)
    return JoinOutcome(player=player)


def remove_player(room: Room, name) -> Player:
    """Remove a player and keep ``center_index`` on exactly one seat.

    Seats after the removed one shift down. If the center leaves, the seat
    that slides into its index (wrapping to 0) becomes the new center.
    """
    idx = index_of(room, name)
    if idx == -1:
        raise PlayerNotFound(f'{PlayerNotFound.default_message}: {name}')
    player = room.players.pop(idx)
    if not room.players:
        room.center_index = 0
    elif idx < room.center_index:
        room.center_index -= 1
    elif idx == room.center_index and room.center_index >= len(room.players):
        room.center_index = 0
    return player
