import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional, Tuple

from survive.errors import (
    CallAlreadyPending,
    NoPendingCall,
    NotCenter,
    RoomNotActive,
    RoomNotFound,
    SessionNotFound,
    TargetMismatch,
    TargetNotFound,
    ValidationError,
)
from . import roster
from .ledger import BoostGrant, BoostLedger
from .roster import JoinOutcome
from .state import PendingCall, Player, Room, RoomStatus
from .store import RoomStore

Notify = Callable[[str, str, Dict[str, Any]], None]


class TurnEngine:
    """Authoritative rules for every room in the process.

    All mutations of a room happen under ``room.lock``. Timer callbacks
    (call timeout, round end, eviction, cleanup) re-validate what they
    were scheduled for before touching anything, so a stale timer is a
    no-op.

    ``notify(room_id, event, payload)`` is invoked outside the lock for
    events nobody asked for directly: timeout swaps, game end and players
    leaving. Results of client actions are returned to the caller instead.
    """

    def __init__(self, store: RoomStore, scheduler, ledger: Optional[BoostLedger] = None,
                 notify: Optional[Notify] = None, *, call_window: float = 10.0,
                 call_cost: int = 2, initial_points: int = 20, min_players: int = 2,
                 reconnect_grace: float = 30.0, ended_room_ttl: float = 300.0,
                 clock: Callable[[], float] = time.time, logger=None):
        self.store = store
        self.scheduler = scheduler
        self.ledger = ledger or BoostLedger()
        self.notify = notify or (lambda room_id, event, payload: None)
        self.call_window = call_window
        self.call_cost = call_cost
        self.initial_points = initial_points
        self.min_players = min_players
        self.reconnect_grace = reconnect_grace
        self.ended_room_ttl = ended_room_ttl
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config, scheduler, notify=None, logger=None, clock=time.time):
        store = RoomStore(
            initial_points=int(config.get('INITIAL_POINTS', 20)),
            max_timer_seconds=int(config.get('MAX_TIMER_SEC', 3600)),
            clock=clock,
        )
        return cls(
            store,
            scheduler,
            BoostLedger(int(config.get('BOOST_POINTS', 5))),
            notify,
            call_window=float(config.get('CALL_WINDOW_SEC', 10)),
            call_cost=int(config.get('CALL_COST_POINTS', 2)),
            initial_points=int(config.get('INITIAL_POINTS', 20)),
            min_players=int(config.get('MIN_PLAYERS', 2)),
            reconnect_grace=float(config.get('RECONNECT_GRACE_SEC', 30)),
            ended_room_ttl=float(config.get('ENDED_ROOM_TTL_SEC', 300)),
            clock=clock,
            logger=logger,
        )

    @contextmanager
    def _room(self, room_id):
        room = self.store.get(room_id)
        with room.lock:
            # Deleted while we waited for the lock
            if room.id not in self.store:
                raise RoomNotFound()
            yield room

    def _require_active(self, room: Room) -> None:
        if room.status != RoomStatus.ACTIVE:
            if room.status == RoomStatus.WAITING:
                raise RoomNotActive(f'Waiting for {self.min_players} players')
            raise RoomNotActive('Game has ended')

    # ---- Lifecycle ----

    def create_room(self, player_name, timer_seconds, connected: bool = True) -> Tuple[Room, Player]:
        room = self.store.create(player_name, timer_seconds)
        with room.lock:
            player = room.players[0]
            roster.issue_token(room, player)
            if not connected:
                self._mark_disconnected(room, player)
        self.logger.info(f"[create] room={room.id} player={player.name} timer={room.timer_seconds}s")
        return room, player

    def join(self, room_id, player_name) -> JoinOutcome:
        with self._room(room_id) as room:
            if room.status == RoomStatus.ENDED:
                raise RoomNotActive('Game has ended')
            outcome = roster.add_player(room, player_name, self.initial_points)
            if outcome.already_exists:
                self.logger.info(f"[join-dup] room={room.id} player={outcome.player.name}")
                return outcome
            roster.issue_token(room, outcome.player)
            outcome.started = self._maybe_start(room)
            outcome.game = room.to_dict()
        self.logger.info(f"[join] room={room_id} player={outcome.player.name} started={outcome.started}")
        return outcome

    def _maybe_start(self, room: Room) -> bool:
        if room.status != RoomStatus.WAITING or len(room.players) < self.min_players:
            return False
        room.status = RoomStatus.ACTIVE
        room.start_time = self.clock()
        room.round = 1
        room.end_timer = self.scheduler.schedule(
            room.timer_seconds, self.end_round, room.id, room.start_time,
            label=f"round-end room={room.id}",
        )
        return True

    def end_round(self, room_id, start_time) -> bool:
        """Round timer callback: end the room if it is still the same round."""
        try:
            with self._room(room_id) as room:
                if room.status != RoomStatus.ACTIVE or room.start_time != start_time:
                    self.logger.info(f"[end-abort] room={room_id} status={room.status.value}")
                    return False
                self._end(room)
                payload = {'reason': 'timer', 'standings': room.standings(), 'game': room.to_dict()}
        except RoomNotFound:
            return False
        self.notify(room_id, 'gameEnded', payload)
        return True

    def _end(self, room: Room) -> None:
        room.status = RoomStatus.ENDED
        self._cancel_call(room)
        if room.end_timer is not None:
            room.end_timer.cancel()
            room.end_timer = None
        self.logger.info(f"[finish] room={room.id} round={room.round}")
        self.scheduler.schedule(self.ended_room_ttl, self.discard_ended, room.id,
                                label=f"cleanup room={room.id}")

    def discard_ended(self, room_id) -> bool:
        try:
            with self._room(room_id) as room:
                if room.status != RoomStatus.ENDED:
                    return False
                self.store.delete(room.id)
        except RoomNotFound:
            return False
        self.logger.info(f"[discard] room={room_id}")
        return True

    def snapshot(self, room_id) -> dict:
        with self._room(room_id) as room:
            return room.to_dict()

    # ---- Turn actions ----

    def call(self, room_id, actor, target_name) -> dict:
        with self._room(room_id) as room:
            self._require_active(room)
            caller = roster.require_player(room, actor)
            if not room.is_center(caller):
                raise NotCenter()
            if room.pending_call is not None:
                raise CallAlreadyPending(f'{room.pending_call.target} has already been called')
            target = roster.require_player(room, target_name, TargetNotFound)
            if target is caller:
                raise ValidationError('You cannot call yourself')
            now = self.clock()
            call = PendingCall(
                call_id=uuid.uuid4().hex,
                caller=caller.name,
                target=target.name,
                issued_at=now,
                deadline=now + self.call_window,
            )
            call.timer = self.scheduler.schedule(
                self.call_window, self.expire_call, room.id, call.call_id,
                label=f"call room={room.id} target={target.name}",
            )
            room.pending_call = call
            self.logger.info(f"[call] room={room.id} caller={caller.name} target={target.name} deadline={call.deadline}")
            return room.to_dict()

    def tap(self, room_id, actor, target_name) -> dict:
        with self._room(room_id) as room:
            self._require_active(room)
            call = room.pending_call
            if call is None:
                raise NoPendingCall()
            target = roster.require_player(room, target_name, TargetNotFound)
            if target.name != call.target:
                raise TargetMismatch(f'{target.name} was not called')
            tapper = roster.require_player(room, actor)
            if not (room.is_center(tapper) or tapper is target):
                raise NotCenter('Only the center or the called player may tap')
            self._resolve(room, 'tap')
            return room.to_dict()

    def expire_call(self, room_id, call_id) -> bool:
        """Call-window callback. Resolves the call exactly as a tap would."""
        try:
            with self._room(room_id) as room:
                call = room.pending_call
                if room.status != RoomStatus.ACTIVE or call is None or call.call_id != call_id:
                    self.logger.info(f"[call-expire-skip] room={room_id} call={call_id}")
                    return False
                record = self._resolve(room, 'timeout')
                payload = dict(record, game=room.to_dict())
        except RoomNotFound:
            return False
        self.notify(room_id, 'animalSwitched', payload)
        return True

    def _resolve(self, room: Room, reason: str) -> dict:
        call = room.pending_call
        center = room.center
        target_idx = roster.index_of(room, call.target)
        target = room.players[target_idx]

        center.animal, target.animal = target.animal, center.animal
        room.center_index = target_idx
        target.points = max(0, target.points - self.call_cost)
        self._cancel_call(room)

        record = {
            'caller': center.name,
            'target': target.name,
            'reason': reason,
            'round': room.round,
            'at': self.clock(),
        }
        room.round += 1
        room.last_called = record
        self.logger.info(
            f"[swap] room={room.id} from={center.name} to={target.name} reason={reason} "
            f"points={target.points} round={room.round}"
        )
        return record

    def _cancel_call(self, room: Room) -> None:
        call = room.pending_call
        if call is None:
            return
        if call.timer is not None:
            call.timer.cancel()
        room.pending_call = None

    # ---- Boosts ----

    def grant_boost(self, room_id, player_name) -> BoostGrant:
        with self._room(room_id) as room:
            grant = self.ledger.grant(room, player_name)
        self.logger.info(f"[boost] room={room_id} player={player_name} applied={grant.applied} points={grant.points}")
        return grant

    # ---- Connection liveness ----

    def disconnect(self, room_id, player_name) -> Optional[dict]:
        """Mark a player offline and start their reconnect grace period."""
        with self._room(room_id) as room:
            player = roster.find_player(room, player_name)
            if player is None or not player.connected:
                return None
            self._mark_disconnected(room, player)
            return room.to_dict()

    def _mark_disconnected(self, room: Room, player: Player) -> None:
        player.connected = False
        player.disconnected_at = self.clock()
        self.scheduler.schedule(
            self.reconnect_grace, self.evict_if_disconnected,
            room.id, player.name, player.disconnected_at,
            label=f"evict room={room.id} player={player.name}",
        )

    def resume(self, room_id, session_token) -> Tuple[str, dict]:
        with self._room(room_id) as room:
            player = roster.find_by_token(room, session_token)
            if player is None:
                raise SessionNotFound()
            player.connected = True
            player.disconnected_at = None
            self.logger.info(f"[resume] room={room.id} player={player.name}")
            return player.name, room.to_dict()

    def evict_if_disconnected(self, room_id, player_name, disconnected_at) -> bool:
        try:
            with self._room(room_id) as room:
                player = roster.find_player(room, player_name)
                if player is None or player.connected or player.disconnected_at != disconnected_at:
                    return False
                removal = self._remove(room, player_name, 'disconnected')
        except RoomNotFound:
            return False
        self._announce_removal(room_id, removal)
        return True

    def leave(self, room_id, player_name) -> dict:
        with self._room(room_id) as room:
            roster.require_player(room, player_name)
            removal = self._remove(room, player_name, 'left')
        self._announce_removal(room_id, removal)
        return removal

    def _remove(self, room: Room, player_name, reason: str) -> dict:
        call = room.pending_call
        if call is not None and player_name in (call.caller, call.target):
            self._cancel_call(room)
        roster.remove_player(room, player_name)
        removal = {'playerName': player_name, 'reason': reason, 'ended': False, 'deleted': False}
        if not room.players:
            self._cancel_call(room)
            if room.end_timer is not None:
                room.end_timer.cancel()
                room.end_timer = None
            self.store.delete(room.id)
            removal['deleted'] = True
        elif room.status == RoomStatus.ACTIVE and len(room.players) < self.min_players:
            self._end(room)
            removal['ended'] = True
        removal['game'] = room.to_dict()
        removal['standings'] = room.standings()
        self.logger.info(f"[evict] room={room.id} player={player_name} reason={reason} "
                         f"ended={removal['ended']} deleted={removal['deleted']}")
        return removal

    def _announce_removal(self, room_id, removal: dict) -> None:
        if removal['deleted']:
            return
        self.notify(room_id, 'playerLeft', {
            'playerName': removal['playerName'],
            'reason': removal['reason'],
            'game': removal['game'],
        })
        if removal['ended']:
            self.notify(room_id, 'gameEnded', {
                'reason': 'not_enough_players',
                'standings': removal['standings'],
                'game': removal['game'],
            })
