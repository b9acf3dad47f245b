import functools
import logging
import threading
from typing import Dict, Optional, Tuple

from flask import request
from flask_socketio import emit, join_room, leave_room

from survive.errors import (
    GameError,
    PaymentRequired,
    RoomNotFound,
    StateConflictError,
    ValidationError,
)

NAMESPACE = '/ws'


def room_channel(room_id: str) -> str:
    return f"game:{room_id}"


def _field(data: dict, *keys):
    """First non-empty value among ``keys``; clients use either naming."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return None


def _acked(handler):
    """Turn domain errors into a failed ack for the caller only."""
    @functools.wraps(handler)
    def wrapper(self, data=None):
        if data is not None and not isinstance(data, dict):
            return ValidationError('Payload must be an object').to_dict()
        try:
            return handler(self, data or {})
        except GameError as exc:
            self.logger.info(f"[reject] event={handler.__name__} sid={request.sid} code={exc.code} message={exc.message}")
            return exc.to_dict()
    return wrapper


class SessionGateway:
    """Socket.IO boundary between connected clients and the TurnEngine.

    Each connection is bound to one ``(room_id, player_name)`` once it
    creates, joins or resumes a game; that binding is the acting identity
    for calls and taps. Results go back as acks, and state changes are
    broadcast to the ``game:<id>`` channel.
    """

    def __init__(self, engine, socketio, namespace: str = NAMESPACE, logger=None,
                 default_timer: int = 600, boost_requires_payment: bool = False):
        self.engine = engine
        self.socketio = socketio
        self.namespace = namespace
        self.logger = logger or logging.getLogger(__name__)
        self.default_timer = default_timer
        self.boost_requires_payment = boost_requires_payment
        self._sid_to_ctx: Dict[str, Tuple[str, str]] = {}
        self._player_sid: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    # ---- Outbound ----

    def broadcast(self, room_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=room_channel(room_id), namespace=self.namespace)

    def notify_player(self, room_id: str, player_name: str, event: str, payload: dict) -> bool:
        sid = self._player_sid.get((room_id, player_name))
        if not sid:
            return False
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)
        return True

    # ---- Connection bookkeeping ----

    def _bind(self, sid: str, room_id: str, player_name: str) -> None:
        ctx = (room_id, player_name)
        with self._lock:
            previous = self._sid_to_ctx.get(sid)
            self._sid_to_ctx[sid] = ctx
            self._player_sid[ctx] = sid
            if previous and previous != ctx and self._player_sid.get(previous) == sid:
                self._player_sid.pop(previous, None)
            else:
                previous = None
        join_room(room_channel(room_id))
        if previous:
            # Connection moved to another game; the old seat goes offline
            leave_room(room_channel(previous[0]))
            self._mark_offline(*previous)

    def _unbind(self, sid: str) -> Optional[Tuple[str, str]]:
        """Drop a connection. Returns its context only if it was the player's live one."""
        with self._lock:
            ctx = self._sid_to_ctx.pop(sid, None)
            if ctx is None or self._player_sid.get(ctx) != sid:
                return None
            self._player_sid.pop(ctx, None)
            return ctx

    def _mark_offline(self, room_id: str, player_name: str) -> None:
        try:
            game = self.engine.disconnect(room_id, player_name)
        except RoomNotFound:
            return
        if game:
            self.broadcast(room_id, 'playerDisconnected', {'playerName': player_name, 'game': game})

    def _room_id(self, data: dict) -> str:
        room_id = _field(data, 'gameId', 'roomId')
        if not room_id or not isinstance(room_id, str):
            raise ValidationError('gameId is required')
        return room_id

    def _actor(self, room_id: str, claimed: Optional[str] = None) -> str:
        ctx = self._sid_to_ctx.get(request.sid)
        if ctx is None or ctx[0] != room_id:
            raise StateConflictError('Join this game first')
        if claimed and claimed != ctx[1]:
            raise ValidationError('fromPlayer does not match this connection')
        return ctx[1]

    # ---- Handlers ----

    def handle_connect(self, auth=None):
        emit('connected', {'message': f'Connected to {self.namespace}'})

    def handle_disconnect(self, reason=None):
        ctx = self._unbind(request.sid)
        if ctx:
            self.logger.info(f"[disconnect] sid={request.sid} room={ctx[0]} player={ctx[1]}")
            self._mark_offline(*ctx)

    @_acked
    def handle_create(self, data):
        timer = _field(data, 'gameTimer', 'timerSeconds')
        if timer is None:
            timer = self.default_timer
        room, player = self.engine.create_room(_field(data, 'playerName', 'name'), timer)
        self._bind(request.sid, room.id, player.name)
        return {
            'success': True,
            'gameId': room.id,
            'sessionToken': player.session_token,
            'game': self.engine.snapshot(room.id),
        }

    @_acked
    def handle_join(self, data):
        room_id = self._room_id(data)
        outcome = self.engine.join(room_id, _field(data, 'playerName', 'name'))
        name = outcome.player.name
        if outcome.already_exists:
            return {'success': False, 'error': 'already_exists', 'message': f'{name} is already in this game'}
        self._bind(request.sid, room_id, name)
        self.broadcast(room_id, 'playerJoined', {'playerName': name, 'game': outcome.game})
        if outcome.started:
            self.broadcast(room_id, 'gameStarted', {
                'startTime': outcome.game['startTime'],
                'endsAt': outcome.game['endsAt'],
                'game': outcome.game,
            })
        return {'success': True, 'sessionToken': outcome.player.session_token, 'game': outcome.game}

    @_acked
    def handle_call(self, data):
        room_id = self._room_id(data)
        actor = self._actor(room_id, data.get('fromPlayer'))
        target = _field(data, 'toPlayer', 'targetName')
        if not target:
            raise ValidationError('toPlayer is required')
        game = self.engine.call(room_id, actor, target)
        pending = game['pendingCall']
        self.broadcast(room_id, 'callIssued', {
            'caller': actor,
            'target': pending['target'],
            'deadline': pending['deadline'],
            'game': game,
        })
        return {'success': True, 'game': game}

    @_acked
    def handle_tap(self, data):
        room_id = self._room_id(data)
        actor = self._actor(room_id)
        target = _field(data, 'targetPlayer', 'targetName')
        if not target:
            raise ValidationError('targetPlayer is required')
        game = self.engine.tap(room_id, actor, target)
        self.broadcast(room_id, 'playerTapped', {
            'tapper': actor,
            'targetPlayer': target,
            'lastCalled': game['lastCalled'],
            'game': game,
        })
        return {'success': True, 'game': game}

    @_acked
    def handle_buy_boost(self, data):
        room_id = self._room_id(data)
        if self.boost_requires_payment:
            raise PaymentRequired()
        name = _field(data, 'playerName', 'name')
        if not name:
            name = self._actor(room_id)
        grant = self.engine.grant_boost(room_id, name)
        if grant.applied:
            return {'success': True, 'points': grant.points}
        return {'success': False, 'points': grant.points, 'message': 'Already used boost'}

    @_acked
    def handle_resume(self, data):
        room_id = self._room_id(data)
        token = data.get('sessionToken')
        if not token or not isinstance(token, str):
            raise ValidationError('sessionToken is required')
        name, game = self.engine.resume(room_id, token)
        self._bind(request.sid, room_id, name)
        self.broadcast(room_id, 'playerReconnected', {'playerName': name, 'game': game})
        return {'success': True, 'playerName': name, 'game': game}

    @_acked
    def handle_leave(self, data):
        room_id = self._room_id(data)
        actor = self._actor(room_id)
        self._unbind(request.sid)
        leave_room(room_channel(room_id))
        self.engine.leave(room_id, actor)
        return {'success': True}

    def handle_ping(self, data=None):
        emit('pong', data or {})

    def handle_error(self, exc):
        self.logger.exception(f"[socket-error] sid={request.sid} {exc!r}")
        emit('error', {'message': 'Internal server error'})


def register_socketio_handlers(socketio, gateway: SessionGateway) -> None:
    """Bind gateway handlers, including the event-name aliases older clients send."""
    ns = gateway.namespace
    socketio.on_event('connect', gateway.handle_connect, namespace=ns)
    socketio.on_event('disconnect', gateway.handle_disconnect, namespace=ns)
    for event in ('createGame', 'createRoom'):
        socketio.on_event(event, gateway.handle_create, namespace=ns)
    for event in ('joinGame', 'joinRoom'):
        socketio.on_event(event, gateway.handle_join, namespace=ns)
    for event in ('animalSwitch', 'call'):
        socketio.on_event(event, gateway.handle_call, namespace=ns)
    for event in ('tapPlayer', 'tap'):
        socketio.on_event(event, gateway.handle_tap, namespace=ns)
    socketio.on_event('buyBoost', gateway.handle_buy_boost, namespace=ns)
    socketio.on_event('resumeSession', gateway.handle_resume, namespace=ns)
    socketio.on_event('leaveGame', gateway.handle_leave, namespace=ns)
    socketio.on_event('ping', gateway.handle_ping, namespace=ns)
    socketio.on_error(ns)(gateway.handle_error)
