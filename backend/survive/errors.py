"""Error taxonomy shared by the room services, socket handlers and HTTP routes.

Every error carries a stable ``code`` that is sent to clients in failed acks
and JSON error bodies. None of these are fatal: they describe a single
rejected action against a single room.
"""


class GameError(Exception):
    code = 'game_error'
    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'success': False, 'error': self.code, 'message': self.message}


class ValidationError(GameError):
    code = 'validation_error'
    default_message = 'Invalid request'


class NotFoundError(GameError):
    code = 'not_found'
    status_code = 404
    default_message = 'Not found'


class StateConflictError(GameError):
    code = 'state_conflict'
    status_code = 409
    default_message = 'Action not allowed right now'


class RoomNotFound(NotFoundError):
    code = 'room_not_found'
    default_message = 'Game not found'


class PlayerNotFound(NotFoundError):
    code = 'player_not_found'
    default_message = 'Player not found'


class TargetNotFound(NotFoundError):
    code = 'target_not_found'
    default_message = 'Target not found'


class SessionNotFound(NotFoundError):
    code = 'session_not_found'
    default_message = 'Session not found or expired'


class NotCenter(StateConflictError):
    code = 'not_center'
    default_message = 'Only the center player may do that'


class CallAlreadyPending(StateConflictError):
    code = 'call_already_pending'
    default_message = 'A call is already pending'


class NoPendingCall(StateConflictError):
    code = 'no_pending_call'
    default_message = 'No call is pending'


class TargetMismatch(StateConflictError):
    code = 'target_mismatch'
    default_message = 'That player was not called'


class RoomNotActive(StateConflictError):
    code = 'room_not_active'
    default_message = 'Game is not in progress'


class PaymentRequired(StateConflictError):
    code = 'payment_required'
    default_message = 'Boost is granted once payment is confirmed'
