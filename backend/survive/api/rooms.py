from flask import Blueprint, current_app, jsonify, request

from survive import get_engine

rooms = Blueprint('rooms', __name__)


@rooms.route('/create', methods=['POST'])
def create_room():
    """Create a room over HTTP.

    The creator starts offline and must attach a socket with
    ``resumeSession`` and the returned token before the reconnect grace
    period runs out.
    """
    data = request.get_json(silent=True) or {}
    timer = data.get('gameTimer')
    if timer is None:
        timer = data.get('timerSeconds')
    if timer is None:
        timer = current_app.config.get('DEFAULT_TIMER_SEC', 600)
    room, player = get_engine().create_room(data.get('playerName') or data.get('name'), timer, connected=False)
    return jsonify({
        'message': 'New game created!',
        'gameId': room.id,
        'sessionToken': player.session_token,
    }), 201


@rooms.route('/<string:room_id>/state', methods=['GET'])
def get_room_state(room_id):
    return jsonify(get_engine().snapshot(room_id))
