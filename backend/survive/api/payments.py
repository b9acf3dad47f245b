from urllib.parse import quote

import stripe
from flask import Blueprint, current_app, jsonify, request

from survive import db, get_engine, get_gateway
from survive.errors import NotFoundError, PlayerNotFound
from survive.models import CheckoutSession
from survive.services.payments import parse_webhook_event

payments = Blueprint('payments', __name__)


def _provider():
    return current_app.extensions['survive']['payments']


@payments.route('/checkout', methods=['POST'])
def create_checkout():
    data = request.get_json(silent=True) or {}
    room_id = data.get('gameId')
    player_name = data.get('playerName')
    if not all([room_id, player_name]) or not isinstance(room_id, str) or not isinstance(player_name, str):
        return jsonify({'error': 'validation_error', 'message': 'gameId and playerName are required'}), 400

    game = get_engine().snapshot(room_id)
    if not any(p['name'] == player_name for p in game['players']):
        raise PlayerNotFound(f'{PlayerNotFound.default_message}: {player_name}')

    cfg = current_app.config
    success_url = cfg['CHECKOUT_SUCCESS_URL'].format(game_id=quote(room_id), player_name=quote(player_name))
    try:
        result = _provider().create_checkout_session(
            cfg.get('BOOST_PRICE_ID'),
            success_url,
            cfg['CHECKOUT_CANCEL_URL'],
            metadata={'room_id': room_id, 'player_name': player_name},
        )
    except stripe.StripeError as exc:
        current_app.logger.warning(f"[checkout-error] room={room_id} player={player_name} {exc}")
        return jsonify({'error': 'payment_provider_error', 'message': 'Could not start checkout'}), 502

    record = CheckoutSession(
        session_id=result.session_id,
        room_id=room_id,
        player_name=player_name,
        amount_cents=int(cfg.get('BOOST_PRICE_CENTS', 99)),
    )
    db.session.add(record)
    db.session.commit()
    current_app.logger.info(f"[checkout] room={room_id} player={player_name} session={result.session_id}")
    return jsonify({'url': result.url, 'sessionId': result.session_id}), 201


@payments.route('/webhook', methods=['POST'])
def payment_webhook():
    try:
        event = parse_webhook_event(
            request.get_data(),
            request.headers.get('Stripe-Signature'),
            current_app.config.get('STRIPE_WEBHOOK_SECRET'),
        )
    except stripe.SignatureVerificationError:
        return jsonify({'error': 'invalid_signature'}), 400
    except ValueError:
        return jsonify({'error': 'invalid_payload'}), 400

    if event.get('type') != 'checkout.session.completed':
        return jsonify({'received': True})

    obj = (event.get('data') or {}).get('object') or {}
    session_id = obj.get('id')
    record = CheckoutSession.query.filter_by(session_id=session_id).first() if session_id else None
    if record is None:
        current_app.logger.warning(f"[webhook] unknown checkout session={session_id}")
        return jsonify({'received': True})
    if record.status == 'paid':
        return jsonify({'received': True, 'duplicate': True})

    record.mark_paid()
    db.session.add(record)
    db.session.commit()

    try:
        grant = get_engine().grant_boost(record.room_id, record.player_name)
    except NotFoundError:
        # Paid after the room or player went away; the record keeps the payment
        current_app.logger.warning(f"[webhook] room={record.room_id} player={record.player_name} no longer present")
        return jsonify({'received': True, 'granted': False})

    get_gateway().notify_player(record.room_id, record.player_name, 'boostGranted', {
        'playerName': record.player_name,
        'applied': grant.applied,
        'points': grant.points,
    })
    return jsonify({'received': True, 'granted': grant.applied, 'points': grant.points})
