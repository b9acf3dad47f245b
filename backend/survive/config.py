import os


def _origins(raw):
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "https://survive.com",
            "https://www.survive.com",
        ]
    return [o.strip() for o in raw.split(',') if o.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Only checkout records live in the database; rooms are in-memory
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///survive.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ALLOWED_ORIGINS = _origins(os.environ.get('FRONTEND_ORIGINS') or os.environ.get('FRONTEND_ORIGIN'))
    # Scoring
    INITIAL_POINTS = int(os.environ.get('INITIAL_POINTS', '20'))
    CALL_COST_POINTS = int(os.environ.get('CALL_COST_POINTS', '2'))
    BOOST_POINTS = int(os.environ.get('BOOST_POINTS', '5'))
    # Timers (seconds)
    CALL_WINDOW_SEC = float(os.environ.get('CALL_WINDOW_SEC', '10'))
    DEFAULT_TIMER_SEC = int(os.environ.get('DEFAULT_TIMER_SEC', '600'))
    MAX_TIMER_SEC = int(os.environ.get('MAX_TIMER_SEC', '3600'))
    RECONNECT_GRACE_SEC = float(os.environ.get('RECONNECT_GRACE_SEC', '30'))
    ENDED_ROOM_TTL_SEC = float(os.environ.get('ENDED_ROOM_TTL_SEC', '300'))
    # Minimum players before the round timer starts
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    # Payments. Without a Stripe key checkouts are simulated.
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')
    BOOST_PRICE_ID = os.environ.get('BOOST_PRICE_ID')
    BOOST_PRICE_CENTS = int(os.environ.get('BOOST_PRICE_CENTS', '99'))
    CHECKOUT_SUCCESS_URL = os.environ.get('CHECKOUT_SUCCESS_URL') or 'https://survive.com/success?gameId={game_id}&playerName={player_name}'
    CHECKOUT_CANCEL_URL = os.environ.get('CHECKOUT_CANCEL_URL') or 'https://survive.com/cancel'
    # When set, buyBoost over the socket is refused and only the payment webhook grants
    BOOST_REQUIRES_PAYMENT = os.environ.get('BOOST_REQUIRES_PAYMENT', '0').lower() in ('1', 'true', 'yes')
