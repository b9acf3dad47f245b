import os
import sys
import pytest

# Ensure the backend root (containing the `survive` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from survive import create_app, db, socketio
from survive.services.rooms import BoostLedger, RoomStore, TurnEngine
from survive.services.rooms.scheduler import TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ALLOWED_ORIGINS = ['http://localhost:5173']
    INITIAL_POINTS = 20
    CALL_COST_POINTS = 2
    BOOST_POINTS = 5
    CALL_WINDOW_SEC = 10
    DEFAULT_TIMER_SEC = 600
    MAX_TIMER_SEC = 3600
    RECONNECT_GRACE_SEC = 5
    ENDED_ROOM_TTL_SEC = 60
    MIN_PLAYERS = 2
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None
    BOOST_PRICE_ID = None
    BOOST_PRICE_CENTS = 99
    CHECKOUT_SUCCESS_URL = 'https://survive.test/success?gameId={game_id}&playerName={player_name}'
    CHECKOUT_CANCEL_URL = 'https://survive.test/cancel'
    BOOST_REQUIRES_PAYMENT = False


class ManualClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualScheduler:
    """Collects timers; tests move the clock and fire whatever is due."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []

    def schedule(self, delay, callback, *args, label='timer'):
        handle = TimerHandle(label, delay, self.clock() + delay)
        self.timers.append((handle, callback, args))
        return handle

    def active(self, prefix=''):
        return [h for h, _, _ in self.timers if h.active and h.label.startswith(prefix)]

    def advance(self, seconds):
        self.clock.advance(seconds)
        fired = 0
        for handle, callback, args in sorted(self.timers, key=lambda t: t[0].deadline):
            if handle.active and handle.deadline <= self.clock():
                handle.fired = True
                callback(*args)
                fired += 1
        return fired


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def engine(clock, scheduler, events):
    return TurnEngine(
        RoomStore(initial_points=20, clock=clock),
        scheduler,
        BoostLedger(5),
        lambda room_id, event, payload: events.append((room_id, event, payload)),
        call_window=10,
        call_cost=2,
        initial_points=20,
        min_players=2,
        reconnect_grace=30,
        ended_room_ttl=60,
        clock=clock,
    )


@pytest.fixture()
def make_app():
    created = []

    def factory(**overrides):
        application = create_app(type('OverrideConfig', (TestConfig,), overrides))
        ctx = application.app_context()
        ctx.push()
        # Ensure models are imported so tables are created
        import survive.models  # noqa: F401
        db.create_all()
        created.append((application, ctx))
        return application

    yield factory
    for application, ctx in reversed(created):
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def flask_app(make_app):
    return make_app()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def factory(application=None):
        test_client = socketio.test_client(application or flask_app, namespace='/ws')
        clients.append(test_client)
        return test_client

    yield factory
    for test_client in clients:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
