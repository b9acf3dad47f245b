from flask import Flask, current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from survive.config import Config
from survive.errors import GameError

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Room services are per-app so tests get a fresh store each time
    from survive.services.rooms import BackgroundScheduler, TurnEngine
    from survive.socketio_events import SessionGateway, register_socketio_handlers
    from survive.services.payments import checkout_provider_from_config

    scheduler = BackgroundScheduler(socketio, logger=flask_app.logger)
    engine = TurnEngine.from_config(flask_app.config, scheduler, logger=flask_app.logger)
    gateway = SessionGateway(
        engine,
        socketio,
        logger=flask_app.logger,
        default_timer=int(flask_app.config.get('DEFAULT_TIMER_SEC', 600)),
        boost_requires_payment=bool(flask_app.config.get('BOOST_REQUIRES_PAYMENT')),
    )
    engine.notify = gateway.broadcast
    flask_app.extensions['survive'] = {
        'engine': engine,
        'gateway': gateway,
        'payments': checkout_provider_from_config(flask_app.config),
    }
    register_socketio_handlers(socketio, gateway)

    from survive.main import main
    flask_app.register_blueprint(main)

    from survive.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from survive.api.payments import payments
    flask_app.register_blueprint(payments, url_prefix='/api/payments')

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        return jsonify({'error': exc.code, 'message': exc.message}), exc.status_code

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the checkout tables."""
        import survive.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def get_engine():
    return current_app.extensions['survive']['engine']


def get_gateway():
    return current_app.extensions['survive']['gateway']
