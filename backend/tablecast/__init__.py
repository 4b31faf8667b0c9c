from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

socketio = SocketIO(async_mode=None)


def _allowed_origins(config):
    origins = [o.strip() for o in str(config.get('CORS_ORIGINS') or '*').split(',') if o.strip()]
    return '*' if origins in ([], ['*']) else origins


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = _allowed_origins(flask_app.config)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        async_mode=flask_app.config.get('SOCKETIO_ASYNC_MODE'),
        max_http_buffer_size=int(flask_app.config.get('MAX_HTTP_BUFFER_SIZE', 100_000_000)),
    )

    # One broker per app; handlers reach it through current_app.extensions
    from tablecast.services.rooms import SessionBroker
    from tablecast.transport import SocketIOTransport
    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/ws')
    transport = SocketIOTransport(socketio, namespace=namespace)
    flask_app.extensions['tablecast'] = SessionBroker.from_config(
        transport, flask_app.config, logger=flask_app.logger
    )

    from tablecast.main import main
    flask_app.register_blueprint(main)

    from tablecast.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from tablecast.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=namespace)

    return flask_app
