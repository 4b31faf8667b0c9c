import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma separated list of allowed browser origins
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    # None lets Flask-SocketIO pick eventlet/gevent/threading
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None
    # Camera frames travel as data URLs; the transport buffer is the only size cap
    MAX_HTTP_BUFFER_SIZE = int(os.environ.get('MAX_HTTP_BUFFER_SIZE', '100000000'))
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '5'))
    # Seconds between turn directives once the host starts the loop
    TURN_INTERVAL_SEC = float(os.environ.get('TURN_INTERVAL_SEC', '10'))
    # Optional: debounce host start/stop actions (ms). 0 disables.
    CONTROLLER_DEBOUNCE_MS = int(os.environ.get('CONTROLLER_DEBOUNCE_MS', '0'))
