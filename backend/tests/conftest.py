import os
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `tablecast` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from tablecast import create_app, socketio
from tablecast.services.rooms import SessionBroker


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/ws'
    SOCKETIO_ASYNC_MODE = 'threading'
    MAX_HTTP_BUFFER_SIZE = 100_000_000
    ROOM_CODE_LENGTH = 5
    TURN_INTERVAL_SEC = 10
    CONTROLLER_DEBOUNCE_MS = 0


class FastLoopConfig(TestConfig):
    TURN_INTERVAL_SEC = 0.05


class Message:
    def __init__(self, kind, target, event, payload, recipients):
        self.kind = kind
        self.target = target
        self.event = event
        self.payload = payload
        # None means every connection
        self.recipients = recipients

    def __repr__(self):
        return f"Message({self.kind}, {self.target}, {self.event}, {self.payload})"


class RecordingTransport:
    """In-memory stand-in for the Socket.IO transport.

    Records every emit with the set of sids it would reach at that moment,
    and queues background tasks so tests can run timer ticks on demand.
    """

    namespace = '/ws'

    def __init__(self):
        self.messages = []
        self.scopes = defaultdict(set)
        self.tasks = []
        self.slept = []

    def send(self, sid, event, payload):
        self.messages.append(Message('send', sid, event, payload, {sid}))

    def broadcast(self, scope, event, payload):
        self.messages.append(Message('broadcast', scope, event, payload, set(self.scopes[scope])))

    def broadcast_all(self, event, payload):
        self.messages.append(Message('all', None, event, payload, None))

    def join(self, sid, scope):
        self.scopes[scope].add(sid)

    def leave(self, sid, scope):
        self.scopes[scope].discard(sid)

    def start_background_task(self, target, *args, **kwargs):
        self.tasks.append((target, args, kwargs))

    def sleep(self, seconds):
        self.slept.append(seconds)

    def run_pending(self):
        """Run queued background tasks (one timer generation). Returns how many ran."""
        tasks, self.tasks = self.tasks, []
        for target, args, kwargs in tasks:
            target(*args, **kwargs)
        return len(tasks)

    def received(self, sid, event=None):
        return [
            m.payload for m in self.messages
            if (m.recipients is None or sid in m.recipients) and (event is None or m.event == event)
        ]

    def events(self, event):
        return [m for m in self.messages if m.event == event]

    def clear(self):
        self.messages = []


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def broker(transport):
    return SessionBroker(transport, turn_interval=10)


@pytest.fixture()
def hosted(broker):
    """Room 'Trivia' hosted by H on connection sid-h."""
    broker.connect('sid-h')
    room_id = broker.host_room('sid-h', 'Trivia', 'H', 'x1')
    return room_id


@pytest.fixture()
def pair(broker):
    """Open room with host H (sid-h) and joiner J (sid-j)."""
    broker.connect('sid-h')
    broker.connect('sid-j')
    room_id = broker.host_room('sid-h', 'Duel', 'H')
    broker.join_room('sid-j', room_id, 'J')
    return room_id


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    """Build extra Socket.IO test clients on /ws; all are disconnected at teardown."""
    created = []

    def _make(app=None):
        test_client = socketio.test_client(
            app or flask_app,
            flask_test_client=(app or flask_app).test_client(),
            namespace='/ws'
        )
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
