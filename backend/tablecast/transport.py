from flask_socketio import SocketIO


def room_scope(room_id: str) -> str:
    return f"room:{room_id}"


class SocketIOTransport:
    """The handful of Socket.IO primitives the broker relies on.

    Everything goes through ``socketio.server`` / ``socketio.emit`` with an
    explicit namespace so it also works from background tasks, outside of a
    request context.
    """

    def __init__(self, socketio: SocketIO, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def send(self, sid, event, payload):
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def broadcast(self, scope, event, payload):
        self.socketio.emit(event, payload, to=scope, namespace=self.namespace)

    def broadcast_all(self, event, payload):
        self.socketio.emit(event, payload, namespace=self.namespace)

    def join(self, sid, scope):
        self.socketio.server.enter_room(sid, scope, namespace=self.namespace)

    def leave(self, sid, scope):
        self.socketio.server.leave_room(sid, scope, namespace=self.namespace)

    def start_background_task(self, target, *args, **kwargs):
        return self.socketio.start_background_task(target, *args, **kwargs)

    def sleep(self, seconds):
        self.socketio.sleep(seconds)
