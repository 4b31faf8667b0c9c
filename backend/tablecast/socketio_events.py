from flask import current_app, request
from flask_socketio import emit
from tablecast import socketio
from tablecast.errors import BrokerError
from typing import Any, Dict


def _broker():
    return current_app.extensions['tablecast']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data, key='roomId') -> Dict[str, Any]:
    # Some clients send a bare room id instead of an object
    if isinstance(data, dict):
        return data
    if isinstance(data, str):
        return {key: data}
    return {}


def _owner(data):
    return data.get('ownerIdentity') or data.get('ownerId')


def handle_connect(auth=None):
    _broker().connect(_get_sid())


def handle_disconnect(reason=None):
    _broker().disconnect(_get_sid())


def handle_host_room(data):
    data = _payload(data)
    _broker().host_room(
        _get_sid(),
        data.get('name'),
        data.get('hostIdentity') or data.get('playerId'),
        data.get('password'),
    )


def handle_join_room(data):
    data = _payload(data)
    _broker().join_room(
        _get_sid(),
        data.get('roomId'),
        data.get('identity') or data.get('playerId'),
        data.get('passwordAttempt'),
    )


def handle_register_projector(data):
    data = _payload(data)
    _broker().register_projector(_get_sid(), data.get('roomId'), _owner(data))


def handle_leave_room(data):
    data = _payload(data)
    _broker().leave_room(_get_sid(), data.get('roomId'))


def handle_set_ready(data):
    data = _payload(data)
    _broker().set_ready(_get_sid(), data.get('roomId'), data.get('ready'))


def handle_start_loop(data):
    data = _payload(data)
    _broker().start_loop(_get_sid(), data.get('roomId'))


def handle_stop_loop(data):
    data = _payload(data)
    _broker().stop_loop(_get_sid(), data.get('roomId'))


def handle_relay_image(data):
    data = _payload(data)
    _broker().relay_image(_get_sid(), data.get('roomId'), data.get('image'))


def handle_relay_dice(data):
    data = _payload(data)
    _broker().relay_dice(_get_sid(), data.get('roomId'), data.get('dice'), data.get('senderId'))


def handle_relay_alignment(data):
    data = _payload(data)
    _broker().relay_alignment(_get_sid(), data.get('roomId'), data)


def handle_relay_grid(data):
    data = _payload(data)
    _broker().relay_grid(_get_sid(), data.get('roomId'), _owner(data), data)


def handle_relay_blank(data):
    data = _payload(data)
    _broker().relay_blank(_get_sid(), data.get('roomId'), _owner(data), data.get('blank'))


def handle_relay_view_mode(data):
    data = _payload(data)
    _broker().relay_view_mode(_get_sid(), data.get('roomId'), _owner(data), data.get('mode'))


def handle_error(exc):
    """Answer the requester only; nothing escapes the event boundary."""
    if isinstance(exc, BrokerError):
        current_app.logger.info(f"[rejected] sid={_get_sid()} reason={exc.reason} message={exc.message}")
        emit('errorNotice', exc.to_dict())
        return
    current_app.logger.exception(f"[handler-error] sid={_get_sid()} {exc!r}")
    emit('errorNotice', {'reason': 'Internal', 'message': 'Request could not be processed.'})


EVENT_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'hostRoom': handle_host_room,
    'joinRoom': handle_join_room,
    'registerProjector': handle_register_projector,
    'leaveRoom': handle_leave_room,
    'setReady': handle_set_ready,
    'startLoop': handle_start_loop,
    'stopLoop': handle_stop_loop,
    'relayImage': handle_relay_image,
    'relayDice': handle_relay_dice,
    'relayAlignment': handle_relay_alignment,
    'relayGrid': handle_relay_grid,
    'relayBlank': handle_relay_blank,
    'relayViewMode': handle_relay_view_mode,
}


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)
    socketio.on_error_default(handle_error)
