"""Request-level failures raised by the session broker.

Each error carries a stable ``reason`` code that is sent back to the
requesting connection only, inside an ``errorNotice`` event.
"""


class BrokerError(Exception):
    reason = 'Error'
    default_message = 'Request rejected.'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'reason': self.reason, 'message': self.message}


class NotFound(BrokerError):
    reason = 'NotFound'
    default_message = 'Room not found.'


class RoomFull(BrokerError):
    reason = 'Full'
    default_message = 'Room is full.'


class BadPassword(BrokerError):
    reason = 'BadPassword'
    default_message = 'Incorrect password.'


class Unauthorized(BrokerError):
    reason = 'Unauthorized'
    default_message = 'Only the host may do that.'


class InvalidInput(BrokerError):
    reason = 'InvalidInput'
    default_message = 'Missing or invalid fields.'
