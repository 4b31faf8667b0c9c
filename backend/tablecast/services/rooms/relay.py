"""Forwarding of gameplay payloads to room members or to one owner's projectors.

Nothing here is validated beyond what the display needs: images must look
like a data URL, and the numeric display parameters fall back to defaults
instead of being rejected.
"""
import logging
import math

from tablecast.errors import InvalidInput
from tablecast.transport import room_scope

IMAGE_PREFIX = 'data:image/'

GRID_DEFAULTS = {'cols': 30, 'rows': 22, 'width': 50, 'height': 50}
ALIGN_DEFAULTS = {'offsetX': 0.0, 'offsetY': 0.0, 'scale': 1.0, 'rotation': 0.0}
VIEW_MODES = ('camera', 'image', 'dice')
DEFAULT_VIEW_MODE = 'camera'

ROOM_SCOPE = 'room'
OWNER_SCOPE = 'owner'


def coerce_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def coerce_float(value, default):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def grid_payload(owner_id, data):
    payload = {'ownerId': owner_id, 'enabled': bool(data.get('enabled'))}
    for key, default in GRID_DEFAULTS.items():
        payload[key] = coerce_int(data.get(key), default)
    return payload


def alignment_payload(data):
    payload = {'ownerId': data.get('ownerId') or data.get('ownerIdentity')}
    for key, default in ALIGN_DEFAULTS.items():
        payload[key] = coerce_float(data.get(key), default)
    return payload


def view_mode_payload(owner_id, mode):
    mode = str(mode).strip().lower() if mode is not None else ''
    return {'ownerId': owner_id, 'mode': mode if mode in VIEW_MODES else DEFAULT_VIEW_MODE}


class RelayRouter:
    def __init__(self, store, projectors, transport, logger=None):
        self.store = store
        self.projectors = projectors
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    def relay(self, kind, room_id, payload, scope=ROOM_SCOPE, owner_id=None) -> int:
        """Deliver ``payload`` as event ``kind``; returns how many targets were addressed.

        Room-scoped events go to the room's broadcast scope (counted as 1).
        Owner-scoped events go to each of the owner's projector connections.
        """
        if room_id not in self.store:
            self.logger.info(f"[relay-drop] kind={kind} room={room_id} unknown room")
            return 0
        if scope == ROOM_SCOPE:
            self.transport.broadcast(room_scope(room_id), kind, payload)
            return 1
        targets = self.projectors.targets(room_id, owner_id)
        for sid in targets:
            self.transport.send(sid, kind, payload)
        return len(targets)

    def image(self, room_id, image, sender_id):
        if room_id in self.store and not (isinstance(image, str) and image.startswith(IMAGE_PREFIX)):
            raise InvalidInput('Image must be an embedded data:image/ URL.')
        return self.relay('receiveImage', room_id, {'image': image, 'senderId': sender_id})

    def dice(self, room_id, dice, sender_id):
        return self.relay('diceRolled', room_id, {'dice': dice, 'senderId': sender_id})

    def alignment(self, room_id, data):
        return self.relay('fieldAlign', room_id, alignment_payload(data))

    def grid(self, room_id, owner_id, data):
        return self.relay('projectorGrid', room_id, grid_payload(owner_id, data),
                          scope=OWNER_SCOPE, owner_id=owner_id)

    def blank(self, room_id, owner_id, blank):
        return self.relay('projectorBlank', room_id, {'ownerId': owner_id, 'blank': bool(blank)},
                          scope=OWNER_SCOPE, owner_id=owner_id)

    def view_mode(self, room_id, owner_id, mode):
        return self.relay('projectorViewMode', room_id, view_mode_payload(owner_id, mode),
                          scope=OWNER_SCOPE, owner_id=owner_id)
