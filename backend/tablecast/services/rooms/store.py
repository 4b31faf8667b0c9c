from typing import Callable, Dict, Optional

from tablecast.errors import BadPassword, InvalidInput, NotFound, RoomFull
from tablecast.models import Room, generate_room_code


def _clean(value) -> str:
    return str(value).strip() if value is not None else ''


def _secret(value) -> str:
    # Stored exactly as typed so the join attempt can be compared byte for byte.
    # A blank secret means the room is open.
    value = str(value) if value is not None else ''
    return value if value.strip() else ''


class RoomStore:
    """Authoritative table of live rooms, keyed by room code.

    The store only mutates room state; broadcasting and timer bookkeeping
    belong to the broker and the scheduler.
    """

    def __init__(self, code_length: int = 5, code_factory: Optional[Callable[[int], str]] = None):
        self.rooms: Dict[str, Room] = {}
        self.code_length = code_length
        self._code_factory = code_factory or generate_room_code

    def __contains__(self, room_id):
        return room_id in self.rooms

    def __len__(self):
        return len(self.rooms)

    def get(self, room_id) -> Optional[Room]:
        return self.rooms.get(room_id)

    def require(self, room_id) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound()
        return room

    def _new_code(self) -> str:
        # Codes are short enough that collisions do happen; keep drawing.
        while True:
            code = self._code_factory(self.code_length)
            if code not in self.rooms:
                return code

    def create_room(self, name, host_id, password=None) -> Optional[str]:
        name = _clean(name)
        host_id = _clean(host_id)
        if not name or not host_id:
            return None
        room_id = self._new_code()
        self.rooms[room_id] = Room(room_id, name, host_id, _secret(password))
        return room_id

    def join_room(self, room_id, identity, password_attempt=None) -> Room:
        identity = _clean(identity)
        if not identity:
            raise InvalidInput('A player identity is required.')
        room = self.require(room_id)
        if room.is_member(identity):
            # Re-entry by a known identity (reconnect) never takes a second slot.
            if not room.check_password(password_attempt):
                raise BadPassword()
            return room
        if room.is_full:
            raise RoomFull()
        if not room.check_password(password_attempt):
            raise BadPassword()
        room.add_player(identity)
        return room

    def rooms_with_player(self, identity):
        return [room for room in self.rooms.values() if room.is_member(identity)]

    def delete(self, room_id) -> Optional[Room]:
        return self.rooms.pop(room_id, None)

    def public_rooms(self):
        return {room_id: room.to_public_dict() for room_id, room in self.rooms.items()}
