import random
import string
from typing import Dict, List, Optional, Tuple

MAX_PLAYERS = 2


def generate_room_code(length=5):
    """Generate a short, human-typeable room code."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


class LoopState:
    """Turn loop state for a single room.

    ``timer`` holds the handle of the one pending tick, or None. Clearing it
    is how a pending tick is cancelled: the firing compares its own handle
    against this value before doing anything.
    """

    def __init__(self):
        self.running = False
        self.turn = 0
        self.timer: Optional[int] = None

    def reset(self):
        self.running = False
        self.timer = None


class Room:
    def __init__(self, room_id: str, name: str, host_id: str, password: str = ''):
        self.id = room_id
        self.name = name
        self.password = password
        self.players: List[str] = [host_id]
        self.ready: Dict[str, bool] = {host_id: False}
        self.loop = LoopState()

    @property
    def host_id(self) -> Optional[str]:
        return self.players[0] if self.players else None

    @property
    def has_password(self) -> bool:
        return len(self.password) > 0

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    def is_member(self, identity) -> bool:
        return identity in self.players

    def check_password(self, attempt: Optional[str]) -> bool:
        if not self.has_password:
            return True
        if attempt is None:
            return False
        return attempt == self.password

    def add_player(self, identity: str) -> None:
        if identity not in self.players:
            self.players.append(identity)
        self.ready.setdefault(identity, False)

    def remove_player(self, identity: str) -> bool:
        if identity not in self.players:
            return False
        self.players = [p for p in self.players if p != identity]
        self.ready.pop(identity, None)
        return True

    def readiness(self) -> Dict[str, bool]:
        return {pid: bool(self.ready.get(pid)) for pid in self.players}

    def all_ready(self) -> bool:
        return len(self.players) >= MAX_PLAYERS and all(self.ready.get(pid) for pid in self.players)

    def to_public_dict(self):
        # The password never leaves the server; clients only learn whether one is set.
        return {
            'id': self.id,
            'name': self.name,
            'players': list(self.players),
            'hasPassword': self.has_password,
        }

    def to_dict(self):
        data = self.to_public_dict()
        data.update({
            'status': self.readiness(),
            'allReady': self.all_ready(),
            'loopActive': self.loop.running,
            'turn': self.loop.turn,
        })
        return data


class ConnectionBinding:
    """What a single Socket.IO connection currently stands for.

    A connection is unbound, a player controller (``player_id`` and
    ``room_id`` set) or a projector (``projector`` set to a room/owner pair).
    """

    def __init__(self, sid: str):
        self.sid = sid
        self.player_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.projector: Optional[Tuple[str, str]] = None

    @property
    def is_player(self) -> bool:
        return self.player_id is not None

    @property
    def is_projector(self) -> bool:
        return self.projector is not None

    def clear(self):
        self.player_id = None
        self.room_id = None
        self.projector = None
