import functools
import logging
import threading
from typing import Optional

from tablecast.errors import InvalidInput
from tablecast.models import Room
from tablecast.transport import room_scope
from .projectors import ProjectorIndex
from .readiness import readiness_status, set_ready
from .registry import ConnectionRegistry
from .relay import RelayRouter
from .scheduler import TurnScheduler
from .store import RoomStore


def normalize_room_id(value) -> str:
    return str(value).strip().upper() if value is not None else ''


def normalize_identity(value) -> str:
    return str(value).strip() if value is not None else ''


def synchronized(method):
    """Run a broker operation under the broker lock.

    Handlers and timer ticks may run on separate threads under the threading
    server; each operation still has to see and leave the tables whole.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper


class SessionBroker:
    """Room lifecycle, membership and fan-out for one server process.

    Owns the room store, connection registry, projector index, turn
    scheduler and relay router, and is the only thing the socket layer
    talks to. Every public method takes the caller's sid.
    """

    def __init__(self, transport, logger=None, code_length=5, turn_interval=10,
                 debounce_ms=0, code_factory=None):
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)
        self.lock = threading.RLock()
        self.store = RoomStore(code_length=code_length, code_factory=code_factory)
        self.registry = ConnectionRegistry()
        self.projectors = ProjectorIndex()
        self.scheduler = TurnScheduler(self.store, self.registry, transport, self.logger,
                                       interval=turn_interval, debounce_ms=debounce_ms,
                                       lock=self.lock)
        self.router = RelayRouter(self.store, self.projectors, transport, self.logger)

    @classmethod
    def from_config(cls, transport, config, logger=None):
        return cls(
            transport,
            logger=logger,
            code_length=int(config.get('ROOM_CODE_LENGTH', 5)),
            turn_interval=float(config.get('TURN_INTERVAL_SEC', 10)),
            debounce_ms=int(config.get('CONTROLLER_DEBOUNCE_MS', 0)),
        )

    # ---- connection lifecycle ----

    @synchronized
    def connect(self, sid):
        self.registry.connect(sid)
        self.transport.send(sid, 'roomListSnapshot', self.store.public_rooms())

    @synchronized
    def disconnect(self, sid):
        binding = self.registry.drop(sid)
        if binding is None:
            return
        if binding.is_projector:
            room_id, owner_id = binding.projector
            self.projectors.unregister(room_id, owner_id, sid)
            self.logger.info(f"[projector-drop] room={room_id} owner={owner_id} sid={sid}")
            return
        if not binding.is_player:
            return
        changed = False
        # A client should only ever sit in one room, but sweep them all regardless.
        for room in self.store.rooms_with_player(binding.player_id):
            if self.registry.player_sids(room.id, binding.player_id):
                # Another live connection (a reconnect) still speaks for this player here.
                continue
            self._remove_player(room, binding.player_id)
            changed = True
        self.logger.info(f"[disconnect] sid={sid} player={binding.player_id} changed={changed}")
        if changed:
            self.publish_room_list()

    # ---- membership ----

    @synchronized
    def host_room(self, sid, name, host_id, password=None) -> Optional[str]:
        room_id = self.store.create_room(name, host_id, password)
        if room_id is None:
            self.logger.info(f"[room-create-drop] sid={sid} missing name or host")
            return None
        room = self.store.get(room_id)
        self._release(sid)
        self.registry.bind_player(sid, room.id, room.host_id)
        self.transport.join(sid, room_scope(room.id))
        self.logger.info(
            f"[room-create] room={room.id} host={room.host_id} password={room.has_password}"
        )
        self.transport.send(sid, 'joinedRoom', self._joined_payload(room, room.host_id))
        self.publish_room_list()
        self.publish_readiness(room)
        return room.id

    @synchronized
    def join_room(self, sid, room_id, identity, password_attempt=None) -> Room:
        room_id = normalize_room_id(room_id)
        identity = normalize_identity(identity)
        if not room_id or not identity:
            raise InvalidInput('roomId and identity are required.')
        if password_attempt is not None and not isinstance(password_attempt, str):
            password_attempt = str(password_attempt)
        room = self.store.join_room(room_id, identity, password_attempt)
        self._release(sid, keep=(room.id, identity))
        self.registry.bind_player(sid, room.id, identity)
        self.transport.join(sid, room_scope(room.id))
        self.logger.info(f"[room-join] room={room.id} player={identity} players={room.players}")
        self.transport.broadcast(room_scope(room.id), 'playerListUpdate', self._players_payload(room))
        self.transport.send(sid, 'joinedRoom', self._joined_payload(room, identity))
        self.publish_room_list()
        self.publish_readiness(room)
        return room

    @synchronized
    def register_projector(self, sid, room_id, owner_id):
        room_id = normalize_room_id(room_id)
        owner_id = normalize_identity(owner_id)
        if not room_id:
            raise InvalidInput('roomId is required.')
        self.store.require(room_id)
        if not owner_id:
            raise InvalidInput('ownerIdentity is required.')
        self._release(sid)
        # Releasing a previous player binding can delete the room if it was the last member.
        self.store.require(room_id)
        self.projectors.register(room_id, owner_id, sid)
        self.registry.bind_projector(sid, room_id, owner_id)
        self.transport.join(sid, room_scope(room_id))
        self.logger.info(f"[projector-register] room={room_id} owner={owner_id} sid={sid}")
        self.transport.send(sid, 'projectorRegistered', {'roomId': room_id, 'ownerId': owner_id})

    @synchronized
    def leave_room(self, sid, room_id) -> bool:
        room_id = normalize_room_id(room_id)
        binding = self.registry.get(sid)
        if binding is None or room_id not in self.store:
            return False
        if binding.is_projector and binding.projector[0] == room_id:
            self.projectors.unregister(room_id, binding.projector[1], sid)
            self.transport.leave(sid, room_scope(room_id))
            binding.clear()
        elif binding.is_player and binding.room_id == room_id:
            identity = binding.player_id
            self.transport.leave(sid, room_scope(room_id))
            binding.clear()
            room = self.store.get(room_id)
            if room.is_member(identity):
                self._remove_player(room, identity)
        else:
            return False
        self.transport.send(sid, 'backToLobby', {'roomId': room_id})
        self.publish_room_list()
        return True

    # ---- readiness and loop control ----

    @synchronized
    def set_ready(self, sid, room_id, ready) -> bool:
        room = self.store.get(normalize_room_id(room_id))
        identity = self._player_id(sid)
        if room is None or not set_ready(room, identity, ready):
            return False
        self.publish_readiness(room)
        return True

    @synchronized
    def start_loop(self, sid, room_id) -> bool:
        return self.scheduler.start(normalize_room_id(room_id), self._player_id(sid))

    @synchronized
    def stop_loop(self, sid, room_id) -> bool:
        return self.scheduler.stop(normalize_room_id(room_id), self._player_id(sid))

    # ---- relays ----

    @synchronized
    def relay_image(self, sid, room_id, image):
        return self.router.image(normalize_room_id(room_id), image, self._player_id(sid))

    @synchronized
    def relay_dice(self, sid, room_id, dice, sender_id=None):
        return self.router.dice(normalize_room_id(room_id), dice, self._player_id(sid) or sender_id)

    @synchronized
    def relay_alignment(self, sid, room_id, data):
        return self.router.alignment(normalize_room_id(room_id), data)

    @synchronized
    def relay_grid(self, sid, room_id, owner_id, data):
        return self.router.grid(normalize_room_id(room_id), normalize_identity(owner_id), data)

    @synchronized
    def relay_blank(self, sid, room_id, owner_id, blank):
        return self.router.blank(normalize_room_id(room_id), normalize_identity(owner_id), blank)

    @synchronized
    def relay_view_mode(self, sid, room_id, owner_id, mode):
        return self.router.view_mode(normalize_room_id(room_id), normalize_identity(owner_id), mode)

    # ---- snapshots ----

    @synchronized
    def publish_room_list(self):
        self.transport.broadcast_all('roomListSnapshot', self.store.public_rooms())

    def publish_readiness(self, room: Room):
        self.transport.broadcast(room_scope(room.id), 'readinessStatus', readiness_status(room))

    @synchronized
    def public_rooms(self):
        return self.store.public_rooms()

    @synchronized
    def room_snapshot(self, room_id):
        room = self.store.get(normalize_room_id(room_id))
        return room.to_dict() if room else None

    # ---- internals ----

    def _player_id(self, sid) -> Optional[str]:
        binding = self.registry.get(sid)
        return binding.player_id if binding else None

    def _release(self, sid, keep=None):
        """Detach ``sid`` from whatever it was bound to before a new binding."""
        binding = self.registry.get(sid)
        if binding is None:
            return
        if binding.is_projector:
            room_id, owner_id = binding.projector
            self.projectors.unregister(room_id, owner_id, sid)
            self.transport.leave(sid, room_scope(room_id))
        elif binding.is_player and (binding.room_id, binding.player_id) != keep:
            room = self.store.get(binding.room_id)
            self.transport.leave(sid, room_scope(binding.room_id))
            if (room is not None and room.is_member(binding.player_id)
                    and not self.registry.player_sids(room.id, binding.player_id, exclude=sid)):
                self._remove_player(room, binding.player_id)
        binding.clear()

    def _remove_player(self, room: Room, identity):
        room.remove_player(identity)
        self.logger.info(f"[room-leave] room={room.id} player={identity} remaining={room.players}")
        if room.loop.running or room.loop.timer is not None:
            self.scheduler.cancel(room, reason='player-left', publish=bool(room.players))
        if not room.players:
            self._delete_room(room)
            return
        self.transport.broadcast(room_scope(room.id), 'playerListUpdate', self._players_payload(room))
        self.publish_readiness(room)

    def _delete_room(self, room: Room):
        self.scheduler.cancel(room, reason='room-deleted', publish=False)
        for sid in self.projectors.drop_room(room.id):
            binding = self.registry.get(sid)
            if binding is not None:
                binding.clear()
            self.transport.leave(sid, room_scope(room.id))
        self.scheduler.forget_room(room.id)
        self.store.delete(room.id)
        self.logger.info(f"[room-delete] room={room.id}")

    @staticmethod
    def _players_payload(room: Room):
        return {'roomId': room.id, 'players': list(room.players)}

    @staticmethod
    def _joined_payload(room: Room, identity):
        return {
            'roomId': room.id,
            'name': room.name,
            'players': list(room.players),
            'isHost': identity == room.host_id,
        }
