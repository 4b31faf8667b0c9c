import itertools
import logging
import threading
import time
from typing import Dict

from tablecast.errors import Unauthorized
from tablecast.models import MAX_PLAYERS, Room
from tablecast.transport import room_scope
from .readiness import readiness_status


class TurnScheduler:
    """Host-armed alternating turn loop.

    Each tick directs exactly one player to capture, then arms a single
    one-shot background task for the next tick. A pending tick is cancelled
    by clearing ``room.loop.timer``; the task re-reads the room when it wakes
    and aborts unless its own handle is still the stored one and the loop is
    still valid.
    """

    def __init__(self, store, registry, transport, logger=None, interval=10, debounce_ms=0,
                 lock=None):
        self.store = store
        self.registry = registry
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)
        self.interval = interval
        self.debounce_ms = debounce_ms
        self._handles = itertools.count(1)
        self._last_controller_action: Dict[str, float] = {}
        # Shared with the broker so a tick never interleaves with a handler.
        self.lock = lock or threading.RLock()

    # ---- controller actions ----

    def start(self, room_id, requester) -> bool:
        room = self.store.require(room_id)
        if requester is None or requester != room.host_id:
            raise Unauthorized('Only the host may start the turn loop.')
        if self._debounced('start', room_id, requester):
            return False
        if room.loop.running or len(room.players) != MAX_PLAYERS:
            self.logger.info(
                f"[loop-skip] room={room.id} running={room.loop.running} players={len(room.players)}"
            )
            return False
        room.loop.running = True
        room.loop.turn = 0
        room.loop.timer = None
        self.logger.info(f"[loop-start] room={room.id} host={requester}")
        self._publish_loop(room)
        self._tick(room)
        return True

    def stop(self, room_id, requester) -> bool:
        room = self.store.require(room_id)
        if requester is None or requester != room.host_id:
            raise Unauthorized('Only the host may stop the turn loop.')
        if self._debounced('stop', room_id, requester):
            return False
        return self.cancel(room, reason='host-stop')

    def cancel(self, room: Room, reason='', publish=True) -> bool:
        """Clear any pending tick and mark the loop inactive.

        Returns True when the loop was running. With ``publish`` the room is
        told about the change; the broker passes False for a room it is about
        to delete.
        """
        was_running = room.loop.running
        had_timer = room.loop.timer is not None
        room.loop.reset()
        if was_running or had_timer:
            self.logger.info(f"[loop-stop] room={room.id} reason={reason} turn={room.loop.turn}")
        if was_running and publish:
            self._publish_loop(room)
        return was_running

    # ---- timer chain ----

    def fire(self, room_id, handle) -> bool:
        """Run the tick armed with ``handle``, if it is still wanted."""
        with self.lock:
            return self._fire(room_id, handle)

    def _fire(self, room_id, handle) -> bool:
        room = self.store.get(room_id)
        if room is None:
            self.logger.info(f"[timer-abort] room={room_id} handle={handle} room gone")
            return False
        if room.loop.timer != handle:
            self.logger.info(
                f"[timer-abort] room={room_id} handle={handle} current={room.loop.timer} cancelled"
            )
            return False
        room.loop.timer = None
        if not room.loop.running or len(room.players) < MAX_PLAYERS:
            self.logger.info(
                f"[timer-abort] room={room_id} running={room.loop.running} players={len(room.players)}"
            )
            room.loop.reset()
            return False
        self.logger.info(f"[timer-fire] room={room_id} handle={handle} turn={room.loop.turn}")
        self._tick(room)
        return True

    def _tick(self, room: Room) -> None:
        players = list(room.players)
        if len(players) < MAX_PLAYERS:
            room.loop.reset()
            return
        player_id = players[room.loop.turn % MAX_PLAYERS]
        directive = {'roomId': room.id, 'playerId': player_id, 'turn': room.loop.turn}
        for sid in self.registry.player_sids(room.id, player_id):
            self.transport.send(sid, 'turnDirective', directive)
        room.loop.turn += 1
        self.transport.broadcast(room_scope(room.id), 'readinessStatus', readiness_status(room))
        if room.loop.running and room.id in self.store and len(room.players) == MAX_PLAYERS:
            self._arm(room)

    def _arm(self, room: Room) -> int:
        handle = next(self._handles)
        room.loop.timer = handle
        self.logger.info(
            f"[timer-set] room={room.id} turn={room.loop.turn} handle={handle} delay={self.interval}s"
        )
        self.transport.start_background_task(self._worker, room.id, handle)
        return handle

    def _worker(self, room_id, handle):
        self.transport.sleep(self.interval)
        self.fire(room_id, handle)

    # ---- helpers ----

    def _publish_loop(self, room: Room) -> None:
        scope = room_scope(room.id)
        self.transport.broadcast(scope, 'loopStatusChanged', {
            'roomId': room.id,
            'loopActive': room.loop.running,
            'turn': room.loop.turn,
        })
        self.transport.broadcast(scope, 'readinessStatus', readiness_status(room))

    def _debounced(self, action, room_id, requester) -> bool:
        if self.debounce_ms <= 0:
            return False
        key = f"{action}:{room_id}:{requester}"
        now = time.time() * 1000.0
        last = self._last_controller_action.get(key, 0)
        if now - last < self.debounce_ms:
            self.logger.info(f"[debounced] {key}")
            return True
        self._last_controller_action[key] = now
        return False

    def forget_room(self, room_id) -> None:
        """Drop debounce entries for a room that no longer exists."""
        stale = [key for key in self._last_controller_action if key.split(':', 2)[1] == room_id]
        for key in stale:
            del self._last_controller_action[key]
