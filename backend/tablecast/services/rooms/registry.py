from typing import Dict, List, Optional

from tablecast.models import ConnectionBinding


class ConnectionRegistry:
    """Socket sid -> binding. Holds identifiers only, never room objects."""

    def __init__(self):
        self._bindings: Dict[str, ConnectionBinding] = {}

    def connect(self, sid) -> ConnectionBinding:
        binding = self._bindings.get(sid)
        if binding is None:
            binding = self._bindings[sid] = ConnectionBinding(sid)
        return binding

    def get(self, sid) -> Optional[ConnectionBinding]:
        return self._bindings.get(sid)

    def drop(self, sid) -> Optional[ConnectionBinding]:
        return self._bindings.pop(sid, None)

    def bind_player(self, sid, room_id, player_id) -> ConnectionBinding:
        binding = self.connect(sid)
        binding.clear()
        binding.player_id = player_id
        binding.room_id = room_id
        return binding

    def bind_projector(self, sid, room_id, owner_id) -> ConnectionBinding:
        binding = self.connect(sid)
        binding.clear()
        binding.projector = (room_id, owner_id)
        return binding

    def player_sids(self, room_id, player_id, exclude=None) -> List[str]:
        """Controller connections currently acting as ``player_id`` in ``room_id``."""
        return [
            b.sid for b in self._bindings.values()
            if b.room_id == room_id and b.player_id == player_id and b.sid != exclude
        ]
