from typing import Dict, Set


class ProjectorIndex:
    """room id -> owner id -> projector sids.

    Empty owner and room buckets are removed eagerly, so the index only ever
    holds live registrations.
    """

    def __init__(self):
        self._buckets: Dict[str, Dict[str, Set[str]]] = {}

    def register(self, room_id, owner_id, sid) -> None:
        self._buckets.setdefault(room_id, {}).setdefault(owner_id, set()).add(sid)

    def unregister(self, room_id, owner_id, sid) -> bool:
        owners = self._buckets.get(room_id)
        if not owners or sid not in owners.get(owner_id, ()):
            return False
        owners[owner_id].discard(sid)
        if not owners[owner_id]:
            del owners[owner_id]
        if not owners:
            del self._buckets[room_id]
        return True

    def targets(self, room_id, owner_id) -> Set[str]:
        return set(self._buckets.get(room_id, {}).get(owner_id, ()))

    def room_sids(self, room_id) -> Set[str]:
        sids = set()
        for bucket in self._buckets.get(room_id, {}).values():
            sids |= bucket
        return sids

    def drop_room(self, room_id) -> Set[str]:
        sids = self.room_sids(room_id)
        self._buckets.pop(room_id, None)
        return sids

    def has_room(self, room_id) -> bool:
        return room_id in self._buckets
