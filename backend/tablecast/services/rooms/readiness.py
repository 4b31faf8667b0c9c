from tablecast.models import Room


def set_ready(room: Room, identity, ready) -> bool:
    """Record a player's camera/device readiness. Returns False for non-members."""
    if not room.is_member(identity):
        return False
    room.ready[identity] = bool(ready)
    return True


def readiness_status(room: Room):
    """Room-wide readiness snapshot; ``allReady`` is advisory only."""
    return {
        'roomId': room.id,
        'status': room.readiness(),
        'allReady': room.all_ready(),
        'loopActive': room.loop.running,
    }
