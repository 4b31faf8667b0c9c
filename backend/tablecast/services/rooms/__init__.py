"""Room session services: membership, readiness, turn loop and relays.

This package holds the in-memory session state and the rules around it.
Socket handlers and HTTP routes import the broker from here, keeping
transport concerns out of the room mechanics.
"""

from .broker import SessionBroker

__all__ = ['SessionBroker']
