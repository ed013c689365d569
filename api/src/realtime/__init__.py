"""Real-time synchronisation of forum state.

Server side: the event catalogue and the fan-out hub behind ``/ws/forum``.
Client side: a local replica of the forum, the optimistic session that
reconciles speculative writes with server echoes, and the HTTP transport.
"""

from .events import EntityPath, EventType, ForumEvent
from .hub import ForumEventHub


__all__ = ["EntityPath", "EventType", "ForumEvent", "ForumEventHub"]
