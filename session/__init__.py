"""Session state, configuration and event types for the MUD mapper."""

from .session_state import SessionState
from .session_configuration import SessionConfiguration
from .events import LineReceived, CommandSent, StreamEnded, RoomResolved, SessionEvent
from .room_context import RoomAggregate, ContextStep, reduce_line

__all__ = [
    "SessionState",
    "SessionConfiguration",
    "LineReceived",
    "CommandSent",
    "StreamEnded",
    "RoomResolved",
    "SessionEvent",
    "RoomAggregate",
    "ContextStep",
    "reduce_line",
]
