"""
ContextManager for MUD mapper sessions.

Handles the current-room context:
- Folding classified lines into the open room aggregate
- Handing closed aggregates back to the session for resolution
- Serving the current room and its entities to readers on other threads
"""

import threading
from typing import Any, Dict, List, Optional

from line_classifier import ClassifiedLine
from managers.base_manager import BaseManager
from movement_tracker import PendingMovement
from session.room_context import RoomAggregate, reduce_line
from session.session_configuration import SessionConfiguration
from session.session_state import SessionState


class ContextManager(BaseManager):
    """
    Tracks the room currently being described by the server.

    The aggregate itself is immutable; this manager only swaps the reference
    under its own lock, separate from the map lock.
    """

    def __init__(self, logger, config: SessionConfiguration, session_state: SessionState):
        super().__init__(logger, config, session_state, "context_manager")
        self._room: Optional[RoomAggregate] = None
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self._room = None
        self.log_debug("Context manager reset")

    def apply(
        self, line: ClassifiedLine, arrival: Optional[PendingMovement] = None
    ) -> Optional[RoomAggregate]:
        """
        Fold one classified line into the current room.

        Args:
            line: Classified line from the server
            arrival: Movement to attach if the line opens a new room

        Returns:
            The aggregate closed by this line, if any
        """
        with self._lock:
            step = reduce_line(self._room, line, arrival)
            self._room = step.room

        if step.flushed is not None:
            self.log_debug(
                f"Room context closed: {step.flushed.title}",
                event_type="room_context_flushed",
                room_name=step.flushed.title,
                exits=list(step.flushed.exits),
            )
        return step.flushed

    def flush(self) -> Optional[RoomAggregate]:
        """Close the open room without opening another (end of stream)."""
        with self._lock:
            room, self._room = self._room, None
        return room

    def current_aggregate(self) -> Optional[RoomAggregate]:
        with self._lock:
            return self._room

    def current_room(self) -> Dict[str, Any]:
        """The open room as {name, description, exits, items, mobs}, or {} before any title."""
        room = self.current_aggregate()
        return room.to_dict() if room else {}

    def current_entities(self) -> Dict[str, List[str]]:
        """Items and mobs seen in the current room so far."""
        with self._lock:
            room = self._room
        if room is None:
            return {"items": [], "mobs": []}
        return {"items": list(room.items), "mobs": list(room.mobs)}

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status["current_room"] = self.current_room()
        return status
