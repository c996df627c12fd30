"""
ABOUTME: Movement tracking for the mapper - remembers the latest outbound direction command
ABOUTME: The pending movement is consumed once by the room it leads to
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from map_graph import normalize_direction, normalize_exit_token


@dataclass(frozen=True)
class PendingMovement:
    """A direction command that has not yet been matched to a room.

    ``direction`` is the canonical direction for standard vocabulary
    ("n" -> "north") or the lower-cased exit name for room-specific exits.
    """
    direction: str
    command: str = ""
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def is_movement_command(command: str, known_exits: Iterable[str] = ()) -> bool:
    """True if the command is a direction or names one of the listed exits."""
    return _movement_direction(command, known_exits) is not None


def _movement_direction(command: str, known_exits: Iterable[str]) -> Optional[str]:
    if not command or not command.strip():
        return None

    direction = normalize_direction(command)
    if direction:
        return direction

    # Non-standard exits ("portal", "hole") are movements only where listed
    token = normalize_exit_token(command)
    for exit_name in known_exits:
        if normalize_exit_token(exit_name) == token:
            return token

    return None


class MovementTracker:
    """
    Holds at most one pending movement.

    Handles:
    - Recognition of direction commands (short/long forms, "go <direction>")
    - Newest-wins replacement of unconsumed movements
    - Exactly-once consumption by the next resolved room
    """

    def __init__(self, logger=None):
        self.logger = logger
        self._pending: Optional[PendingMovement] = None
        self._lock = threading.Lock()

    def notify(
        self, command: str, known_exits: Iterable[str] = ()
    ) -> Optional[PendingMovement]:
        """
        Inspect an outbound command and record it if it is a movement.

        Args:
            command: The command as sent to the server
            known_exits: Exit names listed for the current room

        Returns:
            The recorded PendingMovement, or None if the command is not a movement
        """
        direction = _movement_direction(command, known_exits)
        if direction is None:
            return None

        movement = PendingMovement(direction=direction, command=command.strip())
        with self._lock:
            superseded = self._pending
            self._pending = movement

        if self.logger:
            if superseded is not None:
                self.logger.debug(
                    f"Discarding unconsumed movement '{superseded.direction}'",
                    extra={
                        "event_type": "movement_superseded",
                        "direction": superseded.direction,
                        "replaced_by": direction,
                    },
                )
            self.logger.debug(
                f"Movement command: {direction}",
                extra={
                    "event_type": "movement_recorded",
                    "direction": direction,
                    "command": movement.command,
                },
            )
        return movement

    def record(self, direction: str) -> PendingMovement:
        """Set the pending movement directly, bypassing command recognition."""
        movement = PendingMovement(
            direction=normalize_exit_token(direction), command=direction
        )
        with self._lock:
            self._pending = movement
        return movement

    def peek(self) -> Optional[PendingMovement]:
        with self._lock:
            return self._pending

    def consume(self) -> Optional[PendingMovement]:
        """Return the pending movement and clear it."""
        with self._lock:
            movement = self._pending
            self._pending = None
        return movement

    def clear(self) -> None:
        with self._lock:
            self._pending = None
