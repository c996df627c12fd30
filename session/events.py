"""
ABOUTME: Immutable events driving a mapping session
ABOUTME: Inbound lines, outbound commands, and end of stream, dispatched in order
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple, Union


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LineReceived:
    """A decoded line from the server, in server order."""
    text: str
    received_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class CommandSent:
    """An outbound command, in send order."""
    command: str
    sent_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class StreamEnded:
    """The line source is exhausted; the open room is flushed."""
    ended_at: datetime = field(default_factory=_now)


SessionEvent = Union[LineReceived, CommandSent, StreamEnded]


@dataclass(frozen=True)
class RoomResolved:
    """Published to listeners after a room aggregate has been mapped."""
    room_id: str
    name: str
    description: str
    coordinates: Tuple[int, int, int]
    uncertain: bool
    is_new: bool
    arrived_by: Optional[str] = None
    items: Tuple[str, ...] = ()
    mobs: Tuple[str, ...] = ()
