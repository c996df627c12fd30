"""
ABOUTME: Room aggregate and the pure reducer that folds classified lines into it
ABOUTME: A new title line closes the open aggregate and opens the next one
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from line_classifier import ClassifiedLine, LineKind
from movement_tracker import PendingMovement


@dataclass(frozen=True)
class RoomAggregate:
    """
    Everything seen for the current room since its title line.

    Instances are never mutated; the reducer returns a replacement.
    ``arrival`` is the movement that was pending when the title arrived.
    """
    title: str
    description_lines: Tuple[str, ...] = ()
    exits: Tuple[str, ...] = ()
    items: Tuple[str, ...] = ()
    mobs: Tuple[str, ...] = ()
    arrival: Optional[PendingMovement] = None

    @property
    def description(self) -> str:
        return " ".join(self.description_lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.title,
            "description": self.description,
            "exits": list(self.exits),
            "items": list(self.items),
            "mobs": list(self.mobs),
        }


@dataclass(frozen=True)
class ContextStep:
    """Result of feeding one line to the reducer."""
    room: Optional[RoomAggregate]
    flushed: Optional[RoomAggregate] = None


def reduce_line(
    room: Optional[RoomAggregate],
    line: ClassifiedLine,
    arrival: Optional[PendingMovement] = None,
) -> ContextStep:
    """
    Fold one classified line into the open room aggregate.

    Args:
        room: The open aggregate, or None before the first title
        line: The classified line
        arrival: Movement to attach if this line opens a new room

    Returns:
        ContextStep with the next aggregate and, on a title line, the
        aggregate it closed
    """
    if line.kind == LineKind.ROOM_TITLE:
        opened = RoomAggregate(title=line.room_name or line.clean_text, arrival=arrival)
        return ContextStep(room=opened, flushed=room)

    # Everything else only decorates an open room; without one it is ambient text
    if room is None:
        return ContextStep(room=None)

    if line.kind == LineKind.ROOM_DESCRIPTION:
        return ContextStep(
            room=replace(room, description_lines=room.description_lines + (line.clean_text,))
        )

    if line.kind == LineKind.EXIT_LIST:
        new_exits = tuple(e for e in dict.fromkeys(line.exits) if e not in room.exits)
        if not new_exits:
            return ContextStep(room=room)
        return ContextStep(room=replace(room, exits=room.exits + new_exits))

    if line.kind == LineKind.ITEM_MENTION and line.entity_name:
        return ContextStep(room=replace(room, items=room.items + (line.entity_name,)))

    if line.kind == LineKind.MOB_MENTION and line.entity_name:
        return ContextStep(room=replace(room, mobs=room.mobs + (line.entity_name,)))

    return ContextStep(room=room)
