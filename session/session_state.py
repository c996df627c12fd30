"""
SessionState dataclass for the MUD mapper.

This module defines the state object owned by a MudSession and passed by
reference to its managers. Structures with their own locks (the room graph,
the room aggregate, the pending movement) live in the managers; this object
only carries the session identity and ingestion counters.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class SessionState:
    """Identity and counters for one mapping session."""

    server_tag: str = "default"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Ingestion counters
    lines_processed: int = 0
    lines_failed: int = 0
    commands_sent: int = 0
    movements_recorded: int = 0
    rooms_resolved: int = 0

    # Most recent resolution, for status reporting
    last_room_id: Optional[str] = None
    last_room_name: str = ""
    stream_ended: bool = False

    def reset(self, server_tag: Optional[str] = None) -> None:
        """Reset counters for a fresh session, optionally switching server."""
        if server_tag:
            self.server_tag = server_tag
        self.started_at = datetime.now(timezone.utc)
        self.lines_processed = 0
        self.lines_failed = 0
        self.commands_sent = 0
        self.movements_recorded = 0
        self.rooms_resolved = 0
        self.last_room_id = None
        self.last_room_name = ""
        self.stream_ended = False

    def get_export_data(self) -> Dict[str, Any]:
        return {
            "server_tag": self.server_tag,
            "started_at": self.started_at.isoformat(),
            "lines_processed": self.lines_processed,
            "lines_failed": self.lines_failed,
            "commands_sent": self.commands_sent,
            "movements_recorded": self.movements_recorded,
            "rooms_resolved": self.rooms_resolved,
            "last_room_id": self.last_room_id,
            "last_room_name": self.last_room_name,
            "stream_ended": self.stream_ended,
        }
