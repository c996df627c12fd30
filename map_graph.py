from typing import List, Dict, Tuple, Optional, Any
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone

DIRECTION_MAPPING = {
    "n": "north",
    "north": "north",
    "northward": "north",
    "s": "south",
    "south": "south",
    "southward": "south",
    "e": "east",
    "east": "east",
    "eastward": "east",
    "w": "west",
    "west": "west",
    "westward": "west",
    "u": "up",
    "up": "up",
    "upward": "up",
    "d": "down",
    "down": "down",
    "downward": "down",
    "ne": "northeast",
    "northeast": "northeast",
    "nw": "northwest",
    "northwest": "northwest",
    "se": "southeast",
    "southeast": "southeast",
    "sw": "southwest",
    "southwest": "southwest",
    "in": "in",
    "out": "out",
}

# (dx, dy, dz) per canonical direction. "in" and "out" have no geometry.
DIRECTION_OFFSETS: Dict[str, Tuple[int, int, int]] = {
    "north": (0, 1, 0),
    "south": (0, -1, 0),
    "east": (1, 0, 0),
    "west": (-1, 0, 0),
    "northeast": (1, 1, 0),
    "northwest": (-1, 1, 0),
    "southeast": (1, -1, 0),
    "southwest": (-1, -1, 0),
    "up": (0, 0, 1),
    "down": (0, 0, -1),
}

DEFAULT_OFFSET: Tuple[int, int, int] = (1, 0, 0)

OPPOSITE_DIRECTIONS = {
    "north": "south",
    "south": "north",
    "east": "west",
    "west": "east",
    "up": "down",
    "down": "up",
    "northeast": "southwest",
    "southwest": "northeast",
    "northwest": "southeast",
    "southeast": "northwest",
    "in": "out",
    "out": "in",
}

DESCRIPTION_HASH_LENGTH = 100


def normalize_direction(action_str: str) -> str | None:
    """
    Normalizes a command or exit token to a canonical direction if it represents one.
    Returns the canonical direction string (e.g., "north") or None if not a clear direction.
    """
    if not action_str:
        return None

    action_lower = " ".join(action_str.lower().split())

    if action_lower in DIRECTION_MAPPING:
        return DIRECTION_MAPPING[action_lower]

    # Handle "go <direction>"
    if action_lower.startswith("go "):
        potential_direction = action_lower[3:].strip()
        if potential_direction in DIRECTION_MAPPING:
            return DIRECTION_MAPPING[potential_direction]

    return None


def normalize_exit_token(exit_name: str) -> str:
    """Canonical direction for known tokens, lower-cased text for anything else."""
    return normalize_direction(exit_name) or " ".join(exit_name.lower().split())


def get_opposite_direction(direction: str) -> Optional[str]:
    if not direction:
        return None
    return OPPOSITE_DIRECTIONS.get(direction.lower())


def generate_room_id(
    name: str, description: str, hash_length: int = DESCRIPTION_HASH_LENGTH
) -> str:
    """
    Derive a stable room identifier from room text.

    Only the first ``hash_length`` characters of the description take part so
    dynamic trailing content does not split a room into several identities.

    Returns:
        32 character lowercase hex digest (first 16 bytes of SHA-256)
    """
    desc = description[:hash_length]
    digest = hashlib.sha256(f"{name}|{desc}".encode("utf-8")).hexdigest()
    return digest[:32]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RoomRecord:
    id: str
    name: str
    description: str = ""
    x: int = 0
    y: int = 0
    z: int = 0
    visit_count: int = 0
    last_visited: datetime = field(default_factory=_utc_now)
    uncertain: bool = False
    notes: str = ""
    image_path: str = ""

    @property
    def coordinates(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.z)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "visit_count": self.visit_count,
            "last_visited": self.last_visited.isoformat(),
            "uncertain": self.uncertain,
            "notes": self.notes,
            "image_path": self.image_path,
        }

    def __repr__(self) -> str:
        return f"RoomRecord(id={self.id[:8]}, name='{self.name}', at={self.coordinates})"


@dataclass
class ExitLink:
    from_id: str
    direction: str
    to_id: str = ""  # empty = unexplored

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.from_id, "direction": self.direction, "to": self.to_id}


class RoomGraph:
    """
    Room store plus a flat list of exit links.

    The link list is the single source of truth for exits; the per-room view
    returned by ``get_exits`` is built from an index keyed by
    ``(from_id, direction)`` which always points at the list entries.
    """

    def __init__(self, logger=None):
        self.logger = logger
        self.rooms: Dict[str, RoomRecord] = {}
        self.links: List[ExitLink] = []
        self._link_index: Dict[Tuple[str, str], ExitLink] = {}
        # Map conflicts: a link re-pointed at a different room
        self.connection_conflicts: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self.rooms

    def add_room(self, room: RoomRecord) -> RoomRecord:
        """Insert a new room. Existing rooms are returned unchanged."""
        if room.id not in self.rooms:
            self.rooms[room.id] = room
        return self.rooms[room.id]

    def get_room(self, room_id: Optional[str]) -> Optional[RoomRecord]:
        if not room_id:
            return None
        return self.rooms.get(room_id)

    def get_link(self, from_id: str, direction: str) -> Optional[ExitLink]:
        return self._link_index.get((from_id, direction))

    def get_exits(self, room_id: str) -> Dict[str, str]:
        """Per-room exit view: direction -> destination id ("" when unexplored)."""
        return {
            link.direction: link.to_id
            for link in self.links
            if link.from_id == room_id
        }

    def add_exit(self, from_id: str, direction: str, to_id: str = "") -> ExitLink:
        """
        Add or update the link for (from_id, direction).

        An existing entry is updated in place; otherwise a new link is appended.
        Re-pointing a resolved link at a different room is recorded as a conflict.
        """
        key = (from_id, direction)
        existing = self._link_index.get(key)
        if existing is not None:
            if existing.to_id and to_id and existing.to_id != to_id:
                conflict = {
                    "from_room_id": from_id,
                    "from_room": self._room_name(from_id),
                    "exit": direction,
                    "existing_destination_id": existing.to_id,
                    "existing_destination": self._room_name(existing.to_id),
                    "new_destination_id": to_id,
                    "new_destination": self._room_name(to_id),
                }
                self.connection_conflicts.append(conflict)
                if self.logger:
                    self.logger.warning(
                        f"Map conflict detected: {conflict['from_room']} -> {direction}",
                        extra={
                            "event_type": "map_conflict",
                            "details": f"Existing: {conflict['existing_destination']} vs New: {conflict['new_destination']}",
                        },
                    )
            existing.to_id = to_id
            return existing

        link = ExitLink(from_id=from_id, direction=direction, to_id=to_id)
        self.links.append(link)
        self._link_index[key] = link
        return link

    def add_unexplored_exit(self, from_id: str, direction: str) -> bool:
        """Record an exit without a known destination unless one is already recorded."""
        if (from_id, direction) in self._link_index:
            return False
        self.add_exit(from_id, direction, "")
        return True

    def get_neighbours(self, room_id: str) -> Dict[str, RoomRecord]:
        """Rooms one hop away, keyed by the direction that leads there."""
        if room_id not in self.rooms:
            return {}
        neighbours = {}
        for direction, neighbour_id in self.get_exits(room_id).items():
            neighbour = self.get_room(neighbour_id)
            if neighbour is not None:
                neighbours[direction] = neighbour
        return neighbours

    def find_rooms_by_name(self, name: str) -> List[RoomRecord]:
        return [room for room in self.rooms.values() if room.name == name]

    def find_room_at(self, x: int, y: int, z: int) -> Optional[RoomRecord]:
        for room in self.rooms.values():
            if room.x == x and room.y == y and room.z == z:
                return room
        return None

    def get_bounds(self) -> Dict[str, int]:
        if not self.rooms:
            return {"min_x": 0, "max_x": 0, "min_y": 0, "max_y": 0, "min_z": 0, "max_z": 0}
        xs = [room.x for room in self.rooms.values()]
        ys = [room.y for room in self.rooms.values()]
        zs = [room.z for room in self.rooms.values()]
        return {
            "min_x": min(xs),
            "max_x": max(xs),
            "min_y": min(ys),
            "max_y": max(ys),
            "min_z": min(zs),
            "max_z": max(zs),
        }

    def _room_name(self, room_id: str) -> str:
        room = self.rooms.get(room_id)
        return room.name if room else f"Room#{room_id[:8]}"

    def render_mermaid(self) -> str:
        """
        Render the map as a Mermaid diagram.

        Returns:
            Mermaid diagram syntax as a string
        """
        if not self.rooms:
            return "graph LR\n    A[No rooms mapped yet]"

        lines = ["graph LR"]

        room_id_to_node = {}
        sorted_rooms = sorted(
            self.rooms.values(), key=lambda r: (r.z, -r.y, r.x, r.name, r.id)
        )
        for node_counter, room in enumerate(sorted_rooms, 1):
            node_id = f"R{node_counter}"
            room_id_to_node[room.id] = node_id
            sanitized_name = (
                room.name.replace('"', '\\"').replace("[", "\\[").replace("]", "\\]")
            )
            marker = " ?" if room.uncertain else ""
            lines.append(
                f'    {node_id}["{sanitized_name} ({room.x},{room.y},{room.z}){marker}"]'
            )

        unmapped_counter = 1
        for room in sorted_rooms:
            from_node = room_id_to_node[room.id]
            for direction, to_id in sorted(self.get_exits(room.id).items()):
                sanitized_action = direction.replace('"', '\\"')
                if to_id in room_id_to_node:
                    lines.append(
                        f'    {from_node} -->|"{sanitized_action}"| {room_id_to_node[to_id]}'
                    )
                else:
                    unknown_id = f"UNK{unmapped_counter}"
                    lines.append(f'    {unknown_id}["Unknown Destination"]')
                    lines.append(
                        f'    {from_node} -.->|"{sanitized_action}"| {unknown_id}'
                    )
                    unmapped_counter += 1

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the graph for JSON export.

        Each room carries its exit view so consumers do not have to rebuild it;
        the flat ``exits`` list stays authoritative when the data is loaded back.
        """
        rooms = {}
        for room_id, room in self.rooms.items():
            room_data = room.to_dict()
            room_data["exits"] = self.get_exits(room_id)
            rooms[room_id] = room_data
        return {
            "rooms": rooms,
            "exits": [link.to_dict() for link in self.links],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], logger=None) -> "RoomGraph":
        """
        Restore a RoomGraph from its serialized form.

        Raises:
            KeyError: If required fields are missing from data
            ValueError: If data structure is invalid
        """
        instance = cls(logger=logger)

        for field_name in ("rooms", "exits"):
            if field_name not in data:
                raise KeyError(f"Missing required field: {field_name}")

        for room_id, room_data in data["rooms"].items():
            if room_data.get("id", room_id) != room_id:
                raise ValueError(
                    f"Room key {room_id} does not match room id {room_data.get('id')}"
                )
            last_visited = room_data.get("last_visited")
            room = RoomRecord(
                id=room_id,
                name=room_data["name"],
                description=room_data.get("description", ""),
                x=int(room_data.get("x", 0)),
                y=int(room_data.get("y", 0)),
                z=int(room_data.get("z", 0)),
                visit_count=int(room_data.get("visit_count", 0)),
                last_visited=(
                    datetime.fromisoformat(last_visited) if last_visited else _utc_now()
                ),
                uncertain=bool(room_data.get("uncertain", False)),
                notes=room_data.get("notes", ""),
                image_path=room_data.get("image_path", ""),
            )
            instance.rooms[room_id] = room

        for link_data in data["exits"]:
            instance.add_exit(
                link_data["from"], link_data["direction"], link_data.get("to", "")
            )

        # Exit views may list unexplored exits missing from the flat list
        for room_id, room_data in data["rooms"].items():
            for direction, to_id in (room_data.get("exits") or {}).items():
                link = instance.get_link(room_id, direction)
                if link is None:
                    instance.add_exit(room_id, direction, to_id or "")
                elif not link.to_id and to_id:
                    link.to_id = to_id

        return instance
