"""
MapManager for MUD mapper sessions.

Handles all map-related responsibilities:
- Room identity resolution from room text
- Coordinate inference from movement and collision handling
- Bidirectional linking and visit statistics
- Map persistence (save/load by server tag, export/import by path)
"""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from errors import MapPersistenceError
from managers.base_manager import BaseManager
from map_graph import (
    DEFAULT_OFFSET,
    DIRECTION_OFFSETS,
    RoomGraph,
    RoomRecord,
    generate_room_id,
    get_opposite_direction,
    normalize_exit_token,
)
from map_persistence import (
    build_document,
    map_path_for,
    read_snapshot,
    snapshot_graph_data,
    write_snapshot,
)
from movement_tracker import MovementTracker, PendingMovement
from session.events import RoomResolved
from session.room_context import RoomAggregate
from session.session_configuration import SessionConfiguration
from session.session_state import SessionState


def _offset(coordinates: Tuple[int, int, int], delta: Tuple[int, int, int]) -> Tuple[int, int, int]:
    return (coordinates[0] + delta[0], coordinates[1] + delta[1], coordinates[2] + delta[2])


class MapManager(BaseManager):
    """
    Builds the room graph from resolved room aggregates.

    Responsibilities:
    - Stable room ids derived from (name, truncated description)
    - Placement of new rooms relative to the current room
    - Linking rooms in both directions when a movement is known
    - Snapshot persistence without holding the graph lock during disk I/O

    All graph state (the RoomGraph and the current/previous pointers) is
    guarded by one re-entrant lock. Read accessors return copies.
    """

    def __init__(
        self,
        logger,
        config: SessionConfiguration,
        session_state: SessionState,
        movement_tracker: Optional[MovementTracker] = None,
    ):
        super().__init__(logger, config, session_state, "map_manager")

        self.movement_tracker = movement_tracker or MovementTracker(logger=logger)
        self.game_map = RoomGraph(logger=logger)
        self.current_room_id: Optional[str] = None
        self.previous_room_id: Optional[str] = None
        # Known rooms re-entered where the geometry disagrees (maze rooms sharing text)
        self.identity_conflicts: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Drop the whole map and both room pointers."""
        with self._lock:
            self.game_map = RoomGraph(logger=self.logger)
            self.current_room_id = None
            self.previous_room_id = None
            self.identity_conflicts = []
        self.movement_tracker.clear()
        self.log_debug("Map manager reset")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def on_room_resolved(self, name: str, description: str = "", exits: Iterable[str] = ()) -> str:
        """
        Resolve a room using the movement tracker's pending movement.

        The pending movement is consumed whether or not resolution finds a link.

        Returns:
            The room id
        """
        movement = self.movement_tracker.consume()
        return self.resolve_room(name, description, exits, movement)

    def resolve_room(
        self,
        name: str,
        description: str = "",
        exits: Iterable[str] = (),
        movement: Optional[PendingMovement] = None,
    ) -> str:
        """
        Resolve a room with an explicitly supplied arrival movement.

        Args:
            name: Room title
            description: Full room description (may be empty)
            exits: Exit tokens as listed by the server
            movement: The movement that led here, if known

        Returns:
            The room id
        """
        room, _ = self._resolve(name, description, exits, movement)
        return room.id

    def resolve_aggregate(self, aggregate: RoomAggregate) -> RoomResolved:
        """Resolve a flushed room aggregate and describe the outcome."""
        room, is_new = self._resolve(
            aggregate.title, aggregate.description, aggregate.exits, aggregate.arrival
        )
        return RoomResolved(
            room_id=room.id,
            name=room.name,
            description=room.description,
            coordinates=room.coordinates,
            uncertain=room.uncertain,
            is_new=is_new,
            arrived_by=aggregate.arrival.direction if aggregate.arrival else None,
            items=aggregate.items,
            mobs=aggregate.mobs,
        )

    def _resolve(
        self,
        name: str,
        description: str,
        exits: Iterable[str],
        movement: Optional[PendingMovement],
    ) -> Tuple[RoomRecord, bool]:
        description = description or ""
        direction = movement.direction if movement else None
        observed_exits = list(
            dict.fromkeys(normalize_exit_token(e) for e in exits if e and e.strip())
        )
        room_id = generate_room_id(name, description, self.config.description_hash_length)

        with self._lock:
            from_room_id = self.current_room_id
            existing = self.game_map.get_room(room_id)

            if existing is not None:
                self._revisit_room(existing, description, observed_exits, direction)
                is_new = False
            else:
                self._create_room(room_id, name, description, observed_exits, direction)
                is_new = True

            if from_room_id and direction:
                self._link_rooms(from_room_id, direction, room_id)

            self.previous_room_id = from_room_id
            self.current_room_id = room_id
            room = self.game_map.get_room(room_id)
            return RoomRecord(**vars(room)), is_new

    def _revisit_room(
        self,
        room: RoomRecord,
        description: str,
        observed_exits: List[str],
        direction: Optional[str],
    ) -> None:
        room.visit_count += 1
        room.last_visited = datetime.now(timezone.utc)
        room.description = description

        for exit_name in observed_exits:
            self.game_map.add_unexplored_exit(room.id, exit_name)

        self._check_identity(room, direction)

        self.log_debug(
            f"Returned to known room: {room.name} (ID: {room.id[:8]})",
            event_type="room_revisited",
            room_id=room.id,
            room_name=room.name,
            visit_count=room.visit_count,
        )

    def _check_identity(self, room: RoomRecord, direction: Optional[str]) -> None:
        """
        Flag re-entries whose geometry contradicts the known room's position.

        Rooms with identical text share one id, so a maze of look-alike rooms
        collapses into a single record. The id is left alone; the suspicion is
        recorded for whoever consumes the map.
        """
        if not direction or not self.current_room_id or self.current_room_id == room.id:
            return
        offset = DIRECTION_OFFSETS.get(direction)
        current = self.game_map.get_room(self.current_room_id)
        if offset is None or current is None:
            return

        expected = _offset(current.coordinates, offset)
        if expected == room.coordinates:
            return

        conflict = {
            "room_id": room.id,
            "room_name": room.name,
            "from_room_id": current.id,
            "from_room": current.name,
            "direction": direction,
            "expected_coordinates": expected,
            "known_coordinates": room.coordinates,
        }
        self.identity_conflicts.append(conflict)
        self.log_warning(
            f"Possible maze room: '{room.name}' reached via {direction} from '{current.name}' "
            f"but is mapped at {room.coordinates}, expected {expected}",
            event_type="identity_conflict",
            room_id=room.id,
            direction=direction,
        )

    def _create_room(
        self,
        room_id: str,
        name: str,
        description: str,
        observed_exits: List[str],
        direction: Optional[str],
    ) -> RoomRecord:
        coordinates, uncertain = self._place_new_room(name, direction)
        room = RoomRecord(
            id=room_id,
            name=name,
            description=description,
            x=coordinates[0],
            y=coordinates[1],
            z=coordinates[2],
            visit_count=1,
            uncertain=uncertain,
        )
        self.game_map.add_room(room)

        for exit_name in observed_exits:
            self.game_map.add_unexplored_exit(room_id, exit_name)

        self.log_info(
            f"Mapped new room: {name} at {coordinates} [ID: {room_id[:8]}]",
            event_type="room_mapped",
            room_id=room_id,
            room_name=name,
            coordinates=list(coordinates),
            uncertain=uncertain,
            direction=direction,
        )
        return room

    def _place_new_room(
        self, name: str, direction: Optional[str]
    ) -> Tuple[Tuple[int, int, int], bool]:
        """
        Work out coordinates for a room that is not yet on the map.

        Returns:
            (coordinates, uncertain)
        """
        if not self.game_map.rooms:
            return (0, 0, 0), False

        current = self.game_map.get_room(self.current_room_id)

        if current is None or not direction:
            # No adjacency evidence: park it beside the current room
            base = current.coordinates if current else (0, 0, 0)
            candidate = _offset(base, DEFAULT_OFFSET) if current else base
            uncertain = True
        else:
            offset = DIRECTION_OFFSETS.get(direction)
            uncertain = offset is None
            if offset is None:
                self.log_debug(
                    f"Unknown direction: {direction}",
                    event_type="unknown_direction",
                    direction=direction,
                )
                offset = DEFAULT_OFFSET
            candidate = _offset(current.coordinates, offset)

        occupied = {room.coordinates for room in self.game_map.rooms.values()}
        if candidate in occupied:
            occupant = self.game_map.find_room_at(*candidate)
            original = candidate
            while candidate in occupied:
                candidate = _offset(candidate, DEFAULT_OFFSET)
            uncertain = True
            self.log_warning(
                f"Coordinate collision at {original} for new room {name}; "
                f"placed at {candidate} (occupied by {occupant.name if occupant else 'unknown'})",
                event_type="coordinate_collision",
                coordinates=list(original),
                resolved_coordinates=list(candidate),
            )

        return candidate, uncertain

    def _link_rooms(self, from_id: str, direction: str, to_id: str) -> None:
        """Forward link, plus the reverse link when the direction has an opposite."""
        self.game_map.add_exit(from_id, direction, to_id)

        reverse = get_opposite_direction(direction)
        if reverse:
            self.game_map.add_exit(to_id, reverse, from_id)

        from_room = self.game_map.get_room(from_id)
        to_room = self.game_map.get_room(to_id)
        self.log_debug(
            f"Linked rooms: {from_room.name if from_room else from_id} -[{direction}]-> "
            f"{to_room.name if to_room else to_id}",
            event_type="rooms_linked",
            from_room_id=from_id,
            to_room_id=to_id,
            direction=direction,
            reverse_direction=reverse,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _room_view(self, room: RoomRecord) -> Dict[str, Any]:
        view = room.to_dict()
        view["exits"] = self.game_map.get_exits(room.id)
        return view

    def get_room(self, room_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            room = self.game_map.get_room(room_id)
            return self._room_view(room) if room else None

    def get_current_room(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.get_room(self.current_room_id)

    def get_exits(self, room_id: str) -> Dict[str, str]:
        with self._lock:
            return self.game_map.get_exits(room_id)

    def get_neighbours(self, room_id: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """Neighbouring rooms of the given (default: current) room, keyed by direction."""
        with self._lock:
            room_id = room_id or self.current_room_id
            if not room_id:
                return {}
            return {
                direction: self._room_view(room)
                for direction, room in self.game_map.get_neighbours(room_id).items()
            }

    def find_rooms_by_name(self, name: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._room_view(room) for room in self.game_map.find_rooms_by_name(name)]

    def find_room_at(self, x: int, y: int, z: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            room = self.game_map.find_room_at(x, y, z)
            return self._room_view(room) if room else None

    def get_map_stats(self) -> Dict[str, Any]:
        with self._lock:
            links = self.game_map.links
            return {
                "total_rooms": len(self.game_map.rooms),
                "uncertain_rooms": sum(1 for r in self.game_map.rooms.values() if r.uncertain),
                "total_exits": len(links),
                "explored_exits": sum(1 for link in links if link.to_id),
                "bounds": self.game_map.get_bounds(),
                "current_room": self.current_room_id,
                "previous_room": self.previous_room_id,
                "map_conflicts": len(self.game_map.connection_conflicts),
                "identity_conflicts": len(self.identity_conflicts),
            }

    def get_graph_snapshot(self) -> Dict[str, Any]:
        """Deep copy of the graph plus pointers, safe to hand to other threads."""
        with self._lock:
            return {
                "graph": self.game_map.to_dict(),
                "current_room_id": self.current_room_id,
                "previous_room_id": self.previous_room_id,
            }

    def render_mermaid(self) -> str:
        with self._lock:
            return self.game_map.render_mermaid()

    def set_room_notes(self, room_id: str, notes: str) -> bool:
        with self._lock:
            room = self.game_map.get_room(room_id)
            if room is None:
                return False
            room.notes = notes
            return True

    def set_room_image(self, room_id: str, image_path: str) -> bool:
        """Attach the image collaborator's cache key to a room."""
        with self._lock:
            room = self.game_map.get_room(room_id)
            if room is None:
                return False
            room.image_path = image_path
            return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _build_document(self, server_tag: str) -> Dict[str, Any]:
        with self._lock:
            return build_document(
                self.game_map.to_dict(),
                server_tag,
                self.current_room_id,
                self.previous_room_id,
            )

    def get_map_path(self, server_tag: Optional[str] = None) -> Path:
        tag = server_tag if server_tag is not None else self.session_state.server_tag
        return map_path_for(tag, self.config.map_cache_dir, self.config.default_map_file)

    def save_map(self, server_tag: Optional[str] = None) -> Path:
        """
        Persist the map for a server tag into the map cache directory.

        The document is built under the graph lock; the file is written after
        the lock is released.

        Raises:
            MapPersistenceError: If the file cannot be written
        """
        tag = server_tag if server_tag is not None else self.session_state.server_tag
        path = self.get_map_path(tag)
        document = self._build_document(tag)
        write_snapshot(path, document, logger=self.logger)

        self.log_info(
            f"Saved map with {len(document['graph']['rooms'])} rooms to {path}",
            event_type="map_saved",
            filepath=str(path),
            rooms=len(document["graph"]["rooms"]),
        )
        return path

    def load_map(self, server_tag: Optional[str] = None) -> bool:
        """
        Replace the in-memory map with the saved map for a server tag.

        Returns:
            True if a map was loaded, False if no saved map exists

        Raises:
            MapPersistenceError: If the saved map is malformed; the in-memory
                map is left untouched
        """
        path = self.get_map_path(server_tag)
        snapshot = read_snapshot(path, logger=self.logger)
        if snapshot is None:
            self.log_info(f"No existing map found at {path}", event_type="map_load_skip")
            return False

        graph = self._graph_from_snapshot(snapshot, path)

        with self._lock:
            self.game_map = graph
            self.current_room_id = (
                snapshot.current_room_id if snapshot.current_room_id in graph else None
            )
            self.previous_room_id = (
                snapshot.previous_room_id if snapshot.previous_room_id in graph else None
            )
            self.identity_conflicts = []

        self.log_info(
            f"Loaded map with {len(graph.rooms)} rooms from {path}",
            event_type="map_loaded",
            filepath=str(path),
            rooms=len(graph.rooms),
            file_version=snapshot.version,
        )
        return True

    def export_map(self, filepath: str | Path, server_tag: Optional[str] = None) -> Path:
        """Write the map document to an arbitrary path for sharing."""
        tag = server_tag if server_tag is not None else self.session_state.server_tag
        document = self._build_document(tag)
        path = write_snapshot(filepath, document, logger=self.logger)
        self.log_info(f"Exported map to {path}", event_type="map_exported", filepath=str(path))
        return path

    def import_map(self, filepath: str | Path) -> Dict[str, int]:
        """
        Merge a foreign map into this one.

        Rooms already on the map are never overwritten. Imported links fill in
        missing or unexplored exits but never replace a known destination.

        Returns:
            Counts of rooms and links added

        Raises:
            MapPersistenceError: If the file is missing or malformed
        """
        path = Path(filepath)
        snapshot = read_snapshot(path, logger=self.logger)
        if snapshot is None:
            raise MapPersistenceError(f"Map file to import does not exist: {path}")

        imported = self._graph_from_snapshot(snapshot, path)
        rooms_added = 0
        links_added = 0

        with self._lock:
            for room_id, room in imported.rooms.items():
                if room_id not in self.game_map.rooms:
                    self.game_map.rooms[room_id] = room
                    rooms_added += 1

            for link in imported.links:
                existing = self.game_map.get_link(link.from_id, link.direction)
                if existing is None:
                    self.game_map.add_exit(link.from_id, link.direction, link.to_id)
                    links_added += 1
                elif not existing.to_id and link.to_id:
                    existing.to_id = link.to_id
                    links_added += 1

            total_rooms = len(self.game_map.rooms)

        self.log_info(
            f"Imported map from {path} (now {total_rooms} rooms)",
            event_type="map_imported",
            filepath=str(path),
            rooms_added=rooms_added,
            links_added=links_added,
        )
        return {"rooms_added": rooms_added, "links_added": links_added}

    def _graph_from_snapshot(self, snapshot, path: Path) -> RoomGraph:
        try:
            return RoomGraph.from_dict(snapshot_graph_data(snapshot), logger=self.logger)
        except (KeyError, ValueError) as e:
            raise MapPersistenceError(f"Map file {path} has an invalid structure: {e}") from e

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(self.get_map_stats())
        return status
