import logging
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from errors import MapPersistenceError
from game_interface.line_stream import LineSource
from line_classifier import LineClassifier, LineKind
from managers import ContextManager, MapManager
from movement_tracker import MovementTracker
from session.events import CommandSent, LineReceived, RoomResolved, SessionEvent, StreamEnded
from session.room_context import RoomAggregate
from session.session_configuration import SessionConfiguration
from session.session_state import SessionState

RoomListener = Callable[[RoomResolved], None]


class MudSession:
    """
    Coordinates one mapping session against one server.

    This class is responsible for:
    - Classifying inbound lines and feeding the room context
    - Forwarding outbound commands to the movement tracker
    - Resolving closed room contexts into the map and notifying listeners
    - Keeping a bounded buffer of recent raw lines for polling clients

    Inbound lines must be delivered in server order from a single thread.
    Everything else (commands, queries, persistence) may be called from
    other threads.
    """

    def __init__(
        self,
        config: Optional[SessionConfiguration] = None,
        logger: Optional[logging.Logger] = None,
        server_tag: Optional[str] = None,
    ):
        self.config = config if config is not None else SessionConfiguration.from_toml()
        self.logger = logger if logger is not None else logging.getLogger("seemud")

        self.session_state = SessionState(server_tag=server_tag or self.config.server_tag)
        self.classifier = LineClassifier(title_max_length=self.config.title_max_length)

        self._initialize_managers()

        self._listeners: List[RoomListener] = []
        self._output: Deque[str] = deque(maxlen=self.config.output_buffer_size)
        self._lock = threading.Lock()

        self.logger.info(
            f"Mapping session started for server '{self.session_state.server_tag}'",
            extra={
                "event_type": "session_init",
                "server_tag": self.session_state.server_tag,
                "map_cache_dir": self.config.map_cache_dir,
            },
        )

    def _initialize_managers(self) -> None:
        self.movement_tracker = MovementTracker(logger=self.logger)
        self.context_manager = ContextManager(
            logger=self.logger, config=self.config, session_state=self.session_state
        )
        self.map_manager = MapManager(
            logger=self.logger,
            config=self.config,
            session_state=self.session_state,
            movement_tracker=self.movement_tracker,
        )
        self.managers = [self.context_manager, self.map_manager]

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: SessionEvent) -> Optional[RoomResolved]:
        """Route one session event; returns the room resolved by it, if any."""
        if isinstance(event, LineReceived):
            return self.process_line(event.text)
        if isinstance(event, CommandSent):
            self.notify_command_sent(event.command)
            return None
        if isinstance(event, StreamEnded):
            return self.end_stream()
        raise TypeError(f"Unsupported session event: {type(event).__name__}")

    def process_line(self, line: str) -> Optional[RoomResolved]:
        """
        Handle one inbound server line.

        A failure while handling the line is logged and confined to it.

        Returns:
            The RoomResolved event if this line closed a room, else None
        """
        with self._lock:
            self._output.append(line)
            self.session_state.lines_processed += 1

        try:
            classified = self.classifier.classify(line)
            if classified.kind == LineKind.UNCLASSIFIED:
                return None

            # The movement belongs to the room this title opens
            arrival = (
                self.movement_tracker.consume()
                if classified.kind == LineKind.ROOM_TITLE
                else None
            )
            flushed = self.context_manager.apply(classified, arrival)
            if flushed is not None:
                return self._resolve(flushed)
        except Exception as e:
            with self._lock:
                self.session_state.lines_failed += 1
            self.logger.error(
                f"Failed to process line: {e}",
                extra={
                    "event_type": "line_processing_error",
                    "line": line[:200] if line else "",
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
        return None

    def notify_command_sent(self, command: str) -> bool:
        """
        Record an outbound command. Movement commands become pending.

        Returns:
            True if the command was recognized as a movement
        """
        movement = self.movement_tracker.notify(command, self._known_exits())
        with self._lock:
            self.session_state.commands_sent += 1
            if movement is not None:
                self.session_state.movements_recorded += 1
        return movement is not None

    def send_command(self, command: str, source: Optional[LineSource] = None) -> bool:
        """Track a command, then forward it to the line source if one is given."""
        is_movement = self.notify_command_sent(command)
        if source is not None:
            source.send_command(command)
        return is_movement

    def end_stream(self) -> Optional[RoomResolved]:
        """Flush the open room; optionally save the map."""
        with self._lock:
            self.session_state.stream_ended = True

        resolved = None
        flushed = self.context_manager.flush()
        if flushed is not None:
            resolved = self._resolve(flushed)

        self.logger.info(
            "Line stream ended",
            extra={
                "event_type": "stream_ended",
                **self.session_state.get_export_data(),
            },
        )

        if self.config.auto_save_on_end:
            try:
                self.save_map()
            except MapPersistenceError as e:
                self.logger.error(
                    f"Failed to save map at end of stream: {e}",
                    extra={
                        "event_type": "map_save_error",
                        "server_tag": self.session_state.server_tag,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
        return resolved

    def run(self, source: LineSource) -> int:
        """
        Drain a line source until it reports end of stream, then flush.

        Returns:
            Number of rooms resolved while draining
        """
        resolved = 0
        while True:
            line = source.next_line()
            if line is None:
                break
            if self.process_line(line) is not None:
                resolved += 1

        if self.end_stream() is not None:
            resolved += 1
        return resolved

    def replay(self, events: Iterable[SessionEvent]) -> int:
        """Dispatch a recorded event sequence, then end the stream."""
        resolved = 0
        for event in events:
            if self.dispatch(event) is not None:
                resolved += 1
        if self.end_stream() is not None:
            resolved += 1
        return resolved

    def _known_exits(self) -> List[str]:
        exits: List[str] = []
        room = self.context_manager.current_aggregate()
        if room is not None:
            exits.extend(room.exits)
        current = self.map_manager.get_current_room()
        if current is not None:
            exits.extend(current["exits"].keys())
        return exits

    def _resolve(self, aggregate: RoomAggregate) -> RoomResolved:
        event = self.map_manager.resolve_aggregate(aggregate)

        with self._lock:
            self.session_state.rooms_resolved += 1
            self.session_state.last_room_id = event.room_id
            self.session_state.last_room_name = event.name
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self.logger.error(
                    f"Room listener failed: {e}",
                    extra={
                        "event_type": "room_listener_error",
                        "room_id": event.room_id,
                        "error": str(e),
                    },
                    exc_info=True,
                )
        return event

    # ------------------------------------------------------------------
    # Listeners and polling
    # ------------------------------------------------------------------

    def add_room_listener(self, callback: RoomListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_room_listener(self, callback: RoomListener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def drain_output(self) -> List[str]:
        """Raw lines received since the previous call (up to the buffer size)."""
        with self._lock:
            lines = list(self._output)
            self._output.clear()
        return lines

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_room(self) -> Dict[str, Any]:
        """The room being described right now: {name, description, exits, items, mobs} or {}."""
        return self.context_manager.current_room()

    def current_map_room(self) -> Optional[Dict[str, Any]]:
        """The most recently resolved room record, or None before the first resolution."""
        return self.map_manager.get_current_room()

    def current_entities(self) -> Dict[str, List[str]]:
        return self.context_manager.current_entities()

    def room_graph(self) -> Dict[str, Any]:
        return self.map_manager.get_graph_snapshot()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_map(self, server_tag: Optional[str] = None) -> Path:
        return self.map_manager.save_map(server_tag)

    def load_map(self, server_tag: Optional[str] = None) -> bool:
        return self.map_manager.load_map(server_tag)

    def export_map(self, filepath: str | Path) -> Path:
        return self.map_manager.export_map(filepath)

    def import_map(self, filepath: str | Path) -> Dict[str, int]:
        return self.map_manager.import_map(filepath)

    def reset(self, server_tag: Optional[str] = None) -> None:
        """Start over with an empty map, optionally for another server."""
        for manager in self.managers:
            manager.reset()
        self.movement_tracker.clear()
        with self._lock:
            self.session_state.reset(server_tag)
            self._output.clear()

    def get_session_status(self) -> Dict[str, Any]:
        with self._lock:
            status = {"session": self.session_state.get_export_data()}
        for manager in self.managers:
            status[manager.component_name] = manager.get_status()
        return status
