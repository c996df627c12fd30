"""
Integration tests for MudSession: lines and commands in, rooms and maps out.
"""

from unittest.mock import patch

import pytest

from game_interface import QueueLineSource, TranscriptLineSource
from map_graph import generate_room_id
from orchestration import MudSession
from session.events import CommandSent, LineReceived, RoomResolved, StreamEnded

TAVERN_LINES = [
    "\x1b[1;33mThe Dragon's Breath Tavern\x1b[0m",
    "Smoke curls lazily from the hearth where a fire crackles warmly.",
    "A wooden bench sits against the wall.",
    "Exits: north, east",
    "<20hp 30mv>",
]

SQUARE_LINES = [
    "Market Square",
    "Stalls crowd the cobbles where merchants shout their wares all day.",
    "A merchant wanders between the stalls.",
    "Exits: south",
]

TAVERN_ID = generate_room_id(
    "The Dragon's Breath Tavern",
    "Smoke curls lazily from the hearth where a fire crackles warmly.",
)
SQUARE_ID = generate_room_id(
    "Market Square",
    "Stalls crowd the cobbles where merchants shout their wares all day.",
)


@pytest.fixture
def session(test_config, mock_logger):
    return MudSession(config=test_config, logger=mock_logger)


def walk_north(session):
    resolved = []
    session.add_room_listener(resolved.append)
    for line in TAVERN_LINES:
        session.process_line(line)
    session.notify_command_sent("north")
    for line in SQUARE_LINES:
        session.process_line(line)
    session.end_stream()
    return resolved


class TestLineIngestion:
    def test_two_room_walk(self, session):
        resolved = walk_north(session)

        assert [event.room_id for event in resolved] == [TAVERN_ID, SQUARE_ID]
        tavern, square = resolved
        assert tavern.coordinates == (0, 0, 0)
        assert tavern.arrived_by is None
        assert tavern.items == ("wooden bench",)
        assert square.coordinates == (0, 1, 0)
        assert square.arrived_by == "north"
        assert square.is_new is True
        assert square.mobs == ("merchant",)

        graph = session.room_graph()["graph"]
        assert graph["rooms"][TAVERN_ID]["exits"] == {"north": SQUARE_ID, "east": ""}
        assert graph["rooms"][SQUARE_ID]["exits"] == {"south": TAVERN_ID}

    def test_room_resolves_only_when_next_title_arrives(self, session):
        for line in TAVERN_LINES:
            assert session.process_line(line) is None

        assert session.current_map_room() is None
        assert session.current_room()["name"] == "The Dragon's Breath Tavern"

        event = session.process_line("Market Square")

        assert isinstance(event, RoomResolved)
        assert session.current_map_room()["id"] == TAVERN_ID

    def test_current_entities_follow_open_room(self, session):
        for line in TAVERN_LINES:
            session.process_line(line)

        assert session.current_entities() == {"items": ["wooden bench"], "mobs": []}

        for line in SQUARE_LINES:
            session.process_line(line)

        assert session.current_entities() == {"items": [], "mobs": ["merchant"]}

    def test_non_movement_command_leaves_no_pending_movement(self, session):
        for line in TAVERN_LINES:
            session.process_line(line)

        assert session.notify_command_sent("look") is False
        assert session.notify_command_sent("east") is True
        assert session.session_state.commands_sent == 2
        assert session.session_state.movements_recorded == 1

    def test_listed_nonstandard_exit_counts_as_movement(self, session):
        session.process_line("Wizard Tower")
        session.process_line("Exits: down, portal")

        assert session.notify_command_sent("portal") is True

    def test_failing_line_is_isolated(self, session, mock_logger):
        with patch.object(session.classifier, "classify", side_effect=RuntimeError("boom")):
            assert session.process_line("Anything") is None

        assert session.session_state.lines_failed == 1
        extra = mock_logger.error.call_args.kwargs["extra"]
        assert extra["event_type"] == "line_processing_error"
        assert extra["error_type"] == "RuntimeError"

        # Ingestion carries on afterwards
        session.process_line("Crossroads")
        assert session.current_room()["name"] == "Crossroads"

    def test_listener_errors_do_not_stop_ingestion(self, session, mock_logger):
        def broken_listener(event):
            raise ValueError("listener bug")

        received = []
        session.add_room_listener(broken_listener)
        session.add_room_listener(received.append)

        session.process_line("Crossroads")
        session.process_line("Market Square")

        assert len(received) == 1
        assert mock_logger.error.call_args.kwargs["extra"]["event_type"] == "room_listener_error"

    def test_remove_listener(self, session):
        received = []
        session.add_room_listener(received.append)
        session.remove_room_listener(received.append)

        session.process_line("Crossroads")
        session.process_line("Market Square")

        assert received == []

    def test_counters(self, session):
        walk_north(session)

        state = session.session_state
        assert state.lines_processed == len(TAVERN_LINES) + len(SQUARE_LINES)
        assert state.rooms_resolved == 2
        assert state.last_room_id == SQUARE_ID
        assert state.stream_ended is True


class TestOutputBuffer:
    def test_drain_returns_lines_since_last_poll(self, session):
        session.process_line("Crossroads")
        session.process_line("Exits: north")

        assert session.drain_output() == ["Crossroads", "Exits: north"]
        assert session.drain_output() == []

    def test_buffer_is_bounded(self, test_config, mock_logger):
        config = test_config.model_copy(update={"output_buffer_size": 3})
        session = MudSession(config=config, logger=mock_logger)

        for i in range(5):
            session.process_line(f"line {i}")

        assert session.drain_output() == ["line 2", "line 3", "line 4"]


class TestSources:
    def test_run_drains_queue_source(self, session):
        source = QueueLineSource(maxsize=50)
        for line in TAVERN_LINES + SQUARE_LINES:
            source.put_line(line)
        source.close()

        resolved = session.run(source)

        assert resolved == 2
        assert session.session_state.stream_ended is True

    def test_send_command_tracks_and_forwards(self, session):
        source = QueueLineSource()
        session.process_line("Crossroads")

        assert session.send_command("n", source) is True
        assert source.sent_commands == ["n"]
        assert session.movement_tracker.peek().direction == "north"

    def test_replay_transcript(self, session, tmp_path):
        transcript = tmp_path / "session.log"
        transcript.write_text(
            "\n".join(TAVERN_LINES + ["> north"] + SQUARE_LINES) + "\n", encoding="utf-8"
        )

        resolved = session.replay(TranscriptLineSource(transcript).iter_events())

        assert resolved == 2
        square = session.map_manager.get_room(SQUARE_ID)
        assert (square["x"], square["y"], square["z"]) == (0, 1, 0)


class TestDispatch:
    def test_events_route_to_handlers(self, session):
        session.dispatch(LineReceived(text="Crossroads"))
        session.dispatch(CommandSent(command="north"))
        session.dispatch(LineReceived(text="North Road"))
        event = session.dispatch(StreamEnded())

        assert event.name == "North Road"
        assert event.coordinates == (0, 1, 0)

    def test_unknown_event_rejected(self, session):
        with pytest.raises(TypeError):
            session.dispatch("Crossroads")


class TestPersistence:
    def test_auto_save_on_end(self, test_config, mock_logger):
        config = test_config.model_copy(update={"auto_save_on_end": True})
        session = MudSession(config=config, logger=mock_logger)

        walk_north(session)

        saved = session.map_manager.get_map_path()
        assert saved.exists()

        restored = MudSession(config=config, logger=mock_logger)
        assert restored.load_map() is True
        assert restored.current_map_room()["id"] == SQUARE_ID

    def test_failed_auto_save_does_not_abort_stream(self, test_config, mock_logger, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        config = test_config.model_copy(
            update={"auto_save_on_end": True, "map_cache_dir": str(blocker / "maps")}
        )
        session = MudSession(config=config, logger=mock_logger)
        source = QueueLineSource(maxsize=50)
        for line in TAVERN_LINES + SQUARE_LINES:
            source.put_line(line)
        source.close()

        resolved = session.run(source)

        assert resolved == 2
        assert session.session_state.stream_ended is True
        extra = mock_logger.error.call_args.kwargs["extra"]
        assert extra["event_type"] == "map_save_error"
        assert extra["error_type"] == "MapPersistenceError"

    def test_export_and_import(self, session, test_config, mock_logger, tmp_path):
        walk_north(session)
        target = session.export_map(tmp_path / "shared.json")

        other = MudSession(config=test_config, logger=mock_logger, server_tag="othermud")
        counts = other.import_map(target)

        assert counts["rooms_added"] == 2
        assert other.session_state.server_tag == "othermud"

    def test_reset(self, session):
        walk_north(session)

        session.reset("fresh")

        assert session.room_graph()["graph"]["rooms"] == {}
        assert session.session_state.server_tag == "fresh"
        assert session.session_state.lines_processed == 0
        assert session.drain_output() == []

    def test_status(self, session):
        walk_north(session)

        status = session.get_session_status()

        assert status["session"]["rooms_resolved"] == 2
        assert status["map_manager"]["total_rooms"] == 2
        assert status["context_manager"]["current_room"] == {}
