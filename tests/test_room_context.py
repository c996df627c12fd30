"""Tests for the room aggregate reducer and the locked ContextManager around it."""

import pytest

from line_classifier import classify_line
from managers.context_manager import ContextManager
from movement_tracker import PendingMovement
from session.room_context import RoomAggregate, reduce_line


def feed(lines, room=None):
    flushed = []
    for text in lines:
        step = reduce_line(room, classify_line(text))
        room = step.room
        if step.flushed is not None:
            flushed.append(step.flushed)
    return room, flushed


class TestReduceLine:
    def test_lines_before_first_title_are_ignored(self):
        room, flushed = feed(["Welcome to the realm of adventure, traveller. Enjoy your stay."])

        assert room is None
        assert flushed == []

    def test_room_accumulates_text(self):
        room, _ = feed(
            [
                "The Dragon's Breath Tavern",
                "Smoke curls lazily from the hearth where a fire crackles warmly.",
                "Tables are scattered around the room in no particular order at all.",
                "A wooden bench sits against the wall.",
                "A goblin lurks in the shadows.",
                "Exits: north, east",
            ]
        )

        assert room.title == "The Dragon's Breath Tavern"
        assert room.description == (
            "Smoke curls lazily from the hearth where a fire crackles warmly. "
            "Tables are scattered around the room in no particular order at all."
        )
        assert room.items == ("wooden bench",)
        assert room.mobs == ("goblin",)
        assert room.exits == ("north", "east")

    def test_exit_lists_merge_without_duplicates(self):
        room, _ = feed(["Crossroads", "Exits: north, east", "Exits: east, west"])

        assert room.exits == ("north", "east", "west")

    def test_new_title_flushes_previous_room(self):
        room, flushed = feed(["Crossroads", "Exits: north", "Market Square"])

        assert [r.title for r in flushed] == ["Crossroads"]
        assert flushed[0].exits == ("north",)
        assert room.title == "Market Square"
        assert room.exits == ()

    def test_prompts_and_system_lines_do_not_change_room(self):
        room, _ = feed(["Crossroads"])

        after, _ = feed(["<20hp>", "You are hungry."], room=room)

        assert after is room

    def test_arrival_attached_on_title_only(self):
        movement = PendingMovement(direction="north")
        step = reduce_line(None, classify_line("Market Square"), arrival=movement)

        assert step.room.arrival == movement

        step = reduce_line(
            step.room, classify_line("Exits: south"), arrival=PendingMovement(direction="east")
        )
        assert step.room.arrival == movement

    def test_aggregate_is_immutable(self):
        room = RoomAggregate(title="Crossroads")

        with pytest.raises(AttributeError):
            room.title = "Elsewhere"

    def test_to_dict(self):
        room, _ = feed(["Crossroads", "Exits: n"])

        assert room.to_dict() == {
            "name": "Crossroads",
            "description": "",
            "exits": ["n"],
            "items": [],
            "mobs": [],
        }


@pytest.fixture
def context_manager(mock_logger, test_config, session_state):
    return ContextManager(mock_logger, test_config, session_state)


class TestContextManager:
    def test_apply_returns_flushed_room(self, context_manager):
        assert context_manager.apply(classify_line("Crossroads")) is None

        flushed = context_manager.apply(classify_line("Market Square"))

        assert flushed.title == "Crossroads"
        assert context_manager.current_aggregate().title == "Market Square"

    def test_current_entities(self, context_manager):
        assert context_manager.current_entities() == {"items": [], "mobs": []}

        context_manager.apply(classify_line("Armoury"))
        context_manager.apply(classify_line("A rusty sword lies here."))
        context_manager.apply(classify_line("The smith is standing here."))

        assert context_manager.current_entities() == {
            "items": ["rusty sword"],
            "mobs": ["smith"],
        }

    def test_flush_closes_open_room(self, context_manager):
        context_manager.apply(classify_line("Crossroads"))

        flushed = context_manager.flush()

        assert flushed.title == "Crossroads"
        assert context_manager.current_room() == {}
        assert context_manager.flush() is None

    def test_reset(self, context_manager):
        context_manager.apply(classify_line("Crossroads"))

        context_manager.reset()

        assert context_manager.current_room() == {}

    def test_status_reports_current_room(self, context_manager):
        context_manager.apply(classify_line("Crossroads"))

        status = context_manager.get_status()

        assert status["component"] == "context_manager"
        assert status["current_room"]["name"] == "Crossroads"
