"""Tests for movement command recognition and the pending movement slot."""

import threading

import pytest

from movement_tracker import MovementTracker, PendingMovement, is_movement_command


class TestMovementRecognition:
    @pytest.mark.parametrize(
        "command,expected",
        [
            ("n", "north"),
            ("north", "north"),
            ("NE", "northeast"),
            ("go south", "south"),
            ("  Go  Up  ", "up"),
            ("westward", "west"),
            ("d", "down"),
            ("in", "in"),
            ("out", "out"),
        ],
    )
    def test_standard_directions(self, command, expected):
        tracker = MovementTracker()

        movement = tracker.notify(command)

        assert movement is not None
        assert movement.direction == expected
        assert movement.command == command.strip()

    @pytest.mark.parametrize("command", ["look", "get lamp", "say north", "", "   "])
    def test_non_movement_commands_ignored(self, command):
        tracker = MovementTracker()

        assert tracker.notify(command) is None
        assert tracker.peek() is None

    def test_listed_nonstandard_exit_is_movement(self):
        tracker = MovementTracker()

        movement = tracker.notify("Portal", known_exits=["north", "portal"])

        assert movement.direction == "portal"

    def test_unlisted_nonstandard_exit_is_not_movement(self):
        assert not is_movement_command("portal", known_exits=["north"])
        assert is_movement_command("portal", known_exits=["Portal"])
        assert is_movement_command("s")


class TestPendingSlot:
    def test_newest_movement_wins(self, mock_logger):
        tracker = MovementTracker(logger=mock_logger)

        tracker.notify("north")
        tracker.notify("east")

        assert tracker.peek().direction == "east"
        event_types = [
            call.kwargs["extra"]["event_type"] for call in mock_logger.debug.call_args_list
        ]
        assert "movement_superseded" in event_types

    def test_non_movement_does_not_clear_pending(self):
        tracker = MovementTracker()

        tracker.notify("north")
        tracker.notify("look")

        assert tracker.peek().direction == "north"

    def test_consume_is_exactly_once(self):
        tracker = MovementTracker()
        tracker.notify("up")

        first = tracker.consume()
        second = tracker.consume()

        assert isinstance(first, PendingMovement)
        assert first.direction == "up"
        assert second is None

    def test_record_normalizes_direction(self):
        tracker = MovementTracker()

        movement = tracker.record("SW")

        assert movement.direction == "southwest"
        assert tracker.peek() == movement

    def test_clear(self):
        tracker = MovementTracker()
        tracker.notify("n")

        tracker.clear()

        assert tracker.peek() is None

    def test_concurrent_consumers_get_single_movement(self):
        tracker = MovementTracker()
        tracker.notify("north")
        results = []

        def consume():
            results.append(tracker.consume())

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 1
