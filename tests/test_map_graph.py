"""
Tests for the room graph store and direction helpers.

Covers:
- Direction and exit token normalization
- Room id derivation
- Exit link storage (single list, in-place updates, conflicts)
- Queries, Mermaid rendering, and dict serialization
"""

import pytest

from map_graph import (
    RoomGraph,
    RoomRecord,
    generate_room_id,
    get_opposite_direction,
    normalize_direction,
    normalize_exit_token,
)


class TestNormalizeDirection:
    def test_normalize_simple_directions(self):
        assert normalize_direction("n") == "north"
        assert normalize_direction("go south") == "south"
        assert normalize_direction("E") == "east"
        assert normalize_direction("westward") == "west"
        assert normalize_direction("U") == "up"
        assert normalize_direction("NE") == "northeast"
        assert normalize_direction("NorthWest") == "northwest"
        assert normalize_direction("go se") == "southeast"
        assert normalize_direction("in") == "in"

    def test_normalize_invalid_directions(self):
        assert normalize_direction("take lamp") is None
        assert normalize_direction("go to the house") is None
        assert normalize_direction("") is None
        assert normalize_direction("  ") is None

    def test_exit_tokens(self):
        assert normalize_exit_token("N") == "north"
        assert normalize_exit_token("  Portal ") == "portal"
        assert normalize_exit_token("Narrow  Crack") == "narrow crack"

    def test_opposites(self):
        assert get_opposite_direction("north") == "south"
        assert get_opposite_direction("northeast") == "southwest"
        assert get_opposite_direction("up") == "down"
        assert get_opposite_direction("in") == "out"
        assert get_opposite_direction("portal") is None
        assert get_opposite_direction("") is None


class TestGenerateRoomId:
    def test_deterministic(self):
        first = generate_room_id("Tavern", "A cosy tavern.")
        second = generate_room_id("Tavern", "A cosy tavern.")

        assert first == second
        assert len(first) == 32
        assert all(c in "0123456789abcdef" for c in first)

    def test_name_and_description_both_matter(self):
        base = generate_room_id("Tavern", "A cosy tavern.")

        assert generate_room_id("Inn", "A cosy tavern.") != base
        assert generate_room_id("Tavern", "A cold tavern.") != base

    def test_only_description_prefix_counts(self):
        prefix = "x" * 100

        assert generate_room_id("Hall", prefix + " a bird sings") == generate_room_id(
            "Hall", prefix + " the bird is gone"
        )

    def test_custom_hash_length(self):
        assert generate_room_id("Hall", "abcdef", hash_length=3) == generate_room_id(
            "Hall", "abcxyz", hash_length=3
        )

    def test_empty_description(self):
        assert generate_room_id("Void", "") == generate_room_id("Void", "")


@pytest.fixture
def graph():
    graph = RoomGraph()
    graph.add_room(RoomRecord(id="a", name="Tavern"))
    graph.add_room(RoomRecord(id="b", name="Market Square", y=1))
    return graph


class TestRoomGraph:
    def test_add_room_does_not_replace(self, graph):
        graph.add_room(RoomRecord(id="a", name="Impostor"))

        assert graph.get_room("a").name == "Tavern"
        assert len(graph) == 2
        assert "a" in graph

    def test_get_room_with_missing_id(self, graph):
        assert graph.get_room(None) is None
        assert graph.get_room("zzz") is None

    def test_add_exit_updates_in_place(self, graph):
        graph.add_exit("a", "north", "")
        graph.add_exit("a", "north", "b")

        assert len(graph.links) == 1
        assert graph.get_exits("a") == {"north": "b"}

    def test_repointing_link_records_conflict(self, graph, mock_logger):
        graph.logger = mock_logger
        graph.add_room(RoomRecord(id="c", name="Alley", x=5))
        graph.add_exit("a", "north", "b")

        graph.add_exit("a", "north", "c")

        assert graph.get_exits("a")["north"] == "c"
        assert len(graph.connection_conflicts) == 1
        assert graph.connection_conflicts[0]["existing_destination"] == "Market Square"
        mock_logger.warning.assert_called_once()

    def test_unexplored_exit_never_clears_destination(self, graph):
        graph.add_exit("a", "north", "b")

        assert graph.add_unexplored_exit("a", "north") is False
        assert graph.add_unexplored_exit("a", "east") is True
        assert graph.get_exits("a") == {"north": "b", "east": ""}

    def test_neighbours_skip_unexplored(self, graph):
        graph.add_exit("a", "north", "b")
        graph.add_unexplored_exit("a", "west")

        neighbours = graph.get_neighbours("a")

        assert list(neighbours) == ["north"]
        assert neighbours["north"].name == "Market Square"

    def test_find_rooms(self, graph):
        assert [r.id for r in graph.find_rooms_by_name("Tavern")] == ["a"]
        assert graph.find_room_at(0, 1, 0).id == "b"
        assert graph.find_room_at(9, 9, 9) is None

    def test_bounds(self, graph):
        graph.add_room(RoomRecord(id="c", name="Cellar", x=-2, z=-1))

        bounds = graph.get_bounds()

        assert bounds["min_x"] == -2
        assert bounds["max_y"] == 1
        assert bounds["min_z"] == -1

    def test_empty_bounds(self):
        assert RoomGraph().get_bounds()["max_x"] == 0


class TestMermaid:
    def test_empty_graph(self):
        assert "No rooms mapped yet" in RoomGraph().render_mermaid()

    def test_links_and_unknown_destinations(self, graph):
        graph.get_room("b").uncertain = True
        graph.add_exit("a", "north", "b")
        graph.add_unexplored_exit("a", "east")

        diagram = graph.render_mermaid()

        assert diagram.startswith("graph LR")
        assert "Tavern (0,0,0)" in diagram
        assert "Market Square (0,1,0) ?" in diagram
        assert '-->|"north"|' in diagram
        assert "Unknown Destination" in diagram


class TestSerialization:
    def test_roundtrip_preserves_rooms_and_exits(self, graph):
        graph.add_exit("a", "north", "b")
        graph.add_exit("b", "south", "a")
        graph.add_unexplored_exit("b", "portal")
        graph.get_room("b").notes = "busy at noon"

        restored = RoomGraph.from_dict(graph.to_dict())

        assert set(restored.rooms) == {"a", "b"}
        assert restored.get_room("b").coordinates == (0, 1, 0)
        assert restored.get_room("b").notes == "busy at noon"
        assert restored.get_exits("a") == {"north": "b"}
        assert restored.get_exits("b") == {"south": "a", "portal": ""}

    def test_room_exit_view_merged_when_missing_from_list(self):
        data = {
            "rooms": {"a": {"id": "a", "name": "Tavern", "exits": {"up": ""}}},
            "exits": [],
        }

        restored = RoomGraph.from_dict(data)

        assert restored.get_exits("a") == {"up": ""}

    def test_missing_section_raises(self):
        with pytest.raises(KeyError):
            RoomGraph.from_dict({"rooms": {}})

    def test_mismatched_room_key_raises(self):
        with pytest.raises(ValueError):
            RoomGraph.from_dict({"rooms": {"a": {"id": "b", "name": "X"}}, "exits": []})
