"""
ABOUTME: Versioned JSON snapshots of the room graph - path naming, validation, locked writes
ABOUTME: Missing files are not errors; malformed files raise MapPersistenceError
"""

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from filelock import FileLock, Timeout
from pydantic import BaseModel, Field, ValidationError

from errors import MapPersistenceError

MAP_VERSION = "1.0"
LOCK_TIMEOUT_SECONDS = 10

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


class RoomModel(BaseModel):
    """Shape check for one serialized room."""

    id: str
    name: str
    description: str = ""
    x: int = 0
    y: int = 0
    z: int = 0
    visit_count: int = Field(default=0, ge=0)
    last_visited: Optional[datetime] = None
    uncertain: bool = False
    notes: str = ""
    image_path: str = ""
    exits: Dict[str, str] = Field(default_factory=dict)


class ExitLinkModel(BaseModel):
    from_id: str = Field(alias="from")
    direction: str
    to_id: str = Field(default="", alias="to")


class GraphModel(BaseModel):
    rooms: Dict[str, RoomModel] = Field(default_factory=dict)
    exits: List[ExitLinkModel] = Field(default_factory=list)


class MapSnapshot(BaseModel):
    """Persisted map document."""

    version: str
    server_tag: str = ""
    graph: GraphModel
    current_room_id: Optional[str] = None
    previous_room_id: Optional[str] = None
    saved_at: Optional[datetime] = None


def sanitize_filename(name: str) -> str:
    """Keep only letters, digits, underscore and hyphen."""
    return _UNSAFE_FILENAME_CHARS.sub("", name or "")


def map_path_for(
    server_tag: str, cache_dir: str | Path, default_file: str = "default.json"
) -> Path:
    """Snapshot path for a server tag inside the cache directory."""
    safe = sanitize_filename(server_tag)
    filename = f"{safe}.json" if safe else default_file
    return Path(cache_dir) / filename


def build_document(
    graph_data: Dict[str, Any],
    server_tag: str,
    current_room_id: Optional[str],
    previous_room_id: Optional[str],
) -> Dict[str, Any]:
    return {
        "version": MAP_VERSION,
        "server_tag": server_tag,
        "graph": graph_data,
        "current_room_id": current_room_id,
        "previous_room_id": previous_room_id,
        "saved_at": datetime.now(timezone.utc).isoformat(),
    }


def write_snapshot(path: str | Path, document: Dict[str, Any], logger=None) -> Path:
    """
    Write a snapshot document atomically under a file lock.

    The document is written to a temporary file in the target directory and
    moved into place, so readers never observe a partial file.

    Raises:
        MapPersistenceError: If the directory, lock, or file cannot be written
    """
    path = Path(path)
    lock_path = str(path) + ".lock"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document, indent=2)

        with FileLock(lock_path, timeout=LOCK_TIMEOUT_SECONDS):
            fd, temp_path = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(temp_path, path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise

    except Timeout as e:
        raise MapPersistenceError(f"Timed out waiting for map file lock {lock_path}") from e
    except (OSError, TypeError, ValueError) as e:
        if logger:
            logger.error(
                f"Failed to write map file: {path}",
                extra={
                    "event_type": "map_save_error",
                    "filepath": str(path),
                    "error": str(e),
                },
            )
        raise MapPersistenceError(f"Failed to write map file {path}: {e}") from e

    return path


def read_snapshot(path: str | Path, logger=None) -> Optional[MapSnapshot]:
    """
    Read and validate a snapshot document.

    Returns:
        The validated snapshot, or None if the file does not exist

    Raises:
        MapPersistenceError: If the file is unreadable, not JSON, or malformed
    """
    path = Path(path)

    if not path.exists():
        if logger:
            logger.debug(
                f"Map file not found: {path}",
                extra={"event_type": "map_load_skip", "filepath": str(path)},
            )
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        if logger:
            logger.error(
                f"Corrupted map file (invalid JSON): {path}",
                extra={
                    "event_type": "map_load_error",
                    "filepath": str(path),
                    "error": str(e),
                    "error_type": "json_decode",
                },
            )
        raise MapPersistenceError(f"Map file {path} is not valid JSON: {e}") from e
    except (IOError, OSError) as e:
        if logger:
            logger.error(
                f"Failed to read map file: {path}",
                extra={
                    "event_type": "map_load_error",
                    "filepath": str(path),
                    "error": str(e),
                    "error_type": "file_read",
                },
            )
        raise MapPersistenceError(f"Failed to read map file {path}: {e}") from e

    try:
        snapshot = MapSnapshot.model_validate(data)
    except ValidationError as e:
        if logger:
            logger.error(
                f"Invalid map structure: {path}",
                extra={
                    "event_type": "map_load_error",
                    "filepath": str(path),
                    "error": str(e),
                    "error_type": "invalid_structure",
                },
            )
        raise MapPersistenceError(f"Map file {path} has an invalid structure: {e}") from e

    for room_id, room in snapshot.graph.rooms.items():
        if room.id != room_id:
            message = f"Map file {path}: room key {room_id} does not match room id {room.id}"
            if logger:
                logger.error(
                    f"Invalid map structure: {path}",
                    extra={
                        "event_type": "map_load_error",
                        "filepath": str(path),
                        "error": message,
                        "error_type": "invalid_structure",
                    },
                )
            raise MapPersistenceError(message)

    if snapshot.version != MAP_VERSION and logger:
        logger.warning(
            f"Map version mismatch (file: {snapshot.version}, expected: {MAP_VERSION})",
            extra={
                "event_type": "map_version_mismatch",
                "filepath": str(path),
                "file_version": snapshot.version,
                "expected_version": MAP_VERSION,
            },
        )

    return snapshot


def snapshot_graph_data(snapshot: MapSnapshot) -> Dict[str, Any]:
    """Plain graph dict suitable for RoomGraph.from_dict."""
    return snapshot.graph.model_dump(mode="json", by_alias=True)
