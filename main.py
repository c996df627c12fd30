#!/usr/bin/env python3

import argparse
import logging
from pathlib import Path

from errors import MapperError
from game_interface import TranscriptLineSource
from logger import setup_logging
from orchestration import MudSession
from session.session_configuration import SessionConfiguration


def replay_transcript(
    transcript: str,
    server_tag: str = None,
    config_file: str = None,
    resume: bool = False,
    export_path: str = None,
    mermaid_path: str = None,
    command_prefix: str = "> ",
    verbose: bool = False,
):
    """Replay a captured session transcript into the map for a server."""
    config = SessionConfiguration.from_toml(Path(config_file) if config_file else None)

    logger = setup_logging(
        config.log_file,
        config.json_log_file,
        log_level=logging.DEBUG if verbose else logging.INFO,
    )

    session = MudSession(config=config, logger=logger, server_tag=server_tag)

    print("🗺️  Replaying transcript into map...", flush=True)
    print(f"  - Transcript: {transcript}", flush=True)
    print(f"  - Server tag: {session.session_state.server_tag}", flush=True)
    print(f"  - Map cache: {config.map_cache_dir}", flush=True)
    print(flush=True)

    if resume:
        if session.load_map():
            print("  ✓ Existing map loaded", flush=True)
        else:
            print("  - No existing map, starting fresh", flush=True)

    source = TranscriptLineSource(transcript, command_prefix=command_prefix)
    session.replay(source.iter_events())

    if not config.auto_save_on_end:
        session.save_map()

    stats = session.map_manager.get_map_stats()
    print("\n🎯 Replay complete!")
    print(f"  - Lines processed: {session.session_state.lines_processed}")
    print(f"  - Rooms resolved: {session.session_state.rooms_resolved}")
    print(f"  - Rooms on map: {stats['total_rooms']} ({stats['uncertain_rooms']} uncertain)")
    print(f"  - Exits: {stats['explored_exits']} explored of {stats['total_exits']}")
    print(f"  - Map saved to: {session.map_manager.get_map_path()}")

    if export_path:
        session.export_map(export_path)
        print(f"  - Exported to: {export_path}")

    if mermaid_path:
        Path(mermaid_path).write_text(session.map_manager.render_mermaid(), encoding="utf-8")
        print(f"  - Mermaid diagram: {mermaid_path}")

    return session


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Build a room map from a captured MUD session transcript"
    )
    parser.add_argument("transcript", help="Transcript file; command lines start with the command prefix")
    parser.add_argument("--server-tag", default=None, help="Server tag used to name the saved map")
    parser.add_argument("--config", default=None, help="TOML file with a [tool.seemud] section")
    parser.add_argument(
        "--resume", action="store_true", help="Load the saved map for this server before replaying"
    )
    parser.add_argument("--export", default=None, help="Also export the map to this path")
    parser.add_argument("--mermaid", default=None, help="Write a Mermaid diagram to this path")
    parser.add_argument("--command-prefix", default="> ", help="Prefix marking player commands")
    parser.add_argument("--verbose", action="store_true", help="Log debug events")

    args = parser.parse_args()

    try:
        replay_transcript(
            args.transcript,
            server_tag=args.server_tag,
            config_file=args.config,
            resume=args.resume,
            export_path=args.export,
            mermaid_path=args.mermaid,
            command_prefix=args.command_prefix,
            verbose=args.verbose,
        )
    except (MapperError, FileNotFoundError, KeyError) as e:
        print(f"❌ Error: {e}")
        raise SystemExit(1)
