import json
import logging
from datetime import datetime
from typing import Any, Dict, List


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs log records as JSON objects."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }

        # Add any extra attributes that were passed via extra={}
        # This excludes standard logging attributes
        standard_attrs = {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "message",
            "exc_info",
            "exc_text",
            "stack_info",
            "getMessage",
        }

        for attr_name, attr_value in record.__dict__.items():
            if attr_name not in standard_attrs and not attr_name.startswith("_"):
                log_data[attr_name] = attr_value

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Custom formatter for human-readable console output focused on mapping progress."""

    def format(self, record):
        message = record.getMessage()

        # Skip debug messages for console output unless it's an error/warning
        if record.levelname == "DEBUG":
            return None

        # Always show errors and warnings, regardless of event type
        if record.levelname in ["ERROR", "WARNING"]:
            return f"{record.levelname}: {message}"

        if hasattr(record, "event_type"):
            event_type = record.event_type

            if event_type == "session_init":
                server_tag = getattr(record, "server_tag", "default")
                return f"\n🗺️  NEW SESSION: {server_tag}"

            elif event_type == "room_mapped":
                room_name = getattr(record, "room_name", "unknown")
                coordinates = getattr(record, "coordinates", None)
                marker = " (?)" if getattr(record, "uncertain", False) else ""
                return f"  + {room_name} at {tuple(coordinates) if coordinates else '?'}{marker}"

            elif event_type in ("map_saved", "map_loaded", "map_exported", "map_imported"):
                return f"💾 {message}"

            elif event_type == "stream_ended":
                rooms = getattr(record, "rooms_resolved", 0)
                lines = getattr(record, "lines_processed", 0)
                return f"🏁 Stream ended after {lines} lines - {rooms} rooms resolved"

            # Routine chatter stays in the JSON log
            elif event_type in [
                "room_revisited",
                "rooms_linked",
                "room_context_flushed",
                "movement_recorded",
                "map_load_skip",
            ]:
                return None

        # For non-structured messages, only show if they're important
        if record.levelname == "INFO" and any(
            keyword in message.lower()
            for keyword in [
                "error",
                "failed",
                "exception",
                "warning",
                "completed",
                "initialized",
            ]
        ):
            return message

        # Hide everything else to keep console clean
        return None


class FilteringStreamHandler(logging.StreamHandler):
    """Stream handler that filters out None messages from formatter."""

    def emit(self, record):
        try:
            msg = self.format(record)
            if msg is not None:  # Only emit if formatter didn't return None
                stream = self.stream
                stream.write(msg + self.terminator)
                self.flush()
        except Exception:
            self.handleError(record)


class FilteringFileHandler(logging.FileHandler):
    """File handler that filters out None messages from formatter."""

    def emit(self, record):
        try:
            msg = self.format(record)
            if msg is not None:  # Only emit if formatter didn't return None
                if self.stream is None:
                    self.stream = self._open()
                stream = self.stream
                stream.write(msg + self.terminator)
                self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    log_file: str, json_log_file: str, log_level: int = logging.INFO
):
    """
    Set up logging with console and file handlers.

    Args:
        log_file: Path to the human-readable log file
        json_log_file: Path to the JSON log file
        log_level: Logging level (default: INFO)
    """
    # Create logger
    logger = logging.getLogger("seemud")
    logger.setLevel(log_level)
    logger.handlers = []  # Clear any existing handlers

    # Console handler with human-readable formatter (filtered)
    console_handler = FilteringStreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(HumanReadableFormatter())
    logger.addHandler(console_handler)

    # File handler with human-readable formatter (filtered)
    file_handler = FilteringFileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(HumanReadableFormatter())
    logger.addHandler(file_handler)

    # JSON file handler
    json_handler = logging.FileHandler(json_log_file, mode="a", encoding="utf-8")
    json_handler.setLevel(log_level)
    json_handler.setFormatter(JSONFormatter())
    logger.addHandler(json_handler)

    return logger


def parse_json_logs(json_log_file: str) -> List[Dict[str, Any]]:
    """Parse a JSON log file into a list of log entries."""
    logs = []
    with open(json_log_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                logs.append(json.loads(line.strip()))
            except json.JSONDecodeError:
                continue
    return logs
