# ABOUTME: Sources of decoded server lines for a mapping session
# ABOUTME: A bounded thread-safe queue fed by a connection reader, and a transcript file reader

import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Generator, Iterator, List, Literal, Optional, Protocol, runtime_checkable

from session.events import CommandSent, LineReceived, SessionEvent

DropPolicy = Literal["oldest", "newest"]


@runtime_checkable
class LineSource(Protocol):
    """Anything that yields server lines and accepts outbound commands."""

    def next_line(self) -> Optional[str]:
        """Next decoded line, or None once the stream has ended."""
        ...

    def send_command(self, command: str) -> None:
        ...


class QueueLineSource:
    """
    Bounded buffer between a connection reader thread and the session.

    The reader calls put_line(); the session calls next_line(), which blocks
    until a line arrives or the source is closed. When the buffer is full the
    drop policy decides which line is lost: "oldest" evicts the head of the
    queue, "newest" discards the incoming line.
    """

    def __init__(
        self,
        maxsize: int = 100,
        drop_policy: DropPolicy = "oldest",
        command_sink: Optional[Callable[[str], None]] = None,
        logger=None,
    ):
        if maxsize < 1:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        if drop_policy not in ("oldest", "newest"):
            raise ValueError(f"Unknown drop policy: {drop_policy}")

        self.maxsize = maxsize
        self.drop_policy = drop_policy
        self.command_sink = command_sink
        self.logger = logger
        self.dropped_count = 0
        self.sent_commands: List[str] = []

        self._buffer: Deque[str] = deque()
        self._closed = False
        self._condition = threading.Condition()

    def put_line(self, line: str) -> bool:
        """
        Enqueue a line from the server.

        Returns:
            False if the line itself was discarded (closed source or
            drop-newest on a full buffer)
        """
        with self._condition:
            if self._closed:
                return False

            accepted = True
            if len(self._buffer) >= self.maxsize:
                self.dropped_count += 1
                if self.drop_policy == "oldest":
                    self._buffer.popleft()
                    self._buffer.append(line)
                else:
                    accepted = False
                dropped_total = self.dropped_count
            else:
                self._buffer.append(line)
                dropped_total = None

            self._condition.notify()

        if dropped_total is not None and self.logger:
            self.logger.warning(
                f"Line buffer full, dropped {self.drop_policy} line",
                extra={
                    "event_type": "lines_dropped",
                    "drop_policy": self.drop_policy,
                    "dropped_total": dropped_total,
                    "buffer_size": self.maxsize,
                },
            )
        return accepted

    def next_line(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Dequeue the next line, waiting for one if the buffer is empty.

        Returns:
            The line, or None when the source is closed and drained (or the
            timeout elapsed)
        """
        with self._condition:
            while not self._buffer and not self._closed:
                if not self._condition.wait(timeout):
                    return None
            if self._buffer:
                return self._buffer.popleft()
            return None

    def send_command(self, command: str) -> None:
        self.sent_commands.append(command)
        if self.command_sink is not None:
            self.command_sink(command)

    def close(self) -> None:
        """Mark end of stream; queued lines are still delivered."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def __len__(self) -> int:
        with self._condition:
            return len(self._buffer)


class TranscriptLineSource:
    """
    Replays a captured session transcript.

    Lines starting with ``command_prefix`` are the player's commands; every
    other line is server output. next_line() yields server output only, while
    iter_events() yields both in file order for faithful replay.
    """

    def __init__(self, path: str | Path, command_prefix: str = "> ", encoding: str = "utf-8"):
        self.path = Path(path)
        self.command_prefix = command_prefix
        self.encoding = encoding
        self.sent_commands: List[str] = []
        self._lines: Optional[Generator[str, None, None]] = None
        self._closed = False

    def _read_lines(self) -> Generator[str, None, None]:
        with open(self.path, "r", encoding=self.encoding, errors="replace") as f:
            for raw in f:
                yield raw.rstrip("\r\n")

    def iter_events(self) -> Iterator[SessionEvent]:
        for line in self._read_lines():
            if self.command_prefix and line.startswith(self.command_prefix):
                yield CommandSent(command=line[len(self.command_prefix):].strip())
            else:
                yield LineReceived(text=line)

    def next_line(self) -> Optional[str]:
        if self._closed:
            return None
        if self._lines is None:
            self._lines = self._read_lines()
        for line in self._lines:
            if self.command_prefix and line.startswith(self.command_prefix):
                continue
            return line
        return None

    def send_command(self, command: str) -> None:
        # Transcripts are read-only; commands are only recorded
        self.sent_commands.append(command)

    def close(self) -> None:
        """Release the transcript file if next_line() stopped before the end."""
        if self._lines is not None:
            self._lines.close()
            self._lines = None
        self._closed = True
