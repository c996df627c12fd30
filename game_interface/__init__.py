"""
Game interface layer for the MUD mapper.

Line sources deliver decoded server lines to a session and carry outbound
commands back to the connection.
"""

from .line_stream import LineSource, QueueLineSource, TranscriptLineSource

__all__ = ["LineSource", "QueueLineSource", "TranscriptLineSource"]
