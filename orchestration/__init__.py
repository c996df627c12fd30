"""Session orchestration for the MUD mapper."""

from .mud_session import MudSession

__all__ = ["MudSession"]
