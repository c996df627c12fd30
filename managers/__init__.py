"""Manager classes package for MUD mapper sessions."""

from .base_manager import BaseManager, ManagerProtocol
from .map_manager import MapManager
from .context_manager import ContextManager

__all__ = [
    "BaseManager",
    "ManagerProtocol",
    "MapManager",
    "ContextManager",
]
