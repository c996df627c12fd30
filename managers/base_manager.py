"""
Base manager protocol and interface for MUD mapper sessions.

This module defines the common interface that all managers implement,
enabling clean composition and coordination in the session.
"""

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable, Any, Dict
import logging

from session.session_state import SessionState
from session.session_configuration import SessionConfiguration


@runtime_checkable
class ManagerProtocol(Protocol):
    """
    Protocol defining the interface that all managers must implement.
    """

    def reset(self) -> None:
        """Reset manager state for a new session."""
        ...

    def get_status(self) -> Dict[str, Any]:
        """Report manager status for monitoring."""
        ...


class BaseManager(ABC):
    """
    Abstract base class providing common functionality for all managers.

    Handles common dependencies (logger, config, session_state) and provides
    structured logging helpers.
    """

    def __init__(
        self,
        logger: logging.Logger,
        config: SessionConfiguration,
        session_state: SessionState,
        component_name: str,
    ):
        """
        Initialize base manager with common dependencies.

        Args:
            logger: Shared logger instance for structured logging
            config: Session configuration object
            session_state: Shared session state object
            component_name: Name for logging component field (e.g., "map_manager")
        """
        self.logger = logger
        self.config = config
        self.session_state = session_state
        self.component_name = component_name

    def _log(self, level: int, message: str, event_type: str, **kwargs) -> None:
        if self.logger:
            self.logger.log(level, message, extra={
                "event_type": event_type,
                "component": self.component_name,
                "server_tag": self.session_state.server_tag,
                **kwargs
            })

    def log_info(self, message: str, event_type: str = "info", **kwargs) -> None:
        """Log an info message with structured fields."""
        self._log(logging.INFO, message, event_type, **kwargs)

    def log_debug(self, message: str, event_type: str = "debug", **kwargs) -> None:
        """Log a debug message with structured fields."""
        self._log(logging.DEBUG, message, event_type, **kwargs)

    def log_warning(self, message: str, event_type: str = "warning", **kwargs) -> None:
        """Log a warning message with structured fields."""
        self._log(logging.WARNING, message, event_type, **kwargs)

    def log_error(self, message: str, event_type: str = "error", **kwargs) -> None:
        """Log an error message with structured fields."""
        self._log(logging.ERROR, message, event_type, **kwargs)

    @abstractmethod
    def reset(self) -> None:
        """
        Reset manager state for a new session.
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        """
        Get current manager status for debugging and monitoring.

        Returns:
            Dictionary with manager status information
        """
        return {
            "component": self.component_name,
            "server_tag": self.session_state.server_tag,
        }
