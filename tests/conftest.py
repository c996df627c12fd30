# ABOUTME: Global pytest configuration for all tests
# ABOUTME: Isolates SEEMUD_* environment variables and provides config/logger fixtures

import logging
import os
from unittest.mock import Mock

import pytest

from session.session_configuration import SessionConfiguration
from session.session_state import SessionState


@pytest.fixture(autouse=True)
def isolate_seemud_env(monkeypatch):
    """
    Remove SEEMUD_* variables from the environment for every test.

    Settings read from the developer's shell would otherwise leak into
    SessionConfiguration. Tests that exercise env overrides set them
    explicitly with monkeypatch.
    """
    for name in list(os.environ):
        if name.upper().startswith("SEEMUD_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config(tmp_path):
    """SessionConfiguration writing maps and logs under tmp_path, no auto-save."""
    return SessionConfiguration(
        server_tag="testmud",
        map_cache_dir=str(tmp_path / "maps"),
        auto_save_on_end=False,
        log_file=str(tmp_path / "mapper.log"),
        json_log_file=str(tmp_path / "mapper.jsonl"),
    )


@pytest.fixture
def session_state():
    return SessionState(server_tag="testmud")


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)
