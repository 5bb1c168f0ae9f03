"""Shared pytest fixtures for bookmarkdown tests."""

from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

from bookmarkdown.config import Config
from bookmarkdown.sync.engine import SyncShell
from bookmarkdown.sync.remote import InMemoryRepository
from bookmarkdown.sync.state import SyncState
from bookmarkdown.sync.storage import MemoryStore

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a real GitHub token",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring the live GitHub API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config():
    """Config that needs no network and never waits on the creation lock."""
    return Config(
        github_token="test-token",
        filename="bookmarks.md",
        lock_wait=0.0,
    )


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def state(store):
    return SyncState(store)


@pytest.fixture
def shell(repository, state, mock_config):
    return SyncShell(repository, state, mock_config)


@pytest.fixture
def mock_response():
    """Factory fixture for GitHub API response mocks."""

    def _create_response(status_code=200, payload=None, text=""):
        response = Mock()
        response.status_code = status_code
        response.json.return_value = payload
        response.content = b"{}" if payload is not None else text.encode()
        response.text = text
        return response

    return _create_response
