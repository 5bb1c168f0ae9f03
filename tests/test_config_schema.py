"""Tests for the unified config schema and the Config adapter.

Covers the Pydantic models in config_schema.py (UnifiedConfig, GistConfig,
SyncConfig, LoggingConfig), the build_config() factory, and the
to_legacy_config() adapter.
"""

import pytest
from pydantic import ValidationError

from bookmarkdown.config_schema import (
    GistConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_legacy_config,
)
from bookmarkdown.sync.models import MergeStrategy

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_empty_config_has_defaults(self):
        config = UnifiedConfig()
        assert config.gist.token is None
        assert config.gist.filename == "bookmarks.md"
        assert config.sync.strategy is MergeStrategy.TIMESTAMP
        assert config.logging.level == "INFO"

    def test_full_config(self):
        config = UnifiedConfig(
            gist={"token": "t", "filename": "links.md", "public": True},
            sync={"state_dir": "/tmp/state", "strategy": "local-wins"},
            logging={"level": "DEBUG", "file": "/tmp/bm.log"},
        )
        assert config.gist.filename == "links.md"
        assert config.gist.public is True
        assert config.sync.strategy is MergeStrategy.LOCAL_WINS
        assert config.logging.file == "/tmp/bm.log"

    def test_frozen(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.gist = GistConfig()


class TestSectionValidation:
    """Field constraints on the section models."""

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(strategy="newest")

    @pytest.mark.parametrize("field", ["poll_interval", "lock_timeout"])
    def test_durations_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            SyncConfig(**{field: 0})

    def test_lock_wait_may_be_zero(self):
        assert SyncConfig(lock_wait=0).lock_wait == 0

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            GistConfig(timeout=-1)

    def test_logging_defaults(self):
        assert LoggingConfig().file is None


# ---------------------------------------------------------------------------
# build_config()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    """Tests for build_config()."""

    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config({"sync": {"poll_interval": 3}})
        assert config.sync.poll_interval == 3
        assert config.gist.filename == "bookmarks.md"

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"lock_wait": -5}})


# ---------------------------------------------------------------------------
# to_legacy_config()
# ---------------------------------------------------------------------------


class TestToLegacyConfig:
    """Tests for to_legacy_config()."""

    def test_flattens_sections(self):
        unified = build_config(
            {
                "gist": {"token": "t", "document_id": "abc", "timeout": 5},
                "sync": {"strategy": "remote-wins", "lock_wait": 0},
            }
        )
        config = to_legacy_config(unified)
        assert config.github_token == "t"
        assert config.document_id == "abc"
        assert config.timeout == 5
        assert config.strategy == "remote-wins"
        assert config.lock_wait == 0
        assert config.debug is False

    def test_cli_overrides_win(self):
        unified = build_config({"gist": {"token": "yaml"}})
        config = to_legacy_config(
            unified,
            cli_overrides={
                "token": "cli",
                "filename": "cli.md",
                "state_dir": "/tmp/cli",
                "strategy": "local-wins",
            },
        )
        assert config.github_token == "cli"
        assert config.filename == "cli.md"
        assert config.state_dir == "/tmp/cli"
        assert config.strategy == "local-wins"

    def test_debug_from_logging_level(self):
        unified = build_config({"logging": {"level": "debug"}})
        assert to_legacy_config(unified).debug is True

    def test_debug_override(self):
        assert to_legacy_config(UnifiedConfig(), {"debug": True}).debug is True

    def test_missing_token_becomes_empty(self):
        assert to_legacy_config(UnifiedConfig()).github_token == ""
