"""Configuration schema for bookmarkdown.

Pydantic models for the YAML config, one section per concern (gist,
sync, logging), plus the adapter that flattens them into the ``Config``
dataclass the rest of the package uses.

Usage:
    from bookmarkdown.config_schema import build_config, to_legacy_config

    unified = build_config(load_hierarchical_config())
    config = to_legacy_config(unified, cli_overrides={"token": "..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .sync.models import MergeStrategy

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GistConfig(BaseModel):
    """Where the bookmark document lives.

    Every field is optional so env vars and CLI flags can fill them in.
    """

    token: str | None = Field(default=None, description="GitHub token")
    filename: str = Field(
        default="bookmarks.md", description="File holding the bookmarks"
    )
    document_id: str | None = Field(
        default=None, description="Gist id to use instead of searching"
    )
    description: str = Field(
        default="BookMarkDown - Bookmark Collection",
        description="Description for newly created gists",
    )
    public: bool = Field(default=False, description="Create public gists")
    api_base_url: str = Field(
        default="https://api.github.com", description="GitHub API root"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="HTTP timeout in seconds"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local sync behaviour."""

    state_dir: str = Field(
        default=".bookmarkdown", description="Directory for local sync state"
    )
    strategy: MergeStrategy = Field(
        default=MergeStrategy.TIMESTAMP,
        description="How nodes changed on both sides are settled",
    )
    poll_interval: float = Field(
        default=10.0, gt=0, description="Seconds between remote polls"
    )
    lock_timeout: float = Field(
        default=30.0, gt=0, description="Creation lock lifetime in seconds"
    )
    lock_wait: float = Field(
        default=2.0, ge=0, description="Wait before re-searching when locked"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """All config sections; ``UnifiedConfig()`` is always valid."""

    gist: GistConfig = Field(default_factory=GistConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Build a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get their defaults.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Flatten *unified* into a ``Config``, CLI overrides first.

    Recognised override keys: ``token``, ``filename``, ``document_id``,
    ``state_dir``, ``strategy``, ``debug``.

    The result is NOT validated; call ``validate_config()`` when needed.
    """
    from .config import Config

    overrides = cli_overrides or {}
    gist = unified.gist
    sync = unified.sync

    return Config(
        github_token=overrides.get("token") or gist.token or "",
        filename=overrides.get("filename") or gist.filename,
        document_id=overrides.get("document_id") or gist.document_id,
        description=gist.description,
        public=gist.public,
        api_base_url=gist.api_base_url,
        timeout=gist.timeout,
        state_dir=overrides.get("state_dir") or sync.state_dir,
        strategy=MergeStrategy(overrides.get("strategy") or sync.strategy).value,
        poll_interval=sync.poll_interval,
        lock_timeout=sync.lock_timeout,
        lock_wait=sync.lock_wait,
        debug=overrides.get("debug", False)
        or unified.logging.level.upper() == "DEBUG",
    )
