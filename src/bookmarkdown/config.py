"""Flat runtime configuration for bookmarkdown.

Reads Gist and sync settings from CLI args, environment variables,
.env files and YAML config fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GITHUB_TOKEN: GitHub token with the ``gist`` scope
    BOOKMARKDOWN_FILENAME: File name inside the gist (default: bookmarks.md)
    BOOKMARKDOWN_GIST_ID: Gist id to use instead of searching
    BOOKMARKDOWN_STATE_DIR: Local sync state directory (default: .bookmarkdown)
    BOOKMARKDOWN_STRATEGY: timestamp-based, local-wins or remote-wins
    BOOKMARKDOWN_POLL_INTERVAL: Seconds between remote polls (default: 10)
    BOOKMARKDOWN_PUBLIC: Create new gists as public
    BOOKMARKDOWN_API_URL: GitHub API root (GitHub Enterprise)
    BOOKMARKDOWN_DEBUG: Enable debug logging
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

STRATEGIES = ("timestamp-based", "local-wins", "remote-wins")


@dataclass
class Config:
    github_token: str = ""
    filename: str = "bookmarks.md"
    document_id: str | None = None
    description: str = "BookMarkDown - Bookmark Collection"
    public: bool = False
    api_base_url: str = "https://api.github.com"
    timeout: float = 30.0
    state_dir: str = ".bookmarkdown"
    strategy: str = "timestamp-based"
    poll_interval: float = 10.0
    lock_timeout: float = 30.0
    lock_wait: float = 2.0
    debug: bool = False


def validate_config(config: Config, require_token: bool = True) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate (normalised in place).
        require_token: Whether a GitHub token must be present.

    Raises:
        ValueError: With a message naming the setting to fix.
    """
    config.api_base_url = config.api_base_url.strip()
    parsed = urlparse(config.api_base_url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_base_url}': must be an http(s) URL with a hostname"
        )
    config.api_base_url = config.api_base_url.removesuffix("/")

    config.filename = config.filename.strip()
    if not config.filename or "/" in config.filename:
        raise ValueError(
            f"Invalid gist filename '{config.filename}'. "
            "Set BOOKMARKDOWN_FILENAME to a plain file name such as bookmarks.md."
        )

    if require_token and not config.github_token.strip():
        raise ValueError(
            "GitHub token not found. Set GITHUB_TOKEN environment variable, "
            "pass --token, or add 'token' to the gist section of config.yml."
        )

    if config.strategy not in STRATEGIES:
        raise ValueError(
            f"Invalid merge strategy '{config.strategy}': "
            f"must be one of {', '.join(STRATEGIES)}"
        )

    for name in ("timeout", "poll_interval", "lock_timeout"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name} must be greater than zero")
    if config.lock_wait < 0:
        raise ValueError("lock_wait cannot be negative")

    if config.public:
        logger.warning("New gists will be created as public")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float_env(key: str) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    token: str | None = None,
    filename: str | None = None,
    document_id: str | None = None,
    state_dir: str | None = None,
    strategy: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
    require_token: bool = True,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so .env
    values are visible through ``os.getenv()``.

    Args:
        token: Override GitHub token.
        filename: Override gist file name.
        document_id: Override gist id.
        state_dir: Override local state directory.
        strategy: Override merge strategy.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened ``gist`` and ``sync`` sections from the
            YAML config, used when neither CLI nor env supply a value.
        require_token: Passed through to ``validate_config``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is missing or malformed.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    def pick(cli_value, env_key: str, fb_key: str, default):
        if cli_value:
            return cli_value
        env_value = os.getenv(env_key)
        if env_value:
            return env_value
        if fb.get(fb_key) is not None:
            return fb[fb_key]
        return default

    def pick_float(env_key: str, fb_key: str, default: float) -> float:
        env_value = _get_float_env(env_key)
        if env_value is not None:
            return env_value
        if fb.get(fb_key) is not None:
            return float(fb[fb_key])
        return default

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("BOOKMARKDOWN_DEBUG")
        final_debug = env_debug if env_debug is not None else bool(fb.get("debug", False))

    env_public = _get_bool_env("BOOKMARKDOWN_PUBLIC")
    final_public = env_public if env_public is not None else bool(fb.get("public", False))

    config = Config(
        github_token=str(pick(token, "GITHUB_TOKEN", "token", "")).strip(),
        filename=str(pick(filename, "BOOKMARKDOWN_FILENAME", "filename", defaults.filename)),
        document_id=pick(document_id, "BOOKMARKDOWN_GIST_ID", "document_id", None),
        description=str(fb.get("description") or defaults.description),
        public=final_public,
        api_base_url=str(
            pick(None, "BOOKMARKDOWN_API_URL", "api_base_url", defaults.api_base_url)
        ),
        timeout=float(fb.get("timeout") or defaults.timeout),
        state_dir=str(pick(state_dir, "BOOKMARKDOWN_STATE_DIR", "state_dir", defaults.state_dir)),
        strategy=str(pick(strategy, "BOOKMARKDOWN_STRATEGY", "strategy", defaults.strategy)),
        poll_interval=pick_float(
            "BOOKMARKDOWN_POLL_INTERVAL", "poll_interval", defaults.poll_interval
        ),
        lock_timeout=float(fb.get("lock_timeout") or defaults.lock_timeout),
        lock_wait=float(fb["lock_wait"]) if fb.get("lock_wait") is not None else defaults.lock_wait,
        debug=final_debug,
    )

    validate_config(config, require_token=require_token)

    return config
