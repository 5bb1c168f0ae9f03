"""
YAML config files for bookmarkdown.

Two files are read, the first one wins:

* the project file: ``$BOOKMARKDOWN_CONFIG`` if set, otherwise
  ``./.bookmarkdown/config.yml`` (``config.yaml`` is accepted too),
* the user file: ``~/.config/bookmarkdown/config.yml``.

Each file holds some of the ``gist``, ``sync`` and ``logging`` sections of
``UnifiedConfig``.  Sections are merged key by key, so a project file can
change one setting without repeating the rest of the user's section.
String values may reference ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from bookmarkdown.config_loader import load_file_config

    unified = load_file_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BOOKMARKDOWN_CONFIG"
PROJECT_DIR = ".bookmarkdown"
SECTIONS = tuple(UnifiedConfig.model_fields)

Sections = dict[str, dict[str, Any]]

# ${VAR} and ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def expand_env(value: str) -> str:
    """Replace ``${VAR}`` references in *value* from the environment.

    An unset or empty variable gives its default, or ``""`` without one.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1)) or m.group(2) or "", value
    )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def project_config_path() -> Path:
    """Where the project file is (or would be created)."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser().resolve()
    project_dir = Path.cwd() / PROJECT_DIR
    legacy = project_dir / "config.yaml"
    if legacy.exists() and not (project_dir / "config.yml").exists():
        return legacy
    return project_dir / "config.yml"


def user_config_path() -> Path:
    return Path.home() / ".config" / "bookmarkdown" / "config.yml"


def discover_config_files() -> list[Path]:
    """Existing config files, project file first."""
    return [p for p in (project_config_path(), user_config_path()) if p.exists()]


# ---------------------------------------------------------------------------
# Reading and merging
# ---------------------------------------------------------------------------


def read_config_file(path: Path) -> Sections:
    """Parse *path* into its known sections, with ``${VAR}`` expanded.

    Unknown top-level keys are logged and dropped.

    Raises:
        ValueError: If the file is not YAML, or it or one of its sections
            is not a mapping.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"{path} must map section names to settings, "
            f"not a {type(data).__name__}"
        )

    sections: Sections = {}
    for name, body in data.items():
        if name not in SECTIONS:
            logger.warning("Ignoring unknown section %r in %s", name, path)
            continue
        if body is None:
            continue
        if not isinstance(body, dict):
            raise ValueError(f"Section '{name}' in {path} must be a mapping")
        sections[name] = {
            key: expand_env(value) if isinstance(value, str) else value
            for key, value in body.items()
        }
    return sections


def load_hierarchical_config() -> Sections:
    """Merge every discovered file, the project file winning per key.

    Returns:
        ``{section: {key: value}}`` holding only keys some file sets.
    """
    merged: Sections = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        for name, body in read_config_file(path).items():
            merged.setdefault(name, {}).update(body)
    return merged


def load_file_config() -> UnifiedConfig:
    """Validated settings from the config files (all defaults without any).

    Raises:
        ValueError: On an unreadable file or an invalid value (pydantic's
            ``ValidationError`` is a ``ValueError``).
    """
    return build_config(load_hierarchical_config())


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_HEADER = """\
# bookmarkdown configuration
#
# Every setting below shows its default.  Uncomment the ones to change.
# The token is usually taken from GITHUB_TOKEN (a .env file works too).
#
"""


def render_starter_config() -> str:
    """The defaults of ``UnifiedConfig`` as a fully commented YAML file."""
    defaults = UnifiedConfig().model_dump(mode="json")
    defaults["gist"]["token"] = "${GITHUB_TOKEN}"
    body = yaml.safe_dump(defaults, sort_keys=False, default_flow_style=False)
    return _STARTER_HEADER + "".join(f"# {line}\n" for line in body.splitlines())


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a starter if there is none.

    Args:
        target: Where to create the starter.  Defaults to
            ``project_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or project_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(render_starter_config(), encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path
