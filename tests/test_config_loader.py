"""Tests for bookmarkdown.config_loader -- YAML config files."""

import textwrap

import pytest
import yaml

from bookmarkdown.config_loader import (
    _STARTER_HEADER,
    CONFIG_ENV_VAR,
    discover_config_files,
    ensure_config,
    expand_env,
    load_file_config,
    load_hierarchical_config,
    project_config_path,
    read_config_file,
    render_starter_config,
)
from bookmarkdown.config_schema import UnifiedConfig
from bookmarkdown.sync.models import MergeStrategy


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no explicit config path."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    fake_home = tmp_path / "fakehome"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    return tmp_path


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


def _user_file(root, text):
    return _write(root / "fakehome" / ".config" / "bookmarkdown" / "config.yml", text)


def _project_file(root, text):
    return _write(root / ".bookmarkdown" / "config.yml", text)


# -------------------------------------------------------------------------
# Env var expansion
# -------------------------------------------------------------------------


class TestExpandEnv:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("BM_TOKEN", "ghp_abc")
        assert expand_env("${BM_TOKEN}") == "ghp_abc"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert expand_env("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        monkeypatch.setenv("EMPTY_VAR", "")
        assert expand_env("${UNSET_VAR_XYZ:-bookmarks.md}") == "bookmarks.md"
        assert expand_env("${EMPTY_VAR:-fallback}") == "fallback"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("BM_INTERVAL", "30")
        assert expand_env("${BM_INTERVAL:-10}") == "30"

    def test_embedded_reference(self, monkeypatch):
        monkeypatch.setenv("BM_USER", "ann")
        assert expand_env("/home/${BM_USER}/.state") == "/home/ann/.state"

    def test_unclosed_reference_is_literal(self):
        assert expand_env("${NO_CLOSE") == "${NO_CLOSE"


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_project_before_user(self, isolated):
        project = _project_file(isolated, "sync: {}\n")
        user = _user_file(isolated, "sync: {}\n")
        assert discover_config_files() == [project, user]

    def test_env_var_replaces_project_file(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "gist: {}\n")
        _project_file(isolated, "sync: {}\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))
        assert discover_config_files() == [custom.resolve()]

    def test_yaml_extension_accepted(self, isolated):
        legacy = _write(isolated / ".bookmarkdown" / "config.yaml", "sync: {}\n")
        assert discover_config_files() == [legacy]

    def test_env_var_pointing_nowhere_ignored(self, isolated, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(isolated / "nope.yml"))
        assert discover_config_files() == []

    def test_default_project_path(self, isolated):
        assert project_config_path() == isolated / ".bookmarkdown" / "config.yml"


# -------------------------------------------------------------------------
# Reading one file
# -------------------------------------------------------------------------


class TestReadConfigFile:
    """Tests for read_config_file()."""

    def test_sections_with_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BM_TEST_TOKEN", "from-env")
        monkeypatch.delenv("BM_UNSET_NAME", raising=False)
        path = _write(
            tmp_path / "config.yml",
            """\
            gist:
              token: ${BM_TEST_TOKEN}
              filename: ${BM_UNSET_NAME:-links.md}
              public: true
            """,
        )
        assert read_config_file(path) == {
            "gist": {"token": "from-env", "filename": "links.md", "public": True}
        }

    def test_empty_file(self, tmp_path):
        assert read_config_file(_write(tmp_path / "config.yml", "")) == {}

    def test_empty_section_is_skipped(self, tmp_path):
        path = _write(tmp_path / "config.yml", "gist:\nsync:\n  state_dir: s\n")
        assert read_config_file(path) == {"sync": {"state_dir": "s"}}

    def test_unknown_section_warned_and_dropped(self, tmp_path, caplog):
        path = _write(tmp_path / "config.yml", "server:\n  port: 1\nsync: {}\n")
        assert read_config_file(path) == {"sync": {}}
        assert "Ignoring unknown section 'server'" in caplog.text

    def test_invalid_yaml_names_the_file(self, tmp_path):
        path = _write(tmp_path / "config.yml", "gist: [unclosed\n")
        with pytest.raises(ValueError, match="is not valid YAML") as excinfo:
            read_config_file(path)
        assert str(path) in str(excinfo.value)

    def test_list_top_level_rejected(self, tmp_path):
        path = _write(tmp_path / "config.yml", "- just\n- a list\n")
        with pytest.raises(ValueError, match="not a list"):
            read_config_file(path)

    def test_scalar_section_rejected(self, tmp_path):
        path = _write(tmp_path / "config.yml", "sync: fast\n")
        with pytest.raises(ValueError, match="Section 'sync'"):
            read_config_file(path)


# -------------------------------------------------------------------------
# Merging
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() and load_file_config()."""

    def test_no_files(self, isolated):
        assert load_hierarchical_config() == {}
        assert load_file_config() == UnifiedConfig()

    def test_project_overrides_per_key(self, isolated):
        _user_file(
            isolated,
            """\
            gist:
              token: user-token
              filename: user.md
            logging:
              level: DEBUG
            """,
        )
        _project_file(
            isolated,
            """\
            gist:
              filename: project.md
            """,
        )
        assert load_hierarchical_config() == {
            "gist": {"token": "user-token", "filename": "project.md"},
            "logging": {"level": "DEBUG"},
        }

    def test_file_config_is_validated(self, isolated):
        _project_file(
            isolated,
            """\
            sync:
              strategy: local-wins
              poll_interval: 2.5
            """,
        )
        unified = load_file_config()
        assert unified.sync.strategy is MergeStrategy.LOCAL_WINS
        assert unified.sync.poll_interval == 2.5
        assert unified.gist == UnifiedConfig().gist

    def test_invalid_value_is_a_value_error(self, isolated):
        _project_file(isolated, "sync:\n  poll_interval: 0\n")
        with pytest.raises(ValueError, match="poll_interval"):
            load_file_config()

    def test_broken_user_file_propagates(self, isolated):
        _project_file(isolated, "sync: {}\n")
        _user_file(isolated, "gist: [unclosed\n")
        with pytest.raises(ValueError, match="is not valid YAML"):
            load_hierarchical_config()


# -------------------------------------------------------------------------
# Starter config
# -------------------------------------------------------------------------


class TestStarterConfig:
    """Tests for render_starter_config() and ensure_config()."""

    def test_starter_loads_as_nothing(self):
        text = render_starter_config()
        assert text.startswith("# bookmarkdown configuration")
        assert yaml.safe_load(text) is None

    def test_uncommented_starter_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_starter")
        body = render_starter_config()[len(_STARTER_HEADER):]
        uncommented = "".join(line[2:] + "\n" for line in body.splitlines())
        path = _write(tmp_path / "config.yml", uncommented)

        sections = read_config_file(path)
        assert set(sections) == {"gist", "sync", "logging"}
        assert sections["gist"]["token"] == "ghp_starter"
        defaults = UnifiedConfig()
        unified = UnifiedConfig(**sections)
        assert unified.sync == defaults.sync
        assert unified.logging == defaults.logging
        assert unified.gist.filename == defaults.gist.filename

    def test_writes_starter(self, isolated):
        path = ensure_config()
        assert path == isolated / ".bookmarkdown" / "config.yml"
        assert path.read_text() == render_starter_config()
        assert load_hierarchical_config() == {}

    def test_existing_file_untouched(self, isolated):
        existing = _project_file(isolated, "gist: {}\n")
        assert ensure_config() == existing
        assert existing.read_text() == "gist: {}\n"

    def test_user_file_counts_as_existing(self, isolated):
        user = _user_file(isolated, "sync: {}\n")
        assert ensure_config() == user
        assert not (isolated / ".bookmarkdown").exists()

    def test_explicit_target(self, isolated):
        target = isolated / "elsewhere" / "bm.yml"
        assert ensure_config(target) == target
        assert target.exists()
