"""Tests for the bookmarkdown command line (cli.main)."""

from __future__ import annotations

import json
import os

import pytest

from bookmarkdown import cli
from bookmarkdown.errors import TransportError
from bookmarkdown.service import BookmarkService
from bookmarkdown.sync.remote import InMemoryRepository
from bookmarkdown.sync.state import SyncState
from bookmarkdown.sync.storage import JsonFileStore
from bookmarkdown.tree.models import BookmarkUpdate

SAMPLE = "# Dev\n\n## Tools\n\n- [A](https://a.com)\n  - tags: git\n\n"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """No ambient token, config files, .env or logging changes."""
    for key in list(os.environ):
        if key == "GITHUB_TOKEN" or key.startswith("BOOKMARKDOWN_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def remote(monkeypatch) -> InMemoryRepository:
    repository = InMemoryRepository()
    monkeypatch.setattr(cli, "build_repository", lambda config: repository)
    return repository


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "bookmarks.md"
    path.write_text(SAMPLE)
    return path


def _run(state_dir, *argv: str) -> int:
    return cli.main(["--token", "x", "--state-dir", str(state_dir), *argv])


def _state(state_dir) -> SyncState:
    return SyncState(JsonFileStore(state_dir / cli.STATE_FILE))


class _RejectingRepository(InMemoryRepository):
    """GitHub answers 401 to every request."""

    async def whoami(self) -> str:
        raise TransportError("Bad credentials", status=401)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    """Startup and configuration errors."""

    def test_remote_command_needs_token(self, capsys) -> None:
        assert cli.main(["pull"]) == cli.EXIT_FAILURE
        assert "Configuration error" in capsys.readouterr().err

    def test_local_command_needs_no_token(self, capsys) -> None:
        assert cli.main(["status"]) == cli.EXIT_OK
        assert "(not synced yet)" in capsys.readouterr().out

    def test_invalid_strategy_from_env(self, monkeypatch, capsys) -> None:
        monkeypatch.setenv("BOOKMARKDOWN_STRATEGY", "newest")
        assert cli.main(["status"]) == cli.EXIT_FAILURE
        assert "Invalid merge strategy" in capsys.readouterr().err

    def test_yaml_config_is_used(self, tmp_path, capsys) -> None:
        config_dir = tmp_path / ".bookmarkdown"
        config_dir.mkdir()
        (config_dir / "config.yml").write_text(
            "sync:\n  state_dir: from-yaml\n"
        )
        args = cli.build_parser().parse_args(["status"])
        config = cli.load_runtime_config(args, require_token=False)
        assert config.state_dir == "from-yaml"

    def test_yaml_sections_merge_with_user_file(self, tmp_path) -> None:
        user_dir = tmp_path / "home" / ".config" / "bookmarkdown"
        user_dir.mkdir(parents=True)
        (user_dir / "config.yml").write_text(
            "gist:\n  filename: user.md\n  timeout: 5\nlogging:\n  level: debug\n"
        )
        project_dir = tmp_path / ".bookmarkdown"
        project_dir.mkdir()
        (project_dir / "config.yml").write_text("gist:\n  filename: project.md\n")
        args = cli.build_parser().parse_args(["status"])
        config = cli.load_runtime_config(args, require_token=False)
        assert config.filename == "project.md"
        assert config.timeout == 5.0
        assert config.debug is True
        assert config.state_dir == ".bookmarkdown"

    def test_broken_yaml_is_a_configuration_error(self, tmp_path, capsys) -> None:
        config_dir = tmp_path / ".bookmarkdown"
        config_dir.mkdir()
        (config_dir / "config.yml").write_text("sync: [unclosed\n")
        assert cli.main(["status"]) == cli.EXIT_FAILURE
        err = capsys.readouterr().err
        assert "Configuration error" in err
        assert "is not valid YAML" in err

    def test_init_writes_starter(self, tmp_path, capsys) -> None:
        assert cli.main(["init"]) == cli.EXIT_OK
        assert (tmp_path / ".bookmarkdown" / "config.yml").exists()
        assert "Config file:" in capsys.readouterr().out

    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])


# ---------------------------------------------------------------------------
# Local commands
# ---------------------------------------------------------------------------


class TestLocalCommands:
    """import, export and status."""

    def test_import_then_status(self, tmp_path, sample_file, capsys) -> None:
        state_dir = tmp_path / "state"
        assert _run(state_dir, "import", str(sample_file)) == cli.EXIT_OK
        assert "Imported 1 bookmarks" in capsys.readouterr().out

        assert _run(state_dir, "status") == cli.EXIT_OK
        assert "1 categories, 1 bundles, 1 bookmarks, 1 tags" in capsys.readouterr().out

    def test_status_json(self, tmp_path, sample_file, capsys) -> None:
        state_dir = tmp_path / "state"
        _run(state_dir, "import", str(sample_file))
        capsys.readouterr()

        assert _run(state_dir, "--json", "status") == cli.EXIT_OK
        info = json.loads(capsys.readouterr().out)
        assert info["document_id"] is None
        assert info["last_synced"] is None
        assert info["bookmark_count"] == 1

    def test_export(self, tmp_path, sample_file, capsys) -> None:
        state_dir = tmp_path / "state"
        _run(state_dir, "import", str(sample_file))
        target = tmp_path / "out.md"

        assert _run(state_dir, "export", str(target)) == cli.EXIT_OK
        assert target.read_text() == SAMPLE
        assert f"Wrote {len(SAMPLE)} bytes" in capsys.readouterr().out

    def test_import_missing_file(self, tmp_path, capsys) -> None:
        code = _run(tmp_path / "state", "import", str(tmp_path / "nope.md"))
        assert code == cli.EXIT_FAILURE
        assert "File not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Remote commands
# ---------------------------------------------------------------------------


class TestRemoteCommands:
    """push, pull, sync and watch against an in-memory remote."""

    def test_push_then_pull_elsewhere(
        self, tmp_path, sample_file, remote, capsys
    ) -> None:
        first = tmp_path / "first"
        _run(first, "import", str(sample_file))
        assert _run(first, "push") == cli.EXIT_OK
        (document,) = remote.documents.values()
        assert document["content"] == SAMPLE

        second = tmp_path / "second"
        capsys.readouterr()
        assert _run(second, "pull") == cli.EXIT_OK
        assert "Pulled 1 bookmarks in 1 categories" in capsys.readouterr().out
        assert _state(second).get_document_id() == _state(first).get_document_id()

    def test_pull_without_document(self, tmp_path, remote, capsys) -> None:
        assert _run(tmp_path / "state", "pull") == cli.EXIT_FAILURE
        assert capsys.readouterr().err

    def test_sync_json(self, tmp_path, sample_file, remote, capsys) -> None:
        state_dir = tmp_path / "state"
        _run(state_dir, "import", str(sample_file))
        capsys.readouterr()

        assert _run(state_dir, "--json", "sync") == cli.EXIT_OK
        payload = json.loads(capsys.readouterr().out)
        assert payload["created"] is True
        assert payload["conflicts"] == []

    def _conflicting(self, tmp_path, sample_file, remote):
        """Push, then edit the same bookmark locally and remotely."""
        state_dir = tmp_path / "state"
        _run(state_dir, "import", str(sample_file))
        _run(state_dir, "push")

        local = BookmarkService(state=_state(state_dir))
        (hit,) = local.search()
        local.update_bookmark(
            "Dev", "Tools", hit.bookmark.id, BookmarkUpdate(notes="local edit")
        )

        document_id = _state(state_dir).get_document_id()
        remote.put(
            SAMPLE.replace("  - tags: git\n", "  - tags: git\n  - notes: remote edit\n"),
            document_id=document_id,
        )
        return state_dir, document_id

    def test_sync_reports_conflicts(
        self, tmp_path, sample_file, remote, capsys
    ) -> None:
        state_dir, document_id = self._conflicting(tmp_path, sample_file, remote)
        capsys.readouterr()

        assert _run(state_dir, "sync") == cli.EXIT_CONFLICTS
        assert "conflict" in capsys.readouterr().out
        assert "remote edit" in remote.documents[document_id]["content"]

    def test_sync_resolve_local(self, tmp_path, sample_file, remote) -> None:
        state_dir, document_id = self._conflicting(tmp_path, sample_file, remote)

        assert _run(state_dir, "sync", "--resolve", "local") == cli.EXIT_OK
        content = remote.documents[document_id]["content"]
        assert "notes: local edit" in content
        assert "remote edit" not in content

    def test_sync_resolve_remote(self, tmp_path, sample_file, remote) -> None:
        state_dir, document_id = self._conflicting(tmp_path, sample_file, remote)

        assert _run(state_dir, "sync", "--resolve", "remote") == cli.EXIT_OK
        restored = BookmarkService(state=_state(state_dir))
        (hit,) = restored.search()
        assert hit.bookmark.notes == "remote edit"

    def test_watch_stops_on_conflicts(self, tmp_path, sample_file, remote) -> None:
        state_dir, _ = self._conflicting(tmp_path, sample_file, remote)
        assert _run(state_dir, "watch") == cli.EXIT_CONFLICTS

    def test_watch_checks_connection_first(self, tmp_path, sample_file, remote) -> None:
        state_dir, _ = self._conflicting(tmp_path, sample_file, remote)
        remote.calls.clear()
        assert _run(state_dir, "watch") == cli.EXIT_CONFLICTS
        assert remote.calls["whoami"] == 1

    def test_watch_rejected_token(self, tmp_path, monkeypatch, capsys) -> None:
        repository = _RejectingRepository()
        monkeypatch.setattr(cli, "build_repository", lambda config: repository)

        assert _run(tmp_path / "state", "watch") == cli.EXIT_FAILURE
        err = capsys.readouterr().err
        assert "Bad credentials" in err
        assert "transport_error" in err
        assert repository.calls["read"] == 0
        assert repository.documents == {}
