"""Common test fixtures for the daybook MCP server."""

import pytest

from daybook_mcp.config import config
from daybook_mcp.observability import MetricsCollector
from daybook_mcp.storage.note_store import NoteStore
from tests.fakes import FakeClock, FakeGit, ManualTimerFactory
from tests.helpers import TODAY, run_git


@pytest.fixture(autouse=True)
def isolated_metrics(tmp_path, monkeypatch):
    """Give each test its own metrics collector writing under tmp_path."""
    collector = MetricsCollector(metrics_file=tmp_path / "metrics.json")
    monkeypatch.setattr("daybook_mcp.observability.metrics", collector)
    monkeypatch.setattr("daybook_mcp.server.mcp_server.metrics", collector)
    monkeypatch.setattr("daybook_mcp.main.metrics", collector)
    return collector


@pytest.fixture
def git_env(tmp_path_factory, monkeypatch):
    """Isolate git from the user's configuration."""
    home = tmp_path_factory.mktemp("githome")
    gitconfig = home / ".gitconfig"
    gitconfig.write_text(
        "[user]\n"
        "\tname = Daybook Tests\n"
        "\temail = tests@daybook.invalid\n"
        "[init]\n"
        "\tdefaultBranch = main\n"
        "[commit]\n"
        "\tgpgsign = false\n"
        "[pull]\n"
        "\trebase = false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Daybook Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@daybook.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Daybook Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@daybook.invalid")
    return home


@pytest.fixture
def git_repos(tmp_path, git_env):
    """A bare remote plus a work tree tracking it, with one initial commit.

    Returns (work_tree, remote) paths.
    """
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    run_git(tmp_path, "init", "--bare", "-b", "main", str(remote))
    run_git(tmp_path, "init", "-b", "main", str(work))
    (work / "README").write_text("daybook\n", encoding="utf-8")
    run_git(work, "add", "-A")
    run_git(work, "commit", "-m", "initial")
    run_git(work, "remote", "add", "origin", str(remote))
    run_git(work, "push", "-u", "origin", "main")
    return work, remote


@pytest.fixture
def second_clone(tmp_path, git_repos):
    """Another work tree on the same remote, standing in for another device."""
    _, remote = git_repos
    other = tmp_path / "other"
    run_git(tmp_path, "clone", str(remote), str(other))
    return other


@pytest.fixture
def notes_root(tmp_path):
    """A plain (non-git) note root."""
    root = tmp_path / "notes"
    root.mkdir()
    return root


@pytest.fixture
def note_store(notes_root):
    return NoteStore(notes_root)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def timers(fake_clock):
    return ManualTimerFactory(fake_clock)


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def test_config(notes_root, monkeypatch):
    """Configure with test paths and no background threads (auto-restored)."""
    monkeypatch.setattr(config, "notes_dir", notes_root)
    monkeypatch.setattr(config, "cache_budget_bytes", 1024 * 1024)
    monkeypatch.setattr(config, "sync_debounce_seconds", 10.0)
    monkeypatch.setattr(config, "reconcile_interval_seconds", 300.0)
    monkeypatch.setattr(config, "reconcile_enabled", False)
    monkeypatch.setattr(config, "commit_message", "automated-update")
    monkeypatch.setattr(config, "asset_base_url", "/notes")
    yield config


@pytest.fixture
def daybook_service(test_config, notes_root, fake_git, fake_clock, timers):
    """A DaybookService over a plain directory with scripted git and timers."""
    from daybook_mcp.services.daybook_service import DaybookService

    service = DaybookService(
        notes_dir=notes_root,
        git=fake_git,
        today=lambda: TODAY,
        clock=fake_clock,
        timer_factory=timers,
    )
    service.initialize()
    yield service
    service.shutdown(flush=False)
