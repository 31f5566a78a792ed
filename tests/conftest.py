"""Shared fixtures: isolated home directories and real git repositories."""

import subprocess
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from wt_manager import console


def git(*args: str, cwd: Path) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def init_repo(path: Path) -> Path:
    """Create a git repository with one commit on main."""
    path.mkdir(parents=True, exist_ok=True)
    git("init", "-b", "main", cwd=path)
    git("config", "user.name", "Test User", cwd=path)
    git("config", "user.email", "test@example.com", cwd=path)
    git("config", "commit.gpgsign", "false", cwd=path)
    (path / "README.md").write_text("# Test Repository\n")
    git("add", "README.md", cwd=path)
    git("commit", "-m", "Initial commit", cwd=path)
    return path.resolve()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME and the XDG directories at a per-test directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / ".local" / "state"))
    monkeypatch.delenv("WT_LOG_LEVEL", raising=False)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    console.reset()
    yield home
    console.reset()


@pytest.fixture
def temp_git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A git repository used as the current directory."""
    repo = init_repo(tmp_path / "test-repo")
    monkeypatch.chdir(repo)
    return repo


MakeRepo = Callable[..., Path]


@pytest.fixture
def make_repo(tmp_path: Path) -> MakeRepo:
    """Factory creating a repository with a worktree per branch.

    Worktrees live next to the repository as "<name>-<branch>".
    """

    def factory(name: str, branches: Iterable[str] = (), origin: str | None = None) -> Path:
        repo = init_repo(tmp_path / name)
        if origin:
            git("remote", "add", "origin", origin, cwd=repo)
        for branch in branches:
            add_worktree(repo, branch)
        return repo

    return factory


def add_worktree(repo: Path, branch: str) -> Path:
    path = repo.parent / f"{repo.name}-{branch.replace('/', '-')}"
    git("worktree", "add", "-b", branch, str(path), cwd=repo)
    return path.resolve()
