"""Tests for [scope:]identifier target resolution."""

from pathlib import Path

import pytest

from wt_manager.config import Config
from wt_manager.exceptions import (
    AmbiguousTargetError,
    GitError,
    ResolutionError,
    ScopeNotFoundError,
    WorktreeNotFoundError,
)
from wt_manager.models import WorktreeInfo
from wt_manager.registry import Registry, Repo
from wt_manager.scope import (
    LabelMatch,
    NameMatch,
    NotFound,
    find_or_register_current_repo,
    match_scope,
    parse_target,
    resolve_scope_args,
    resolve_scoped_target,
    resolve_worktree_targets,
)


@pytest.fixture
def registry(tmp_path: Path) -> Registry:
    repos = []
    for name, labels in [("alpha", ["backend"]), ("beta", ["backend", "web"]), ("gamma", [])]:
        path = tmp_path / "repos" / name
        path.mkdir(parents=True)
        repos.append(Repo(name=name, path=str(path), labels=labels))
    return Registry(repos, path=tmp_path / "registry.json")


class FakeWorktrees:
    """Stands in for `git worktree list`, keyed by repository directory name."""

    def __init__(self, branches: dict[str, list[str]]) -> None:
        self.branches = branches
        self.calls: list[str] = []

    def __call__(self, repo_path: Path) -> list[WorktreeInfo]:
        self.calls.append(repo_path.name)
        return [
            WorktreeInfo(path=str(repo_path.parent / f"{repo_path.name}-{b}"), branch=b)
            for b in self.branches.get(repo_path.name, [])
        ]


class TestParseTarget:
    def test_bare_identifier(self) -> None:
        assert parse_target("feature") == (None, "feature")

    def test_scoped(self) -> None:
        assert parse_target("alpha:feature") == ("alpha", "feature")

    def test_splits_on_first_colon(self) -> None:
        assert parse_target("alpha:feat:x") == ("alpha", "feat:x")

    def test_leading_colon_is_not_a_scope(self) -> None:
        """A colon at position 0 leaves the whole string as the identifier."""
        assert parse_target(":feature") == (None, ":feature")

    def test_branch_with_slash(self) -> None:
        assert parse_target("alpha:feature/login") == ("alpha", "feature/login")


class TestMatchScope:
    def test_name_match(self, registry: Registry) -> None:
        match = match_scope(registry, "alpha")
        assert isinstance(match, NameMatch)
        assert match.repo.name == "alpha"

    def test_label_match_fans_out(self, registry: Registry) -> None:
        match = match_scope(registry, "backend")
        assert isinstance(match, LabelMatch)
        assert [r.name for r in match.repos] == ["alpha", "beta"]

    def test_not_found(self, registry: Registry) -> None:
        assert match_scope(registry, "nope") == NotFound("nope")

    def test_name_wins_over_label(self, registry: Registry, tmp_path: Path) -> None:
        """A repo named like a label is matched by name only."""
        path = tmp_path / "repos" / "web"
        path.mkdir()
        registry.repos.append(Repo(name="web", path=str(path)))

        match = match_scope(registry, "web")
        assert isinstance(match, NameMatch)
        assert match.repo.name == "web"

    def test_no_partial_matching(self, registry: Registry) -> None:
        assert isinstance(match_scope(registry, "alph"), NotFound)


class TestResolveScopedTarget:
    def test_no_scope_means_all_repos(self, registry: Registry) -> None:
        target = resolve_scoped_target(registry, "feature")
        assert target.scope is None
        assert [r.name for r in target.repos] == ["alpha", "beta", "gamma"]

    def test_unknown_scope_is_an_error(self, registry: Registry) -> None:
        with pytest.raises(ScopeNotFoundError, match="no repo or label found: nope"):
            resolve_scoped_target(registry, "nope:feature")

    def test_empty_identifier(self, registry: Registry) -> None:
        with pytest.raises(ResolutionError):
            resolve_scoped_target(registry, "alpha:")

    def test_label_scope(self, registry: Registry) -> None:
        target = resolve_scoped_target(registry, "backend:feature")
        assert target.matched_by_label
        assert target.identifier == "feature"
        assert [r.name for r in target.repos] == ["alpha", "beta"]

    def test_is_deterministic(self, registry: Registry) -> None:
        assert resolve_scoped_target(registry, "web:x") == resolve_scoped_target(registry, "web:x")

    def test_dedupes_by_path(self, registry: Registry) -> None:
        registry.repos.append(Repo(name="alias", path=registry.repos[0].path))
        target = resolve_scoped_target(registry, "feature")
        assert len(target.repos) == 3


class TestResolveScopeArgs:
    def test_names_and_labels_are_merged(self, registry: Registry) -> None:
        repos = resolve_scope_args(registry, ["gamma", "backend", "alpha"])
        assert [r.name for r in repos] == ["gamma", "alpha", "beta"]

    def test_unknown_token(self, registry: Registry) -> None:
        with pytest.raises(ScopeNotFoundError):
            resolve_scope_args(registry, ["alpha", "missing"])


class TestResolveWorktreeTargets:
    def test_scoped_by_name(self, registry: Registry) -> None:
        fake = FakeWorktrees({"alpha": ["feature"], "beta": ["feature"]})
        found = resolve_worktree_targets(registry, ["alpha:feature"], list_worktrees=fake)
        assert [(t.repo_name, t.branch) for t in found] == [("alpha", "feature")]
        assert fake.calls == ["alpha"]

    def test_label_fans_out_to_every_repo_with_branch(self, registry: Registry) -> None:
        fake = FakeWorktrees({"alpha": ["feature"], "beta": ["feature"]})
        found = resolve_worktree_targets(registry, ["backend:feature"], list_worktrees=fake)
        assert sorted(t.repo_name for t in found) == ["alpha", "beta"]

    def test_label_skips_repos_without_branch(self, registry: Registry) -> None:
        fake = FakeWorktrees({"beta": ["feature"]})
        found = resolve_worktree_targets(registry, ["backend:feature"], list_worktrees=fake)
        assert [t.repo_name for t in found] == ["beta"]

    def test_label_with_no_match(self, registry: Registry) -> None:
        fake = FakeWorktrees({})
        with pytest.raises(WorktreeNotFoundError, match="label matched 2 repos"):
            resolve_worktree_targets(registry, ["backend:feature"], list_worktrees=fake)

    def test_unscoped_unique(self, registry: Registry) -> None:
        fake = FakeWorktrees({"gamma": ["feature"]})
        found = resolve_worktree_targets(registry, ["feature"], list_worktrees=fake)
        assert [t.repo_name for t in found] == ["gamma"]

    def test_unscoped_ambiguous(self, registry: Registry) -> None:
        """A bare branch present in two repos is never guessed."""
        fake = FakeWorktrees({"alpha": ["feature"], "gamma": ["feature"]})
        with pytest.raises(AmbiguousTargetError) as excinfo:
            resolve_worktree_targets(registry, ["feature"], list_worktrees=fake)
        message = str(excinfo.value)
        assert "alpha:feature" in message
        assert "gamma:feature" in message
        assert "scope:identifier" in message

    def test_unscoped_not_found(self, registry: Registry) -> None:
        with pytest.raises(WorktreeNotFoundError, match="worktree not found: feature"):
            resolve_worktree_targets(registry, ["feature"], list_worktrees=FakeWorktrees({}))

    def test_duplicate_targets_resolve_once(self, registry: Registry) -> None:
        fake = FakeWorktrees({"alpha": ["feature"]})
        found = resolve_worktree_targets(
            registry, ["alpha:feature", "feature", "backend:feature"], list_worktrees=fake
        )
        assert len(found) == 1

    def test_unreachable_repos_are_skipped(self, registry: Registry, tmp_path: Path) -> None:
        registry.repos.append(Repo(name="gone", path=str(tmp_path / "missing")))

        def flaky(repo_path: Path) -> list[WorktreeInfo]:
            if repo_path.name == "beta":
                raise GitError("broken")
            return FakeWorktrees({"alpha": ["feature"]})(repo_path)

        found = resolve_worktree_targets(registry, ["feature"], list_worktrees=flaky)
        assert [t.repo_name for t in found] == ["alpha"]


class TestFindOrRegisterCurrentRepo:
    def test_registers_current_repo(self, temp_git_repo: Path) -> None:
        registry = Registry.load()
        repo = find_or_register_current_repo(registry, Config(default_labels=["work"]))

        assert repo.name == "test-repo"
        assert repo.path == str(temp_git_repo)
        assert repo.labels == ["work"]
        assert Registry.load().find_by_name("test-repo").path == str(temp_git_repo)

    def test_returns_existing(self, temp_git_repo: Path) -> None:
        registry = Registry.load()
        first = find_or_register_current_repo(registry, Config())
        second = find_or_register_current_repo(registry, Config())
        assert first is second
        assert len(registry.repos) == 1

    def test_name_collision_gets_suffix(self, temp_git_repo: Path, tmp_path: Path) -> None:
        other = tmp_path / "elsewhere"
        other.mkdir()
        registry = Registry([Repo(name="test-repo", path=str(other))])
        repo = find_or_register_current_repo(registry, Config())
        assert repo.name == "test-repo-2"

    def test_not_in_repo(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        monkeypatch.chdir(plain)
        with pytest.raises(GitError):
            find_or_register_current_repo(Registry.load(), Config())
