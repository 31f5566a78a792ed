"""Resolution of `[scope:]identifier` targets.

A scope is either an exact repository name or a label. Names always win
over labels; a scope that matches neither is an error, never a silent
fallback to "all repositories".
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .exceptions import (
    AmbiguousTargetError,
    GitError,
    RepoNotFoundError,
    ResolutionError,
    ScopeNotFoundError,
    WorktreeNotFoundError,
)
from .git_utils import get_main_repo_root, list_worktrees_from_repo
from .models import WorktreeInfo
from .registry import Registry, Repo

ListWorktreesFn = Callable[[Path], list[WorktreeInfo]]


@dataclass(frozen=True)
class NameMatch:
    repo: Repo


@dataclass(frozen=True)
class LabelMatch:
    repos: tuple[Repo, ...]


@dataclass(frozen=True)
class NotFound:
    scope: str


ScopeMatch = NameMatch | LabelMatch | NotFound


@dataclass(frozen=True)
class ScopedTarget:
    repos: tuple[Repo, ...]
    identifier: str
    scope: str | None = None
    matched_by_label: bool = False


@dataclass(frozen=True)
class WorktreeTarget:
    repo_name: str
    repo_path: str
    branch: str
    path: str


def parse_target(target: str) -> tuple[str | None, str]:
    """Split "scope:identifier" on the first colon.

    A colon at position 0 does not start a scope, so ":foo" is the bare
    identifier ":foo".

    Returns:
        (scope, identifier); scope is None when absent.
    """
    idx = target.find(":")
    if idx > 0:
        return target[:idx], target[idx + 1:]
    return None, target


def dedupe_repos(repos: Iterable[Repo]) -> list[Repo]:
    """Drop repositories whose path was already seen, keeping order."""
    seen: set[str] = set()
    unique: list[Repo] = []
    for repo in repos:
        if repo.path not in seen:
            seen.add(repo.path)
            unique.append(repo)
    return unique


def match_scope(registry: Registry, scope: str) -> ScopeMatch:
    """Resolve a scope token: exact repository name first, then label."""
    try:
        return NameMatch(registry.find_by_name(scope))
    except RepoNotFoundError:
        pass

    labelled = registry.find_by_label(scope)
    if labelled:
        return LabelMatch(tuple(dedupe_repos(labelled)))
    return NotFound(scope)


def resolve_scoped_target(registry: Registry, target: str) -> ScopedTarget:
    """Parse and resolve a `[scope:]identifier` target.

    Without a scope every registered repository is a candidate; callers
    skip the unreachable ones when they list worktrees.

    Raises:
        ScopeNotFoundError: If the scope is neither a repo name nor a label
        ResolutionError: If the identifier after the scope is empty
    """
    scope, identifier = parse_target(target)
    if scope is None:
        return ScopedTarget(repos=tuple(dedupe_repos(registry.repos)), identifier=identifier)

    if not identifier:
        raise ResolutionError(f"branch name required after {scope + ':'!r}")

    match match_scope(registry, scope):
        case NameMatch(repo=repo):
            return ScopedTarget(repos=(repo,), identifier=identifier, scope=scope)
        case LabelMatch(repos=repos):
            return ScopedTarget(
                repos=repos, identifier=identifier, scope=scope, matched_by_label=True
            )
        case NotFound():
            raise ScopeNotFoundError(f"no repo or label found: {scope}")


def resolve_scope_args(registry: Registry, scopes: Iterable[str]) -> list[Repo]:
    """Resolve bare scope tokens (repo names or labels) to repositories.

    Raises:
        ScopeNotFoundError: If any token matches nothing
    """
    repos: list[Repo] = []
    for scope in scopes:
        match match_scope(registry, scope):
            case NameMatch(repo=repo):
                repos.append(repo)
            case LabelMatch(repos=labelled):
                repos.extend(labelled)
            case NotFound():
                raise ScopeNotFoundError(f"no repo or label found: {scope}")
    return dedupe_repos(repos)


def _find_branch(
    repo: Repo, branch: str, list_worktrees: ListWorktreesFn
) -> WorktreeTarget | None:
    repo_path = Path(repo.path)
    if not repo_path.exists():
        return None
    try:
        worktrees = list_worktrees(repo_path)
    except GitError:
        return None
    for wt in worktrees:
        if wt.branch == branch:
            return WorktreeTarget(
                repo_name=repo.name, repo_path=repo.path, branch=branch, path=wt.path
            )
    return None


def resolve_worktree_targets(
    registry: Registry,
    targets: Iterable[str],
    list_worktrees: ListWorktreesFn = list_worktrees_from_repo,
) -> list[WorktreeTarget]:
    """Resolve `[scope:]branch` arguments to concrete worktrees.

    A scoped target yields the branch in every scoped repository that has
    it (a label may fan out to several). A bare target must be found in
    exactly one reachable repository.

    Args:
        registry: Registry snapshot
        targets: Raw target strings
        list_worktrees: Git collaborator used to list a repository's worktrees

    Returns:
        Targets deduplicated by worktree path, in argument order.

    Raises:
        ScopeNotFoundError: If a scope matches nothing
        WorktreeNotFoundError: If a target matches no worktree
        AmbiguousTargetError: If a bare target exists in several repositories
    """
    results: list[WorktreeTarget] = []

    for target in targets:
        parsed = resolve_scoped_target(registry, target)
        matches = [
            found for repo in parsed.repos
            if (found := _find_branch(repo, parsed.identifier, list_worktrees)) is not None
        ]

        if parsed.scope is not None:
            if not matches:
                if parsed.matched_by_label:
                    raise WorktreeNotFoundError(
                        f"worktree not found: {target} "
                        f"(label matched {len(parsed.repos)} repos)"
                    )
                raise WorktreeNotFoundError(f"worktree not found: {target}")
            results.extend(matches)
            continue

        if not matches:
            raise WorktreeNotFoundError(f"worktree not found: {parsed.identifier}")
        if len(matches) > 1:
            lines = [f"ambiguous target '{target}' found in multiple repositories:"]
            for found in matches:
                lines.append(f"  {found.repo_name}:{found.branch} -> {found.path}")
            lines.append("Use scope:identifier (repo name or label) to pick one.")
            raise AmbiguousTargetError("\n".join(lines))
        results.extend(matches)

    seen: set[str] = set()
    unique: list[WorktreeTarget] = []
    for found in results:
        if found.path not in seen:
            seen.add(found.path)
            unique.append(found)
    return unique


def find_or_register_current_repo(
    registry: Registry, config: Config, cwd: Path | None = None
) -> Repo:
    """Find the registered repository containing cwd, registering it if needed.

    New repositories get the directory name as their name and the
    configured default labels. The registry is saved on registration.

    Raises:
        GitError: If cwd is not inside a git repository
    """
    repo_path = get_main_repo_root(cwd)
    try:
        return registry.find_by_path(repo_path)
    except RepoNotFoundError:
        pass

    name = repo_path.name
    taken = {repo.name for repo in registry.repos}
    suffix = 2
    while name in taken:
        name = f"{repo_path.name}-{suffix}"
        suffix += 1

    repo = registry.add(Repo(name=name, path=str(repo_path), labels=list(config.default_labels)))
    registry.save()
    return repo
