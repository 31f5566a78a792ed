"""Helper functions shared across operations modules."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from rich.markup import escape

from ..config import Config
from ..console import debug, get_console, warn
from ..exceptions import GitError, ScopeNotFoundError
from ..git_utils import get_origin_url, is_dirty, list_worktrees_from_repo
from ..models import Worktree
from ..prcache import PRCache, cache_key
from ..registry import Registry, Repo
from ..scope import dedupe_repos, find_or_register_current_repo


def resolve_repos(
    registry: Registry,
    config: Config,
    *,
    all_repos: bool = False,
    names: Iterable[str] = (),
    labels: Iterable[str] = (),
    cwd: Path | None = None,
) -> list[Repo]:
    """Work out which repositories a command operates on.

    Precedence: -g (everything), then -r/-l, then the repository containing
    cwd (registered on first use). Outside any repository every registered
    repository is used.

    Raises:
        RepoNotFoundError: If a -r name is not registered
        ScopeNotFoundError: If a -l label matches nothing
    """
    if all_repos:
        return dedupe_repos(registry.repos)

    names, labels = list(names), list(labels)
    if names or labels:
        repos = [registry.find_by_name(name) for name in names]
        for label in labels:
            labelled = registry.find_by_label(label)
            if not labelled:
                raise ScopeNotFoundError(f"no repos with label: {label}")
            repos.extend(labelled)
        return dedupe_repos(repos)

    try:
        return [find_or_register_current_repo(registry, config, cwd)]
    except GitError:
        debug("not inside a git repository, using all registered repos")
        return dedupe_repos(registry.repos)


def apply_cached_pr(worktree: Worktree, cache: PRCache) -> Worktree:
    """Copy the cached PR state onto a worktree. Unfetched entries are ignored."""
    entry = cache.get(cache_key(worktree.repo_path, worktree.branch))
    if entry is not None and entry.fetched:
        worktree.pr_state = entry.state
        worktree.pr_draft = entry.is_draft
    else:
        worktree.pr_state = None
        worktree.pr_draft = False
    return worktree


def collect_worktrees(repos: Iterable[Repo], cache: PRCache) -> list[Worktree]:
    """Build Worktree records for every secondary worktree of `repos`.

    Repositories that are missing on disk or unreadable are skipped with a
    warning. The origin URL is looked up once per repository. Results are
    sorted by repository name and keep git's worktree order within one.
    """
    collected: list[Worktree] = []
    for repo in repos:
        repo_path = Path(repo.path)
        if not repo_path.exists():
            warn(f"{repo.name}: repository not found at {repo.path}")
            continue
        try:
            infos = list_worktrees_from_repo(repo_path)
        except GitError as e:
            warn(f"{repo.name}: {e}")
            continue

        origin_url = get_origin_url(repo_path)
        for info in infos:
            collected.append(
                Worktree(
                    repo_name=repo.name,
                    repo_path=repo.path,
                    branch=info.branch,
                    path=info.path,
                    origin_url=origin_url,
                    is_dirty=is_dirty(Path(info.path)),
                )
            )

    collected.sort(key=lambda wt: wt.repo_name)
    return [apply_cached_pr(wt, cache) for wt in collected]


def refresh_cached_state(worktrees: Iterable[Worktree], cache: PRCache) -> None:
    """Re-apply cache contents after a refresh or reset."""
    for wt in worktrees:
        apply_cached_pr(wt, cache)


def save_cache(cache: PRCache) -> None:
    """Persist the cache if it changed; a write failure is only a warning."""
    try:
        cache.save_if_dirty()
    except OSError as e:
        warn(f"failed to save PR cache: {e}")


def print_rows(headers: list[str], rows: list[list[str]], styles: list[str] | None = None) -> None:
    """Print rows as padded columns under a header rule."""
    console = get_console()
    widths = [
        min(max([len(h)] + [len(row[i]) for row in rows]) + 2, 45)
        for i, h in enumerate(headers)
    ]
    widths[-1] = 0
    console.print("".join(f"{h:<{w}}" for h, w in zip(headers, widths)), style="bold")
    console.print("─" * (sum(widths) + len(headers[-1]) + 10))
    for row in rows:
        cells = []
        for i, (cell, width) in enumerate(zip(row, widths)):
            text = escape(f"{cell:<{width}}")
            style = styles[i] if styles and styles[i] else ""
            cells.append(f"[{style}]{text}[/]" if style else text)
        console.print("".join(cells))
