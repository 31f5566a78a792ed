"""Worktree listing with cached PR status."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ..config import Config
from ..console import get_console, warn
from ..models import PRState, Worktree
from ..prcache import PRCache, cache_key
from ..refresh import refresh
from ..registry import Repo
from .helpers import collect_worktrees, print_rows, refresh_cached_state, save_cache


def format_pr(worktree: Worktree, cache: PRCache) -> str:
    entry = cache.get(cache_key(worktree.repo_path, worktree.branch))
    if entry is None or not entry.fetched:
        return "?"
    if entry.state is None:
        return "-"
    text = f"#{entry.number} {entry.state.value.lower()}"
    if entry.is_draft:
        text += " (draft)"
    return text


def list_worktrees(
    repos: Iterable[Repo],
    *,
    config: Config,
    cache: PRCache,
    do_refresh: bool = False,
    refresher: Callable[..., list[str]] = refresh,
) -> list[Worktree]:
    """Print worktrees of `repos` with their PR status.

    "?" means the PR status was never fetched, "-" that the branch has no PR.

    Returns:
        The listed worktrees.
    """
    console = get_console()
    worktrees = collect_worktrees(repos, cache)
    if not worktrees:
        console.print("[yellow]No worktrees found[/yellow]")
        return []

    if do_refresh:
        failed = refresher(worktrees, cache, config)
        if failed:
            warn(f"failed to fetch PR status for {len(failed)} worktree(s): {', '.join(failed)}")
        refresh_cached_state(worktrees, cache)
        save_cache(cache)

    rows = [
        [
            wt.repo_name,
            wt.branch,
            "dirty" if wt.is_dirty else "clean",
            format_pr(wt, cache),
            wt.path,
        ]
        for wt in worktrees
    ]
    print_rows(["REPO", "BRANCH", "STATUS", "PR", "PATH"], rows, ["cyan", "bold", "", "", "dim"])

    merged = sum(1 for wt in worktrees if wt.pr_state is PRState.MERGED)
    summary = f"\n{len({wt.repo_path for wt in worktrees})} repo(s), {len(worktrees)} worktree(s)"
    if merged:
        summary += f", [magenta]{merged} merged[/magenta]"
    console.print(summary)
    return worktrees


def refresh_pr_cache(
    repos: Iterable[Repo],
    *,
    config: Config,
    cache: PRCache,
    reset: bool = False,
    refresher: Callable[..., list[str]] = refresh,
) -> list[str]:
    """Refresh and save PR status for every worktree of `repos`.

    Returns:
        Labels of worktrees whose lookup failed.
    """
    console = get_console()
    worktrees = collect_worktrees(repos, cache)
    if reset:
        cache.reset()
        console.print("Cache reset: PR info cleared")

    failed = refresher(worktrees, cache, config) if worktrees else []
    save_cache(cache)

    if failed:
        warn(f"failed to fetch PR status for {len(failed)} worktree(s): {', '.join(failed)}")
    console.print(
        f"[bold green]✓[/bold green] PR status refreshed for "
        f"{len(worktrees) - len(failed)} of {len(worktrees)} worktree(s)"
    )
    return failed
