"""Concurrent PR status refresh.

One asyncio task per worktree queries its forge; a semaphore keeps the
number of lookups in flight small because forge APIs rate-limit. Results
are written to the PR cache as each lookup finishes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from pathlib import Path

from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import Config, ForgeConfig
from .console import debug, get_err_console
from .constants import MAX_CONCURRENT_PR_FETCHES
from .exceptions import WtError
from .forge import Forge, detect as detect_forge
from .git_utils import get_upstream_branch
from .models import Worktree
from .prcache import PRCache, PRCacheEntry, cache_key

DetectFn = Callable[[str, dict[str, str], ForgeConfig], Forge]
UpstreamFn = Callable[[Path, str], str]


def select_candidates(worktrees: Iterable[Worktree], cache: PRCache) -> list[Worktree]:
    """Worktrees whose PR status needs fetching.

    Worktrees without an origin have nothing to query. A fetched MERGED
    entry is final and is never fetched again.
    """
    candidates = []
    for wt in worktrees:
        if not wt.origin_url:
            continue
        entry = cache.get(cache_key(wt.repo_path, wt.branch))
        if entry is not None and entry.is_merged:
            continue
        candidates.append(wt)
    return candidates


def _describe(fetched: int, failed: int) -> str:
    return f"Fetching PR status... ({fetched} fetched / {failed} failed)"


async def refresh_pr_status(
    worktrees: Iterable[Worktree],
    cache: PRCache,
    config: Config,
    *,
    max_concurrent: int | None = None,
    timeout: float | None = None,
    detect: DetectFn = detect_forge,
    upstream: UpstreamFn = get_upstream_branch,
    show_progress: bool = True,
) -> list[str]:
    """Fetch PR status for worktrees and store it in the cache.

    Args:
        worktrees: Worktrees to refresh
        cache: Cache receiving the results; entries are written whole
        config: Supplies host mappings, forge rules and the default bound
        max_concurrent: Maximum forge lookups in flight
        timeout: Seconds before unfinished lookups are cancelled
        detect: Picks the forge for an origin URL
        upstream: Resolves the remote branch a local branch tracks
        show_progress: Render a live "N fetched / M failed" line on stderr

    Returns:
        Labels ("repo:branch") of worktrees whose lookup failed or timed out.
        Callers report these as a warning; a partial refresh is not an error.
    """
    candidates = select_candidates(worktrees, cache)
    if not candidates:
        return []

    limit = max_concurrent or config.pr.max_concurrent_fetches or MAX_CONCURRENT_PR_FETCHES
    semaphore = asyncio.Semaphore(limit)
    cache_lock = asyncio.Lock()
    count_lock = asyncio.Lock()
    fetched = 0
    failed: list[str] = []

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        TextColumn("[dim]{task.completed}/{task.total}[/dim]"),
        console=get_err_console(),
        transient=True,
        disable=not show_progress,
    )

    with progress:
        bar = progress.add_task(_describe(0, 0), total=len(candidates))

        async def record(wt: Worktree, ok: bool) -> None:
            nonlocal fetched
            async with count_lock:
                if ok:
                    fetched += 1
                else:
                    failed.append(wt.label)
                progress.update(bar, advance=1, description=_describe(fetched, len(failed)))

        async def fetch_one(wt: Worktree) -> None:
            async with semaphore:
                try:
                    forge = detect(wt.origin_url, config.hosts, config.forge)
                    await forge.check()
                except WtError as e:
                    debug(f"{wt.label}: {e}")
                    await record(wt, False)
                    return

                try:
                    branch = await asyncio.to_thread(upstream, Path(wt.repo_path), wt.branch)
                    pr = await forge.get_pr_for_branch(wt.origin_url, branch or wt.branch)
                except Exception as e:
                    debug(f"{wt.label}: {e}")
                    await record(wt, False)
                    return

                async with cache_lock:
                    cache.set(cache_key(wt.repo_path, wt.branch), PRCacheEntry.from_pr(pr))
            await record(wt, True)

        tasks = {asyncio.create_task(fetch_one(wt)): wt for wt in candidates}
        pending: set[asyncio.Task[None]] = set(tasks)
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task, wt in tasks.items():
            if not task.cancelled() and task.exception() is not None:
                debug(f"{wt.label}: {task.exception()}")
                if wt.label not in failed:
                    failed.append(wt.label)

        for task in pending:
            wt = tasks[task]
            if wt.label not in failed:
                debug(f"{wt.label}: timed out after {timeout}s")
                failed.append(wt.label)

    return failed


def refresh(
    worktrees: Iterable[Worktree],
    cache: PRCache,
    config: Config,
    **kwargs,
) -> list[str]:
    """Synchronous entry point for refresh_pr_status."""
    kwargs.setdefault("timeout", config.pr.refresh_timeout)
    return asyncio.run(refresh_pr_status(worktrees, cache, config, **kwargs))
