"""Prune worktrees whose pull request has been merged.

Auto-prune looks at every worktree in the selected repositories and removes
the ones whose cached PR state is MERGED and whose working tree is clean.
Targeted prune removes explicitly named `[scope:]branch` worktrees and
requires --force instead of a PR check.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config import Config
from ..console import get_console, info, warn
from ..constants import HOOK_TRIGGER_PRUNE
from ..exceptions import GitError, PruneError, WtError
from ..git_utils import delete_local_branch, prune_worktrees, remove_worktree
from ..history import History
from ..hooks import HookContext, HookMatch, parse_env, run_for_each, select_hooks
from ..models import PRState, Worktree
from ..prcache import PRCache, cache_key
from ..refresh import refresh
from ..registry import Registry, Repo
from ..scope import resolve_worktree_targets
from .helpers import collect_worktrees, print_rows, refresh_cached_state, save_cache


@dataclass(frozen=True)
class Classification:
    prunable: bool
    reason: str


@dataclass
class RemovalItem:
    worktree: Worktree
    # True only when the forge reported the PR as merged
    confirmed_merged: bool = False
    reason: str = ""


@dataclass
class SkippedItem:
    worktree: Worktree
    reason: str


@dataclass
class PruneOptions:
    force: bool = False
    dry_run: bool = False
    interactive: bool = False
    refresh: bool = False
    reset_cache: bool = False
    delete_branches: bool | None = None
    hook_names: list[str] = field(default_factory=list)
    no_hook: bool = False
    hook_args: list[str] = field(default_factory=list)


@dataclass
class PruneResult:
    removed: list[RemovalItem] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)
    failed: list[tuple[RemovalItem, str]] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False

    def summary(self) -> str:
        verb = "Would remove" if self.dry_run else "Removed"
        text = f"{verb} {len(self.removed)} worktree(s), skipped {len(self.skipped)}"
        if self.failed:
            text += f", failed {len(self.failed)}"
        return text


Selector = Callable[[Sequence[Worktree], Sequence[Classification]], set[str] | None]


def classify(worktree: Worktree) -> Classification:
    """Decide from cached data alone whether a worktree can be auto-pruned.

    Prunable exactly when the PR is MERGED and the working tree is clean.
    """
    if worktree.is_dirty:
        return Classification(False, "Dirty")
    if worktree.pr_state is None:
        return Classification(False, "No PR")
    if worktree.pr_state is PRState.MERGED:
        return Classification(True, "Merged")
    reason = worktree.pr_state.value.capitalize()
    if worktree.pr_draft and worktree.pr_state is PRState.OPEN:
        reason = "Draft"
    return Classification(False, reason)


def split_prunable(
    worktrees: Iterable[Worktree],
) -> tuple[list[RemovalItem], list[SkippedItem]]:
    """Apply the classification rule to every worktree."""
    to_remove: list[RemovalItem] = []
    to_skip: list[SkippedItem] = []
    for wt in worktrees:
        result = classify(wt)
        if result.prunable:
            to_remove.append(RemovalItem(wt, confirmed_merged=True, reason=result.reason))
        else:
            to_skip.append(SkippedItem(wt, result.reason))
    return to_remove, to_skip


def apply_selection(
    worktrees: Iterable[Worktree], selected_paths: Iterable[str]
) -> tuple[list[RemovalItem], list[SkippedItem]]:
    """Split worktrees by an explicit user selection.

    The selection replaces the rule-based split. Branch deletion is forced
    only for selected worktrees whose PR is known to be merged.
    """
    selected = set(selected_paths)
    to_remove: list[RemovalItem] = []
    to_skip: list[SkippedItem] = []
    for wt in worktrees:
        if wt.path in selected:
            to_remove.append(
                RemovalItem(
                    wt,
                    confirmed_merged=wt.pr_state is PRState.MERGED,
                    reason=classify(wt).reason,
                )
            )
        else:
            to_skip.append(SkippedItem(wt, "Not selected"))
    return to_remove, to_skip


def prompt_selection(
    worktrees: Sequence[Worktree], classifications: Sequence[Classification]
) -> set[str] | None:
    """Ask which worktrees to remove.

    Returns:
        Selected worktree paths, or None if the user quit.
    """
    console = get_console()
    console.print("\n[bold cyan]Worktrees:[/bold cyan]\n")
    for i, (wt, result) in enumerate(zip(worktrees, classifications), start=1):
        mark = "[green]x[/green]" if result.prunable else " "
        console.print(f"  {i:>3}. [{mark}] {wt.label:<40} [dim]{result.reason}[/dim]")

    console.print()
    console.print(
        "Enter numbers to remove (space-separated), 'all', 'none', 'q' to quit,\n"
        "or press Enter to accept the marked worktrees:"
    )
    answer = console.input("> ").strip().lower()

    if answer == "q":
        return None
    if answer == "":
        return {wt.path for wt, result in zip(worktrees, classifications) if result.prunable}
    if answer == "all":
        return {wt.path for wt in worktrees}
    if answer == "none":
        return set()

    selected: set[str] = set()
    for token in answer.split():
        if token.isdigit() and 1 <= int(token) <= len(worktrees):
            selected.add(worktrees[int(token) - 1].path)
        else:
            warn(f"ignoring invalid selection: {token}")
    return selected


def _hook_context(
    wt: Worktree, hook_env: dict[str, str] | None, dry_run: bool = False
) -> HookContext:
    return HookContext(
        path=wt.path,
        branch=wt.branch,
        repo=wt.repo_name,
        folder=Path(wt.repo_path).name,
        main_repo=wt.repo_path,
        trigger=HOOK_TRIGGER_PRUNE,
        env=dict(hook_env or {}),
        dry_run=dry_run,
    )


def execute_removals(
    items: Sequence[RemovalItem],
    *,
    force: bool,
    dry_run: bool = False,
    cache: PRCache | None = None,
    history: History | None = None,
    hook_matches: Sequence[HookMatch] = (),
    hook_env: dict[str, str] | None = None,
    delete_branches: bool = False,
) -> tuple[list[RemovalItem], list[tuple[RemovalItem, str]]]:
    """Remove worktrees one at a time.

    For each worktree: remove it, drop its cache entry and history entries,
    optionally delete its branch, then fire hooks. A failed removal is
    recorded and the batch continues. Stale worktree metadata is pruned
    once per repository at the end.

    Args:
        items: Worktrees to remove
        force: Pass --force to `git worktree remove`
        dry_run: Report what would be removed, and the hook commands that
            would run, without touching anything
        cache: PR cache to drop entries from
        history: History to drop entries from; saved if it changed
        hook_matches: Hooks to fire after each removal
        hook_env: Extra hook placeholder values
        delete_branches: Delete the local branch after removal. Uses
            `git branch -D` only for items with confirmed_merged.

    Returns:
        (removed, failed) where failed pairs each item with its error.
    """
    if dry_run:
        if hook_matches:
            for item in items:
                context = _hook_context(item.worktree, hook_env, dry_run=True)
                run_for_each(hook_matches, context, item.worktree.repo_path)
        return list(items), []

    console = get_console()
    removed: list[RemovalItem] = []
    failed: list[tuple[RemovalItem, str]] = []
    history_changed = False

    for item in items:
        wt = item.worktree
        repo_path = Path(wt.repo_path)
        try:
            remove_worktree(repo_path, Path(wt.path), force=force)
        except GitError as e:
            warn(f"failed to remove {wt.path}: {e}")
            failed.append((item, str(e)))
            continue

        removed.append(item)
        console.print(f"[bold green]✓[/bold green] Removed {wt.label} [dim]({wt.path})[/dim]")

        if cache is not None:
            cache.delete(cache_key(wt.repo_path, wt.branch))
        if history is not None and history.remove_by_path(wt.path):
            history_changed = True

        if delete_branches:
            try:
                delete_local_branch(repo_path, wt.branch, force=item.confirmed_merged)
            except GitError as e:
                warn(f"could not delete branch {wt.branch} in {wt.repo_name}: {e}")

        if hook_matches:
            run_for_each(hook_matches, _hook_context(wt, hook_env), wt.repo_path)

    for repo in dict.fromkeys(item.worktree.repo_path for item in removed):
        try:
            prune_worktrees(Path(repo))
        except GitError as e:
            warn(f"git worktree prune failed in {repo}: {e}")

    if history is not None and history_changed:
        try:
            history.save()
        except OSError as e:
            warn(f"failed to save history: {e}")

    return removed, failed


def _prepare_hooks(
    config: Config, options: PruneOptions
) -> tuple[list[HookMatch], dict[str, str]]:
    matches = select_hooks(config, options.hook_names, options.no_hook, HOOK_TRIGGER_PRUNE)
    env = parse_env(options.hook_args)
    return matches, env


def _delete_branches(config: Config, options: PruneOptions) -> bool:
    if options.delete_branches is None:
        return config.prune.delete_local_branches
    return options.delete_branches


def prune_auto(
    repos: Iterable[Repo],
    options: PruneOptions,
    *,
    config: Config,
    cache: PRCache,
    history: History | None = None,
    selector: Selector | None = None,
    refresher: Callable[..., list[str]] = refresh,
) -> PruneResult:
    """Remove every worktree with a merged PR and a clean tree.

    Args:
        repos: Repositories to scan
        options: Command options
        config: Loaded configuration
        cache: PR cache, saved at the end if it changed
        history: Visit history to clean up
        selector: Interactive chooser used with options.interactive
        refresher: Runs the PR refresh for options.refresh

    Raises:
        HookError: If a requested hook does not exist or -a is malformed
    """
    hook_matches, hook_env = _prepare_hooks(config, options)
    result = PruneResult(dry_run=options.dry_run)

    worktrees = collect_worktrees(repos, cache)
    if options.reset_cache:
        cache.reset()
        info("Cache reset: PR info cleared")

    if not worktrees:
        save_cache(cache)
        return result

    if options.refresh:
        failed = refresher(worktrees, cache, config)
        if failed:
            warn(f"failed to fetch PR status for {len(failed)} worktree(s): {', '.join(failed)}")

    refresh_cached_state(worktrees, cache)
    to_remove, result.skipped = split_prunable(worktrees)

    # Rule-selected worktrees are merged and clean
    force = True
    if options.interactive:
        chooser = selector or prompt_selection
        selected = chooser(worktrees, [classify(wt) for wt in worktrees])
        if selected is None:
            save_cache(cache)
            result.cancelled = True
            result.skipped = [SkippedItem(wt, "Cancelled") for wt in worktrees]
            return result
        to_remove, result.skipped = apply_selection(worktrees, selected)
        force = options.force

    result.removed, result.failed = execute_removals(
        to_remove,
        force=force,
        dry_run=options.dry_run,
        cache=cache,
        history=history,
        hook_matches=hook_matches,
        hook_env=hook_env,
        delete_branches=_delete_branches(config, options),
    )
    save_cache(cache)
    return result


def prune_targets(
    registry: Registry,
    targets: Iterable[str],
    options: PruneOptions,
    *,
    config: Config,
    cache: PRCache,
    history: History | None = None,
) -> PruneResult:
    """Remove explicitly named `[scope:]branch` worktrees.

    PR state is not consulted, so --force is required. A label scope removes
    the branch from every labelled repository that has it. Branches are
    deleted in safe mode only, since no merge was confirmed.

    Raises:
        WtError: If force is not set
        ResolutionError: If a target cannot be resolved
        PruneError: If every requested removal failed
    """
    if not options.force:
        raise WtError("removing specific worktrees requires -f/--force")

    hook_matches, hook_env = _prepare_hooks(config, options)
    resolved = resolve_worktree_targets(registry, targets)

    items = [
        RemovalItem(
            Worktree(
                repo_name=target.repo_name,
                repo_path=target.repo_path,
                branch=target.branch,
                path=target.path,
            ),
            confirmed_merged=False,
            reason="Requested",
        )
        for target in resolved
    ]

    result = PruneResult(dry_run=options.dry_run)
    result.removed, result.failed = execute_removals(
        items,
        force=True,
        dry_run=options.dry_run,
        cache=cache,
        history=history,
        hook_matches=hook_matches,
        hook_env=hook_env,
        delete_branches=_delete_branches(config, options),
    )
    save_cache(cache)

    if result.failed and not result.removed:
        paths = ", ".join(item.worktree.path for item, _ in result.failed)
        raise PruneError(f"failed to remove worktree(s): {paths}")
    return result


def render_result(result: PruneResult, verbose: bool = False) -> None:
    """Print removed (and with verbose, skipped) worktrees and the summary."""
    console = get_console()
    headers = ["REPO", "BRANCH", "REASON"]
    styles = ["cyan", "green", "dim"]

    if result.dry_run and result.removed:
        console.print("\nWould remove:")
        rows = [[i.worktree.repo_name, i.worktree.branch, i.reason] for i in result.removed]
        print_rows(headers, rows, styles)
    if verbose and result.skipped:
        console.print("\nSkipped:")
        rows = [[i.worktree.repo_name, i.worktree.branch, i.reason] for i in result.skipped]
        print_rows(headers, rows, styles)
    if result.failed:
        console.print("\n[bold red]Failed:[/bold red]")
        rows = [[i.worktree.repo_name, i.worktree.branch, error] for i, error in result.failed]
        print_rows(headers, rows, styles)

    console.print(f"\n{result.summary()}")
