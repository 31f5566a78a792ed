"""Typer-based CLI interface for wt-manager."""

from pathlib import Path
from typing import NoReturn

import typer
from rich.markup import escape

from . import __version__
from .config import load_config
from .console import get_console, set_level, warn
from .exceptions import AmbiguousTargetError, WtError
from .history import History
from .operations.checkout import CheckoutOptions, checkout as run_checkout
from .operations.helpers import resolve_repos
from .operations.listing import list_worktrees, refresh_pr_cache
from .operations.prune import PruneOptions, prune_auto, prune_targets, render_result
from .operations.repos import (
    add_label,
    add_repo,
    list_repos,
    prune_repos,
    remove_label,
    remove_repo,
)
from .prcache import PRCache
from .registry import Registry
from .scope import resolve_worktree_targets

app = typer.Typer(
    name="wt",
    help="Multi-repository git worktree manager with PR-aware pruning",
    no_args_is_help=True,
    add_completion=True,
)
console = get_console()


def fail(e: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
    raise typer.Exit(code=1)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"wt-manager version {__version__}")
        raise typer.Exit()


def complete_repo_names() -> list[str]:
    """Autocomplete function for registered repository names."""
    return sorted(repo.name for repo in Registry.load().repos)


def complete_labels() -> list[str]:
    """Autocomplete function for labels."""
    return Registry.load().all_labels()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug output"),
) -> None:
    """Multi-repository git worktree manager."""
    if verbose:
        set_level("debug")


@app.command(name="list")
def list_cmd(
    all_repos: bool = typer.Option(False, "--global", "-g", help="List all registered repos"),
    repository: list[str] | None = typer.Option(
        None, "--repository", "-r", help="Repo(s) by name", autocompletion=complete_repo_names
    ),
    label: list[str] | None = typer.Option(
        None, "--label", "-l", help="Repos by label", autocompletion=complete_labels
    ),
    refresh: bool = typer.Option(False, "--refresh", "-R", help="Fetch PR status first"),
) -> None:
    """
    List worktrees with their cached PR status.

    Without flags, lists the current repository (registering it on first
    use). Outside a repository, lists every registered repository.
    """
    try:
        config = load_config()
        registry = Registry.load()
        repos = resolve_repos(
            registry, config, all_repos=all_repos, names=repository or [], labels=label or []
        )
        list_worktrees(repos, config=config, cache=PRCache.load(), do_refresh=refresh)
    except WtError as e:
        fail(e)


@app.command()
def prune(
    targets: list[str] | None = typer.Argument(
        None, help="Specific worktrees to remove, as [scope:]branch (requires -f)"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Force removal"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Preview without removing"),
    interactive: bool = typer.Option(
        False, "--interactive", "-i", help="Choose worktrees to remove"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show skipped worktrees"),
    all_repos: bool = typer.Option(False, "--global", "-g", help="Prune all registered repos"),
    repository: list[str] | None = typer.Option(
        None, "--repository", "-r", help="Repo(s) by name", autocompletion=complete_repo_names
    ),
    label: list[str] | None = typer.Option(
        None, "--label", "-l", help="Repos by label", autocompletion=complete_labels
    ),
    refresh: bool = typer.Option(False, "--refresh", "-R", help="Fetch PR status first"),
    reset_cache: bool = typer.Option(False, "--reset-cache", help="Clear cached PR status"),
    delete_branches: bool | None = typer.Option(
        None,
        "--delete-branches/--keep-branches",
        help="Delete local branches of removed worktrees (default: from config)",
    ),
    hook: list[str] | None = typer.Option(None, "--hook", help="Run named hook(s)"),
    no_hook: bool = typer.Option(False, "--no-hook", help="Skip post-removal hooks"),
    arg: list[str] | None = typer.Option(
        None, "--arg", "-a", help="Hook variable as KEY=VALUE"
    ),
) -> None:
    """
    Remove worktrees whose PR has been merged.

    Without targets, removes every worktree with a merged PR and no local
    changes. With targets, removes exactly those worktrees (requires -f).

    Example:
        wt prune                      # merged worktrees in this repo
        wt prune -g -d                # preview across all repos
        wt prune backend:feature -f   # 'feature' in every repo labelled backend
    """
    if hook and no_hook:
        fail(WtError("--hook and --no-hook cannot be used together"))
    if force and not targets and not interactive:
        fail(WtError("-f/--force requires targets or -i/--interactive"))

    options = PruneOptions(
        force=force,
        dry_run=dry_run,
        interactive=interactive,
        refresh=refresh,
        reset_cache=reset_cache,
        delete_branches=delete_branches,
        hook_names=hook or [],
        no_hook=no_hook,
        hook_args=arg or [],
    )

    try:
        config = load_config()
        registry = Registry.load()
        cache = PRCache.load()
        history = History.load()

        if targets:
            result = prune_targets(
                registry, targets, options, config=config, cache=cache, history=history
            )
        else:
            repos = resolve_repos(
                registry, config, all_repos=all_repos, names=repository or [], labels=label or []
            )
            if not repos:
                console.print("No repos found")
                return
            result = prune_auto(repos, options, config=config, cache=cache, history=history)
            if result.cancelled:
                console.print("[yellow]Prune cancelled[/yellow]")
                return
        render_result(result, verbose=verbose)
    except WtError as e:
        fail(e)


@app.command()
def checkout(
    target: str = typer.Argument(..., help="Branch as [scope:]branch"),
    new_branch: bool = typer.Option(False, "--new-branch", "-b", help="Create the branch"),
    base: str | None = typer.Option(None, "--base", help="Start point for -b (default: HEAD)"),
    hook: list[str] | None = typer.Option(None, "--hook", help="Run named hook(s)"),
    no_hook: bool = typer.Option(False, "--no-hook", help="Skip checkout hooks"),
    arg: list[str] | None = typer.Option(
        None, "--arg", "-a", help="Hook variable as KEY=VALUE"
    ),
) -> None:
    """
    Create a worktree for a branch next to its repository.

    Without a scope the current repository is used. A label scope creates the
    worktree in every labelled repository. An existing worktree for the
    branch is reused.

    Example:
        wt checkout feature             # existing branch in this repo
        wt checkout -b fix/login        # new branch from HEAD
        wt checkout backend:feature     # every repo labelled backend
    """
    if hook and no_hook:
        fail(WtError("--hook and --no-hook cannot be used together"))

    options = CheckoutOptions(
        new_branch=new_branch,
        base=base,
        hook_names=hook or [],
        no_hook=no_hook,
        hook_args=arg or [],
    )
    try:
        run_checkout(
            Registry.load(), target, options, config=load_config(), history=History.load()
        )
    except WtError as e:
        fail(e)


pr_app = typer.Typer(
    name="pr",
    help="Pull request status",
    no_args_is_help=True,
)
app.add_typer(pr_app, name="pr")


@pr_app.command(name="refresh")
def pr_refresh(
    all_repos: bool = typer.Option(False, "--global", "-g", help="Refresh all registered repos"),
    repository: list[str] | None = typer.Option(
        None, "--repository", "-r", help="Repo(s) by name", autocompletion=complete_repo_names
    ),
    label: list[str] | None = typer.Option(
        None, "--label", "-l", help="Repos by label", autocompletion=complete_labels
    ),
    reset: bool = typer.Option(False, "--reset", help="Clear cached PR status first"),
) -> None:
    """Fetch PR status for worktrees and update the cache."""
    try:
        config = load_config()
        registry = Registry.load()
        repos = resolve_repos(
            registry, config, all_repos=all_repos, names=repository or [], labels=label or []
        )
        refresh_pr_cache(repos, config=config, cache=PRCache.load(), reset=reset)
    except WtError as e:
        fail(e)


@app.command()
def path(
    target: str | None = typer.Argument(
        None, help="Worktree as [scope:]branch (default: most recently visited)"
    ),
) -> None:
    """
    Print the path to a worktree's directory.

    Outputs only the path, for use in shell functions such as
    cd "$(wt path feature)". The worktree is recorded as most recently visited.
    """
    try:
        history = History.load()
        if target is None:
            recent = history.most_recent()
            if recent is None:
                raise WtError("no worktree visited yet")
            print(recent.path)
            return

        found = resolve_worktree_targets(Registry.load(), [target])
        if len(found) > 1:
            choices = "\n".join(f"  {t.repo_name}:{t.branch} -> {t.path}" for t in found)
            raise AmbiguousTargetError(
                f"'{target}' matches worktrees in several repositories:\n{choices}\n"
                "Use a repo name as scope to pick one."
            )
        wt = found[0]
        history.record_access(wt.path, repo=wt.repo_name, branch=wt.branch)
        try:
            history.save()
        except OSError as e:
            warn(f"failed to save history: {e}")
        print(wt.path)
    except WtError as e:
        fail(e)


repo_app = typer.Typer(
    name="repo",
    help="Manage registered repositories",
    no_args_is_help=True,
)
app.add_typer(repo_app, name="repo")


@repo_app.command(name="add")
def repo_add(
    repo_path: Path = typer.Argument(Path("."), help="Path inside the repository"),
    name: str | None = typer.Option(None, "--name", "-n", help="Name (default: directory name)"),
    label: list[str] | None = typer.Option(None, "--label", "-l", help="Label(s) to attach"),
) -> None:
    """Register a git repository."""
    try:
        add_repo(Registry.load(), repo_path, name=name, labels=label or [])
    except WtError as e:
        fail(e)


@repo_app.command(name="remove")
def repo_remove(
    name: str = typer.Argument(
        ..., help="Repository name or path", autocompletion=complete_repo_names
    ),
) -> None:
    """Unregister a repository (its worktrees are kept)."""
    try:
        remove_repo(Registry.load(), name)
    except WtError as e:
        fail(e)


@repo_app.command(name="list")
def repo_list() -> None:
    """List registered repositories and their labels."""
    list_repos(Registry.load())


@repo_app.command(name="prune")
def repo_prune() -> None:
    """Remove registry entries whose directory no longer exists."""
    prune_repos(Registry.load())


label_app = typer.Typer(
    name="label",
    help="Manage repository labels",
    no_args_is_help=True,
)
app.add_typer(label_app, name="label")


@label_app.command(name="add")
def label_add(
    repo: str = typer.Argument(..., help="Repository name", autocompletion=complete_repo_names),
    label: str = typer.Argument(..., help="Label to attach"),
) -> None:
    """Attach a label to a repository."""
    try:
        add_label(Registry.load(), repo, label)
    except WtError as e:
        fail(e)


@label_app.command(name="remove")
def label_remove(
    repo: str = typer.Argument(..., help="Repository name", autocompletion=complete_repo_names),
    label: str = typer.Argument(..., help="Label to detach", autocompletion=complete_labels),
) -> None:
    """Detach a label from a repository."""
    try:
        remove_label(Registry.load(), repo, label)
    except WtError as e:
        fail(e)


if __name__ == "__main__":
    app()
