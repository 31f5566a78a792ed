"""Repository registry management: repos and labels."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from ..console import get_console
from ..git_utils import get_main_repo_root
from ..registry import Registry, Repo
from .helpers import print_rows


def add_repo(
    registry: Registry, path: Path, name: str | None = None, labels: Iterable[str] = ()
) -> Repo:
    """Register the git repository at `path`.

    Raises:
        GitError: If `path` is not inside a git repository
        WtError: If the repository or name is already registered
    """
    repo_path = get_main_repo_root(path.expanduser().resolve())
    repo = registry.add(
        Repo(name=name or repo_path.name, path=str(repo_path), labels=sorted(set(labels)))
    )
    registry.save()
    get_console().print(f"[bold green]✓[/bold green] Registered {repo.name} [dim]({repo.path})[/dim]")
    return repo


def remove_repo(registry: Registry, name_or_path: str) -> Repo:
    """Unregister a repository. Its worktrees are left untouched."""
    repo = registry.remove(name_or_path)
    registry.save()
    get_console().print(f"[bold green]✓[/bold green] Unregistered {repo.name}")
    return repo


def list_repos(registry: Registry) -> None:
    console = get_console()
    if not registry.repos:
        console.print(
            "\n[yellow]No repositories registered.[/yellow]\n"
            "Use [cyan]wt repo add PATH[/cyan] to register one,\n"
            "or run [cyan]wt list[/cyan] inside a repository to auto-register it.\n"
        )
        return

    rows = []
    for repo in sorted(registry.repos, key=lambda r: r.name):
        missing = "" if Path(repo.path).exists() else " (missing)"
        rows.append([repo.name, ", ".join(sorted(repo.labels)) or "-", repo.path + missing])
    print_rows(["NAME", "LABELS", "PATH"], rows, ["cyan", "green", "dim"])


def prune_repos(registry: Registry) -> list[Repo]:
    """Drop registry entries whose directory no longer exists."""
    console = get_console()
    removed = registry.prune_missing()
    if not removed:
        console.print("[bold green]*[/bold green] Registry is clean, nothing to prune.")
        return []

    registry.save()
    console.print(f"[bold green]*[/bold green] Removed {len(removed)} stale entry(s):")
    for repo in removed:
        console.print(f"  [red]-[/red] {repo.name} [dim]({repo.path})[/dim]")
    return removed


def add_label(registry: Registry, name: str, label: str) -> None:
    console = get_console()
    if registry.add_label(name, label):
        registry.save()
        console.print(f"[bold green]✓[/bold green] Added label '{label}' to {name}")
    else:
        console.print(f"[dim]{name} already has label '{label}'[/dim]")


def remove_label(registry: Registry, name: str, label: str) -> None:
    console = get_console()
    if registry.remove_label(name, label):
        registry.save()
        console.print(f"[bold green]✓[/bold green] Removed label '{label}' from {name}")
    else:
        console.print(f"[dim]{name} has no label '{label}'[/dim]")
