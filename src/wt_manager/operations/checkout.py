"""Create worktrees for `[scope:]branch` targets.

Without a scope the branch is checked out in the current repository. A repo
name scope picks that repository; a label scope checks the branch out in
every labelled repository.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape

from ..config import Config
from ..console import get_console, warn
from ..constants import HOOK_TRIGGER_CHECKOUT
from ..exceptions import GitError, ResolutionError, WtError
from ..git_utils import add_worktree, branch_exists, list_worktrees_from_repo
from ..history import History
from ..hooks import HookContext, parse_env, run_for_each, select_hooks
from ..registry import Registry, Repo
from ..scope import (
    WorktreeTarget,
    find_or_register_current_repo,
    parse_target,
    resolve_scoped_target,
)


@dataclass
class CheckoutOptions:
    new_branch: bool = False
    base: str | None = None
    hook_names: list[str] = field(default_factory=list)
    no_hook: bool = False
    hook_args: list[str] = field(default_factory=list)


@dataclass
class CheckoutResult:
    created: list[WorktreeTarget] = field(default_factory=list)
    existing: list[WorktreeTarget] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def worktrees(self) -> list[WorktreeTarget]:
        return self.created + self.existing


def default_worktree_path(repo_path: Path, branch: str) -> Path:
    """Sibling directory "<repo>-<branch>", with "/" in the branch replaced by "-"."""
    return repo_path.parent / f"{repo_path.name}-{branch.replace('/', '-')}"


def _existing_worktree(repo: Repo, branch: str) -> WorktreeTarget | None:
    for wt in list_worktrees_from_repo(Path(repo.path)):
        if wt.branch == branch:
            return WorktreeTarget(
                repo_name=repo.name, repo_path=repo.path, branch=branch, path=wt.path
            )
    return None


def checkout_in_repo(
    repo: Repo, branch: str, options: CheckoutOptions
) -> tuple[WorktreeTarget, bool]:
    """Return the worktree for `branch` in `repo`, creating it if needed.

    Returns:
        (worktree, created)

    Raises:
        ResolutionError: If the branch is missing (without -b) or already exists (with -b)
        GitError: If git fails to add the worktree
    """
    repo_path = Path(repo.path)
    if not repo_path.exists():
        raise ResolutionError(f"repository path does not exist: {repo.path}")

    found = _existing_worktree(repo, branch)
    if found is not None:
        return found, False

    local = branch_exists(repo_path, f"refs/heads/{branch}")
    if options.new_branch and local:
        raise ResolutionError(f"branch already exists in {repo.name}: {branch}")
    if not options.new_branch and not local and not branch_exists(
        repo_path, f"refs/remotes/origin/{branch}"
    ):
        raise ResolutionError(
            f"branch not found in {repo.name}: {branch} (use -b to create it)"
        )

    path = default_worktree_path(repo_path, branch)
    add_worktree(repo_path, path, branch, create=options.new_branch, base=options.base)
    target = WorktreeTarget(
        repo_name=repo.name, repo_path=repo.path, branch=branch, path=str(path)
    )
    return target, True


def checkout(
    registry: Registry,
    target: str,
    options: CheckoutOptions,
    *,
    config: Config,
    history: History | None = None,
    cwd: Path | None = None,
) -> CheckoutResult:
    """Check out `[scope:]branch` as a worktree.

    Existing worktrees for the branch are reused. New worktrees fire the
    hooks configured for the checkout trigger. Every resulting worktree is
    recorded in the visit history.

    Raises:
        ScopeNotFoundError: If the scope matches nothing
        HookError: If a named hook is not configured
        WtError: If no worktree could be created or found
    """
    if options.base and not options.new_branch:
        raise WtError("--base requires -b/--new-branch")

    hook_matches = select_hooks(
        config, options.hook_names, options.no_hook, HOOK_TRIGGER_CHECKOUT
    )
    hook_env = parse_env(options.hook_args)

    scope, branch = parse_target(target)
    if scope is None:
        repos: tuple[Repo, ...] = (find_or_register_current_repo(registry, config, cwd),)
    else:
        parsed = resolve_scoped_target(registry, target)
        repos, branch = parsed.repos, parsed.identifier
    if not branch:
        raise ResolutionError("branch name required")

    console = get_console()
    result = CheckoutResult()
    for repo in repos:
        try:
            found, created = checkout_in_repo(repo, branch, options)
        except (GitError, ResolutionError) as e:
            if len(repos) == 1:
                raise
            warn(f"{repo.name}: {e}")
            result.failed.append((repo.name, str(e)))
            continue

        if not created:
            console.print(
                f"Worktree already exists: {escape(found.repo_name)}:{escape(branch)} "
                f"[dim]({escape(found.path)})[/dim]"
            )
            result.existing.append(found)
            continue

        console.print(
            f"[bold green]✓[/bold green] Created {escape(found.repo_name)}:{escape(branch)} "
            f"[dim]({escape(found.path)})[/dim]"
        )
        result.created.append(found)
        if hook_matches:
            context = HookContext(
                path=found.path,
                branch=branch,
                repo=found.repo_name,
                folder=Path(found.repo_path).name,
                main_repo=found.repo_path,
                trigger=HOOK_TRIGGER_CHECKOUT,
                env=dict(hook_env),
            )
            run_for_each(hook_matches, context, found.path)

    if not result.worktrees:
        names = ", ".join(name for name, _ in result.failed)
        raise WtError(f"failed to check out {branch} in: {names}")

    if history is not None:
        for found in result.worktrees:
            history.record_access(found.path, repo=found.repo_name, branch=found.branch)
        try:
            history.save()
        except OSError as e:
            warn(f"failed to save history: {e}")
    return result
