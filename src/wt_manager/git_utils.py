"""Git operations wrapper utilities."""

import subprocess
from pathlib import Path
from typing import List, Optional

from .constants import GIT_TIMEOUT
from .exceptions import GitError
from .models import WorktreeInfo


def run_command(
    cmd: List[str],
    cwd: Optional[Path] = None,
    check: bool = True,
    capture: bool = False,
    timeout: Optional[float] = GIT_TIMEOUT,
) -> subprocess.CompletedProcess:
    """
    Run a shell command.

    Args:
        cmd: Command and arguments as a list
        cwd: Working directory for the command
        check: Raise exception on non-zero exit code
        capture: Capture stdout/stderr
        timeout: Seconds before the process is killed (None waits forever)

    Returns:
        CompletedProcess instance

    Raises:
        GitError: If command fails and check=True, or times out
    """
    kwargs = {}
    if capture:
        kwargs["stdout"] = subprocess.PIPE
        kwargs["stderr"] = subprocess.PIPE
        kwargs["text"] = True

    try:
        result = subprocess.run(cmd, cwd=cwd, check=False, timeout=timeout, **kwargs)
        if check and result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip() if capture else ""
            raise GitError(f"Command failed: {' '.join(cmd)}\n{output}".rstrip())
        return result
    except FileNotFoundError as e:
        raise GitError(f"Command not found: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"Command timed out after {timeout}s: {' '.join(cmd)}") from e


def git_command(
    *args: str,
    repo: Optional[Path] = None,
    check: bool = True,
    capture: bool = False,
    timeout: Optional[float] = GIT_TIMEOUT,
) -> subprocess.CompletedProcess:
    """
    Run a git command.

    Args:
        *args: Git command arguments
        repo: Repository path
        check: Raise exception on non-zero exit code
        capture: Capture stdout/stderr
        timeout: Seconds before the git process is killed

    Returns:
        CompletedProcess instance

    Raises:
        GitError: If git command fails
    """
    cmd = ["git"] + list(args)
    return run_command(cmd, cwd=repo, check=check, capture=capture, timeout=timeout)


def get_main_repo_root(path: Optional[Path] = None) -> Path:
    """
    Get the main repository root, even when called from inside a worktree.

    Args:
        path: Optional path to start from (defaults to current directory)

    Returns:
        Path to the main working tree

    Raises:
        GitError: If not in a git repository
    """
    try:
        result = git_command(
            "rev-parse", "--path-format=absolute", "--git-common-dir", repo=path, capture=True
        )
    except GitError:
        raise GitError("Not in a git repository")
    common_dir = Path(result.stdout.strip())
    if common_dir.name == ".git":
        return common_dir.parent
    # Bare repository: the common dir is the repository itself
    return common_dir


def normalize_branch_name(branch: str) -> str:
    """Strip the refs/heads/ prefix from a branch ref."""
    return branch[11:] if branch.startswith("refs/heads/") else branch


def parse_worktrees(repo: Path) -> List[WorktreeInfo]:
    """
    Parse git worktree list output.

    Args:
        repo: Repository path

    Returns:
        List of WorktreeInfo, main worktree first. Detached worktrees
        carry the branch "(detached)".
    """
    result = git_command("worktree", "list", "--porcelain", repo=repo, capture=True)
    lines = result.stdout.strip().splitlines()

    items: List[WorktreeInfo] = []
    cur_path: Optional[str] = None
    cur_branch: Optional[str] = None
    cur_head = ""

    def flush() -> None:
        items.append(
            WorktreeInfo(
                path=cur_path or "",
                branch=normalize_branch_name(cur_branch) if cur_branch else "(detached)",
                head=cur_head,
                is_main=not items,
            )
        )

    for line in lines:
        if line.startswith("worktree "):
            cur_path = line.split(" ", 1)[1]
        elif line.startswith("HEAD "):
            cur_head = line.split(" ", 1)[1]
        elif line.startswith("branch "):
            cur_branch = line.split(" ", 1)[1]
        elif line.strip() == "" and cur_path:
            flush()
            cur_path, cur_branch, cur_head = None, None, ""

    if cur_path:
        flush()

    return items


def list_worktrees_from_repo(repo_path: Path) -> List[WorktreeInfo]:
    """
    List the secondary worktrees of a repository.

    The main worktree and detached worktrees are left out; neither can be
    addressed by branch.

    Args:
        repo_path: Main repository path

    Returns:
        List of WorktreeInfo for branch-bound secondary worktrees

    Raises:
        GitError: If the repository cannot be read
    """
    return [
        wt for wt in parse_worktrees(repo_path)
        if not wt.is_main and wt.branch != "(detached)"
    ]


def is_dirty(path: Path) -> bool:
    """
    Check whether a worktree has uncommitted changes or untracked files.

    Args:
        path: Worktree path

    Returns:
        True if `git status --porcelain` reports anything. An unreadable
        worktree counts as dirty so it is never removed automatically.
    """
    try:
        result = git_command("status", "--porcelain", repo=path, capture=True)
    except GitError:
        return True
    return result.stdout.strip() != ""


def get_upstream_branch(repo_path: Path, branch: str) -> str:
    """
    Get the upstream (remote) branch name a local branch tracks.

    Args:
        repo_path: Repository path
        branch: Local branch name

    Returns:
        Upstream branch name without refs/heads/, or "" if none is set
    """
    result = git_command(
        "config", "--get", f"branch.{branch}.merge",
        repo=repo_path, check=False, capture=True,
    )
    if result.returncode != 0:
        return ""
    return normalize_branch_name(result.stdout.strip())


def get_origin_url(repo_path: Path) -> str:
    """
    Get the origin remote URL.

    Args:
        repo_path: Repository path

    Returns:
        Origin URL, or "" if the repository has no origin
    """
    result = git_command(
        "remote", "get-url", "origin", repo=repo_path, check=False, capture=True
    )
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def branch_exists(repo_path: Path, ref: str) -> bool:
    """
    Check if a ref (e.g. refs/heads/x or refs/remotes/origin/x) exists.

    Args:
        repo_path: Repository path
        ref: Fully qualified ref name

    Returns:
        True if the ref resolves to a commit
    """
    result = git_command(
        "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}",
        repo=repo_path, check=False, capture=True,
    )
    return result.returncode == 0


def add_worktree(
    repo_path: Path,
    worktree_path: Path,
    branch: str,
    create: bool = False,
    base: Optional[str] = None,
) -> None:
    """
    Add a worktree for a branch.

    An existing local branch is checked out as-is. A branch that only exists
    on origin gets a local branch tracking it.

    Args:
        repo_path: Main repository path
        worktree_path: Directory for the new worktree
        branch: Branch to check out
        create: Create the branch with -b
        base: Start point for a created branch (default: HEAD)

    Raises:
        GitError: If git refuses to add the worktree
    """
    if create:
        args = ["worktree", "add", "-b", branch, str(worktree_path)]
        if base:
            args.append(base)
    elif branch_exists(repo_path, f"refs/heads/{branch}"):
        args = ["worktree", "add", str(worktree_path), branch]
    else:
        args = ["worktree", "add", "--track", "-b", branch, str(worktree_path), f"origin/{branch}"]
    git_command(*args, repo=repo_path, capture=True)


def remove_worktree(repo_path: Path, worktree_path: Path, force: bool = False) -> None:
    """
    Remove a worktree.

    Args:
        repo_path: Main repository path
        worktree_path: Worktree to remove
        force: Pass --force (removes worktrees with local changes)

    Raises:
        GitError: If git refuses to remove the worktree
    """
    args = ["worktree", "remove", str(worktree_path)]
    if force:
        args.append("--force")
    git_command(*args, repo=repo_path, capture=True)


def delete_local_branch(repo_path: Path, branch: str, force: bool = False) -> None:
    """
    Delete a local branch.

    Args:
        repo_path: Repository path
        branch: Branch name
        force: Use -D instead of -d (deletes branches git considers unmerged)

    Raises:
        GitError: If the branch cannot be deleted
    """
    flag = "-D" if force else "-d"
    git_command("branch", flag, branch, repo=repo_path, capture=True)


def prune_worktrees(repo_path: Path) -> None:
    """
    Prune stale worktree administrative data.

    Args:
        repo_path: Repository path

    Raises:
        GitError: If git worktree prune fails
    """
    git_command("worktree", "prune", repo=repo_path, capture=True)


def has_command(name: str) -> bool:
    """
    Check if a command is available in PATH.

    Args:
        name: Command name

    Returns:
        True if command exists, False otherwise
    """
    from shutil import which
    return bool(which(name))
