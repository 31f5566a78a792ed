"""Exception hierarchy for wt-manager."""


class WtError(Exception):
    """Base exception for all wt-manager errors."""


class GitError(WtError):
    """A git command failed."""


class ConfigError(WtError):
    """Configuration file is unreadable or holds invalid values."""


class ResolutionError(WtError):
    """A target could not be resolved to repositories or worktrees."""


class ScopeNotFoundError(ResolutionError):
    """A scope token matched neither a repository name nor a label."""


class RepoNotFoundError(ResolutionError):
    """Repository is not registered."""


class WorktreeNotFoundError(ResolutionError):
    """No worktree matched the requested branch."""


class AmbiguousTargetError(ResolutionError):
    """A bare target matched worktrees in more than one repository."""


class ForgeError(WtError):
    """Forge CLI is missing, unauthenticated, or returned bad data."""


class HookError(WtError):
    """Hook selection or execution failed."""


class PruneError(WtError):
    """Every explicitly requested removal failed."""
