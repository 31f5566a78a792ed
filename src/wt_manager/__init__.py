"""wt-manager: multi-repository git worktree manager with PR-aware pruning."""

__version__ = "0.4.0"
