from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class PRState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value: str | None) -> PRState | None:
        """Normalize a forge state string; empty means "no PR"."""
        if not value:
            return None
        normalized = value.strip().upper()
        # GitLab spells these differently
        normalized = {"OPENED": "OPEN", "LOCKED": "CLOSED"}.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass
class PRInfo:
    """Pull request data as reported by a forge.

    `fetched` is True whenever the forge was queried, so a fetched PRInfo
    with `state=None` records "no PR for this branch".
    """

    number: int = 0
    state: PRState | None = None
    is_draft: bool = False
    url: str = ""
    author: str = ""
    comment_count: int = 0
    has_reviews: bool = False
    is_approved: bool = False
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    fetched: bool = True


@dataclass
class WorktreeInfo:
    """A worktree as listed by `git worktree list --porcelain`."""

    path: str
    branch: str
    head: str = ""
    is_main: bool = False


@dataclass
class Worktree:
    repo_name: str
    repo_path: str
    branch: str
    path: str
    origin_url: str = ""
    is_dirty: bool = False
    pr_state: PRState | None = None
    pr_draft: bool = False

    @property
    def label(self) -> str:
        return f"{self.repo_name}:{self.branch}"
