"""PR status cache stored in the per-user state directory.

Entries are keyed by repository path and branch name, so they survive a
worktree being moved or renamed. The file is loaded wholesale and only
rewritten when something changed.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from .console import debug
from .constants import state_dir
from .models import PRInfo, PRState

CACHE_VERSION = 1


def get_cache_path() -> Path:
    """Get the path to the PR cache file.

    Returns:
        Path to cache file: ~/.local/state/wt-manager/prs.json
    """
    return state_dir() / "prs.json"


def cache_key(repo_path: str | Path, branch: str) -> str:
    """Composite cache key for a branch of a repository.

    Git branch names cannot contain ":", so the branch is always the text
    after the last "::" and two different (repo, branch) pairs never
    produce the same key.
    """
    return f"{Path(repo_path).expanduser().resolve()}::{branch}"


@dataclass
class PRCacheEntry:
    number: int = 0
    state: PRState | None = None
    is_draft: bool = False
    url: str = ""
    author: str = ""
    comment_count: int = 0
    has_reviews: bool = False
    is_approved: bool = False
    fetched_at: datetime | None = None
    fetched: bool = False

    @property
    def is_merged(self) -> bool:
        return self.fetched and self.state is PRState.MERGED

    @classmethod
    def from_pr(cls, pr: PRInfo) -> PRCacheEntry:
        return cls(
            number=pr.number,
            state=pr.state,
            is_draft=pr.is_draft,
            url=pr.url,
            author=pr.author,
            comment_count=pr.comment_count,
            has_reviews=pr.has_reviews,
            is_approved=pr.is_approved,
            fetched_at=pr.fetched_at,
            fetched=pr.fetched,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PRCacheEntry:
        fetched_at = None
        if data.get("fetched_at"):
            try:
                fetched_at = datetime.fromisoformat(data["fetched_at"])
            except (TypeError, ValueError):
                fetched_at = None
        return cls(
            number=int(data.get("number") or 0),
            state=PRState.parse(data.get("state")),
            is_draft=bool(data.get("is_draft", False)),
            url=str(data.get("url") or ""),
            author=str(data.get("author") or ""),
            comment_count=int(data.get("comment_count") or 0),
            has_reviews=bool(data.get("has_reviews", False)),
            is_approved=bool(data.get("is_approved", False)),
            fetched_at=fetched_at,
            fetched=bool(data.get("fetched", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "state": self.state.value if self.state else "",
            "is_draft": self.is_draft,
            "url": self.url,
            "author": self.author,
            "comment_count": self.comment_count,
            "has_reviews": self.has_reviews,
            "is_approved": self.is_approved,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "fetched": self.fetched,
        }


class PRCache:
    """Key-value store of PR status with dirty tracking.

    The entry map is private; all mutation goes through set/delete/reset so
    the dirty flag stays accurate.
    """

    def __init__(
        self, entries: dict[str, PRCacheEntry] | None = None, path: Path | None = None
    ) -> None:
        self._entries: dict[str, PRCacheEntry] = dict(entries or {})
        self._dirty = False
        self.path = path or get_cache_path()

    @classmethod
    def load(cls, path: Path | None = None) -> PRCache:
        """Load the cache from disk.

        A missing, unreadable or corrupt file yields an empty cache.
        """
        cache_path = path or get_cache_path()
        try:
            with open(cache_path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return cls(path=cache_path)
        except (OSError, json.JSONDecodeError) as e:
            debug(f"ignoring unreadable PR cache {cache_path}: {e}")
            return cls(path=cache_path)

        raw = data.get("prs") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            return cls(path=cache_path)

        entries: dict[str, PRCacheEntry] = {}
        for key, value in raw.items():
            if not isinstance(value, dict):
                continue
            try:
                entries[key] = PRCacheEntry.from_dict(value)
            except (TypeError, ValueError):
                continue
        return cls(entries, path=cache_path)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> PRCacheEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: PRCacheEntry) -> None:
        self._entries[key] = entry
        self._dirty = True

    def delete(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._dirty = True

    def reset(self) -> None:
        """Drop every entry."""
        self._entries = {}
        self._dirty = True

    def save(self) -> None:
        """Write the whole cache atomically.

        Raises:
            OSError: If the file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": CACHE_VERSION,
            "prs": {key: entry.to_dict() for key, entry in sorted(self._entries.items())},
        }
        tmp = self.path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)
        self._dirty = False

    def save_if_dirty(self) -> bool:
        """Save only if the cache changed since it was loaded or last saved.

        Returns:
            True if the file was written.
        """
        if not self._dirty:
            return False
        self.save()
        return True
