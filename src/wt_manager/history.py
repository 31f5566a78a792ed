"""Recently visited worktrees.

`wt path` records each worktree it resolves so the last one visited can be
returned to. Pruning a worktree drops its entries.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from .constants import HISTORY_LIMIT, state_dir


def get_history_path() -> Path:
    """Get the path to the history file.

    Returns:
        Path to history file: ~/.local/state/wt-manager/history.json
    """
    return state_dir() / "history.json"


@dataclass
class HistoryEntry:
    path: str
    repo: str = ""
    branch: str = ""
    accessed_at: str = ""


class History:
    """Most-recent-first list of visited worktree paths."""

    def __init__(self, entries: list[HistoryEntry] | None = None, path: Path | None = None) -> None:
        self.entries: list[HistoryEntry] = list(entries or [])
        self.path = path or get_history_path()

    @classmethod
    def load(cls, path: Path | None = None) -> History:
        """Load history from disk. Missing or corrupt files yield an empty history."""
        history_path = path or get_history_path()
        try:
            with open(history_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return cls(path=history_path)

        entries = []
        raw = data.get("entries", []) if isinstance(data, dict) else []
        for item in raw:
            if isinstance(item, dict) and item.get("path"):
                entries.append(
                    HistoryEntry(
                        path=str(item["path"]),
                        repo=str(item.get("repo", "")),
                        branch=str(item.get("branch", "")),
                        accessed_at=str(item.get("accessed_at", "")),
                    )
                )
        return cls(entries, path=history_path)

    def record_access(self, path: str | Path, repo: str = "", branch: str = "") -> None:
        """Move `path` to the front of the history."""
        key = str(path)
        self.entries = [entry for entry in self.entries if entry.path != key]
        self.entries.insert(
            0,
            HistoryEntry(
                path=key,
                repo=repo,
                branch=branch,
                accessed_at=datetime.now(UTC).isoformat(),
            ),
        )
        del self.entries[HISTORY_LIMIT:]

    def remove_by_path(self, path: str | Path) -> bool:
        """Drop every entry for `path`.

        Returns:
            True if anything was removed.
        """
        key = str(path)
        before = len(self.entries)
        self.entries = [entry for entry in self.entries if entry.path != key]
        return len(self.entries) != before

    def most_recent(self) -> HistoryEntry | None:
        return self.entries[0] if self.entries else None

    def save(self, path: Path | None = None) -> None:
        """Write history atomically to `path` (default: where it was loaded from)."""
        target = path or self.path
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump({"entries": [asdict(entry) for entry in self.entries]}, f, indent=2)
        os.replace(tmp, target)
