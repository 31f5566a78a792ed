"""Repository registry for cross-repo worktree management.

Tracks the repositories wt-manager operates on, each with a unique
human-chosen name and a set of labels for grouping. The registry is
stored at ~/.config/wt-manager/registry.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import config_dir
from .exceptions import RepoNotFoundError, WtError

REGISTRY_VERSION = 1


@dataclass
class Repo:
    name: str
    path: str
    labels: list[str] = field(default_factory=list)

    def has_label(self, label: str) -> bool:
        return label in self.labels

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "path": self.path}
        if self.labels:
            data["labels"] = sorted(set(self.labels))
        return data


def get_registry_path() -> Path:
    """Get the path to the registry file.

    Returns:
        Path to registry file: ~/.config/wt-manager/registry.json
    """
    return config_dir() / "registry.json"


class Registry:
    """In-memory registry snapshot, loaded once per invocation."""

    def __init__(self, repos: list[Repo] | None = None, path: Path | None = None) -> None:
        self.repos: list[Repo] = list(repos or [])
        self.path = path or get_registry_path()

    @classmethod
    def load(cls, path: Path | None = None) -> Registry:
        """Load the registry from disk.

        Returns:
            Registry instance. Empty if the file doesn't exist or is corrupt.
        """
        registry_path = path or get_registry_path()
        if not registry_path.exists():
            return cls(path=registry_path)

        try:
            with open(registry_path) as f:
                data: dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError):
            return cls(path=registry_path)

        repos = []
        for entry in data.get("repositories", []):
            if not isinstance(entry, dict) or not entry.get("path"):
                continue
            repos.append(
                Repo(
                    name=str(entry.get("name") or Path(entry["path"]).name),
                    path=str(entry["path"]),
                    labels=[str(label) for label in entry.get("labels", [])],
                )
            )
        return cls(repos, path=registry_path)

    def save(self) -> None:
        """Write the registry to disk atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": REGISTRY_VERSION,
            "repositories": [repo.to_dict() for repo in self.repos],
        }
        tmp = self.path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)

    def add(self, repo: Repo) -> Repo:
        """Register a repository.

        Args:
            repo: Repository to add. Its path is normalized to an absolute path.

        Returns:
            The stored Repo.

        Raises:
            WtError: If the path or name is already registered
        """
        repo.path = str(Path(repo.path).expanduser().resolve())
        for existing in self.repos:
            if existing.path == repo.path:
                raise WtError(f"repo already registered: {repo.path}")
            if existing.name == repo.name:
                raise WtError(
                    f"repo name already exists: {repo.name} "
                    "(use --name or labels to disambiguate)"
                )
        self.repos.append(repo)
        return repo

    def remove(self, name_or_path: str) -> Repo:
        """Unregister a repository by name or path.

        Raises:
            RepoNotFoundError: If nothing matches
        """
        for i, repo in enumerate(self.repos):
            if repo.name == name_or_path or repo.path == name_or_path:
                return self.repos.pop(i)
        raise RepoNotFoundError(f"repo not found: {name_or_path}")

    def find_by_name(self, name: str) -> Repo:
        """Look up a repository by exact name.

        Raises:
            RepoNotFoundError: If no repository has that name
        """
        for repo in self.repos:
            if repo.name == name:
                return repo
        raise RepoNotFoundError(f"repo not found: {name}")

    def find_by_path(self, path: str | Path) -> Repo:
        """Look up a repository by its root path.

        Raises:
            RepoNotFoundError: If the path is not registered
        """
        wanted = str(Path(path).expanduser().resolve())
        for repo in self.repos:
            if repo.path == wanted:
                return repo
        raise RepoNotFoundError(f"repo not registered: {path}")

    def find_by_label(self, label: str) -> list[Repo]:
        """Return every repository carrying the label, in registry order."""
        return [repo for repo in self.repos if repo.has_label(label)]

    def add_label(self, name: str, label: str) -> bool:
        """Attach a label to a repository. Returns False if already present."""
        repo = self.find_by_name(name)
        if repo.has_label(label):
            return False
        repo.labels.append(label)
        return True

    def remove_label(self, name: str, label: str) -> bool:
        """Detach a label from a repository. Returns False if it was absent."""
        repo = self.find_by_name(name)
        if not repo.has_label(label):
            return False
        repo.labels = [existing for existing in repo.labels if existing != label]
        return True

    def prune_missing(self) -> list[Repo]:
        """Drop repositories whose directory no longer exists.

        Returns:
            The removed repositories.
        """
        removed = [repo for repo in self.repos if not Path(repo.path).exists()]
        self.repos = [repo for repo in self.repos if repo not in removed]
        return removed

    def all_labels(self) -> list[str]:
        return sorted({label for repo in self.repos for label in repo.labels})
