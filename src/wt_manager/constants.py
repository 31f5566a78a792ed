"""Constants and default locations for wt-manager."""

import os
from pathlib import Path

APP_NAME = "wt-manager"

# Forge APIs rate-limit; keep parallel PR lookups small
MAX_CONCURRENT_PR_FETCHES = 5

# Seconds allowed for a whole PR refresh before pending lookups are cancelled
DEFAULT_REFRESH_TIMEOUT = 120.0

# Seconds allowed for a single git subprocess
GIT_TIMEOUT = 60.0

VALID_FORGE_TYPES = ("github", "gitlab")

HOOK_TRIGGER_PRUNE = "prune"
HOOK_TRIGGER_CHECKOUT = "checkout"
VALID_HOOK_TRIGGERS = ("all", HOOK_TRIGGER_PRUNE, HOOK_TRIGGER_CHECKOUT)

# Number of entries kept in the visit history
HISTORY_LIMIT = 50


def config_dir() -> Path:
    """Directory holding config.json and registry.json.

    Returns:
        $XDG_CONFIG_HOME/wt-manager, defaulting to ~/.config/wt-manager
    """
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_NAME


def state_dir() -> Path:
    """Per-user state directory holding the PR cache and history.

    Returns:
        $XDG_STATE_HOME/wt-manager, defaulting to ~/.local/state/wt-manager
    """
    base = os.environ.get("XDG_STATE_HOME")
    root = Path(base) if base else Path.home() / ".local" / "state"
    return root / APP_NAME
