"""User-defined shell hooks fired after worktree operations.

Hooks are configured under "hooks" in config.json. A hook runs through
`sh -c` with placeholders such as {path} and {branch} substituted and
shell-quoted.
"""

from __future__ import annotations

import re
import shlex
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field

from rich.markup import escape

from .config import Config, Hook
from .console import get_console, warn
from .exceptions import HookError


@dataclass(frozen=True)
class HookMatch:
    name: str
    hook: Hook


@dataclass
class HookContext:
    path: str = ""
    branch: str = ""
    repo: str = ""
    folder: str = ""
    main_repo: str = ""
    trigger: str = ""
    env: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False


# {key}, {key:raw} or {key:-default}
_ENV_PLACEHOLDER = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)(?:(:raw)|:-([^}]*))?\}")


def select_hooks(
    config: Config, names: Iterable[str] = (), skip: bool = False, trigger: str = ""
) -> list[HookMatch]:
    """Pick the hooks to run for a command.

    Explicitly named hooks run regardless of their "on" list. Otherwise every
    enabled hook whose "on" list contains the trigger (or "all") is used.

    Raises:
        HookError: If a named hook is not configured
    """
    if skip:
        return []

    names = list(names)
    if names:
        matches = []
        for name in names:
            if name not in config.hooks:
                raise HookError(f"unknown hook {name!r}")
            matches.append(HookMatch(name=name, hook=config.hooks[name]))
        return matches

    return [
        HookMatch(name=name, hook=hook)
        for name, hook in sorted(config.hooks.items())
        if hook.enabled and ("all" in hook.on or trigger in hook.on)
    ]


def substitute_placeholders(command: str, context: HookContext) -> str:
    """Expand placeholders in a hook command.

    Built-ins: {path}, {branch}, {repo}, {folder}, {main-repo}, {trigger}.
    Values from context.env: {key} (quoted), {key:raw} (as-is) and
    {key:-default}. Unknown keys expand to an empty quoted string.
    """
    builtins = {
        "{path}": context.path,
        "{branch}": context.branch,
        "{repo}": context.repo,
        "{folder}": context.folder,
        "{main-repo}": context.main_repo,
        "{trigger}": context.trigger,
    }
    result = command
    for placeholder, value in builtins.items():
        result = result.replace(placeholder, shlex.quote(value))

    def expand(match: re.Match[str]) -> str:
        key, raw, default = match.group(1), match.group(2), match.group(3) or ""
        value = context.env.get(key, default)
        return value if raw else shlex.quote(value)

    return _ENV_PLACEHOLDER.sub(expand, result)


def parse_env(pairs: Iterable[str]) -> dict[str, str]:
    """Parse KEY=VALUE arguments.

    Raises:
        HookError: If an entry has no "=" or an empty key
    """
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise HookError(f"invalid env format {pair!r}: expected KEY=VALUE")
        if not key:
            raise HookError(f"invalid env format {pair!r}: key cannot be empty")
        env[key] = value
    return env


def run_hook(match: HookMatch, context: HookContext, workdir: str) -> None:
    """Run one hook in `workdir`.

    Raises:
        HookError: If the command cannot start or exits non-zero
    """
    console = get_console()
    command = substitute_placeholders(match.hook.command, context)
    if context.dry_run:
        console.print(f"[dim]\\[dry-run] {escape(match.name)}: {escape(command)}[/dim]")
        return

    console.print(f"Running hook '{match.name}'...")
    try:
        result = subprocess.run(["sh", "-c", command], cwd=workdir, check=False)
    except OSError as e:
        raise HookError(str(e)) from e
    if result.returncode != 0:
        raise HookError(f"exit status {result.returncode}")
    if match.hook.description:
        console.print(f"  [green]✓[/green] {match.hook.description}")


def run_for_each(matches: Iterable[HookMatch], context: HookContext, workdir: str) -> None:
    """Run hooks for one item of a batch, reporting failures as warnings."""
    for match in matches:
        try:
            run_hook(match, context, workdir)
        except HookError as e:
            warn(f"hook {match.name!r} failed for {context.branch}: {e}")
