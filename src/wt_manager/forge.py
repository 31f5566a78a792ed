"""Forge clients for GitHub and GitLab, backed by the gh and glab CLIs.

All calls run as asyncio subprocesses so the refresh engine can run several
of them at once and cancel them promptly.
"""

from __future__ import annotations

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any

from .config import ForgeConfig
from .exceptions import ForgeError
from .git_utils import has_command
from .models import PRInfo, PRState

_SCP_LIKE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$")
_URL_LIKE = re.compile(r"^[a-z][a-z0-9+.-]*://(?:[^@/]+@)?(?P<host>[^:/]+)(?::\d+)?/(?P<path>.+)$")


def parse_remote_url(url: str) -> tuple[str, str]:
    """Split a git remote URL into (host, project path).

    Handles https://host/a/b.git, ssh://git@host:22/a/b.git and
    git@host:a/b.git. Returns ("", "") for anything else.
    """
    url = url.strip()
    if not url:
        return "", ""
    match = _URL_LIKE.match(url) or (None if "://" in url else _SCP_LIKE.match(url))
    if not match:
        return "", ""
    path = match.group("path").strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return match.group("host").lower(), path


async def run_cli(*args: str) -> str:
    """Run a forge CLI and return its stdout.

    The subprocess is killed if the awaiting task is cancelled.

    Raises:
        ForgeError: If the command is missing or exits non-zero
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ForgeError(f"command not found: {args[0]}") from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if proc.returncode != 0:
        detail = (
            stderr.decode(errors="replace").strip()
            or stdout.decode(errors="replace").strip()
        )
        suffix = f": {detail}" if detail else f" (exit {proc.returncode})"
        raise ForgeError(f"{' '.join(args[:3])} failed{suffix}")
    return stdout.decode(errors="replace")


def _decode_list(output: str, cli: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(output or "[]")
    except json.JSONDecodeError as e:
        raise ForgeError(f"failed to parse {cli} output: {e}") from e
    if not isinstance(data, list):
        raise ForgeError(f"unexpected {cli} output: expected a list")
    return data


class Forge(ABC):
    """A code-hosting service reachable through its CLI."""

    name: str
    cli: str
    install_hint: str

    def __init__(self, host: str = "") -> None:
        self.host = host

    async def check(self) -> None:
        """Verify the CLI is installed and authenticated.

        Raises:
            ForgeError: If it is not
        """
        if not has_command(self.cli):
            raise ForgeError(f"{self.cli} not found: please install {self.install_hint}")
        args = [self.cli, "auth", "status"]
        if self.host:
            args += ["--hostname", self.host]
        try:
            await run_cli(*args)
        except ForgeError as e:
            message = str(e)
            if "not logged" in message or "no accounts" in message.lower():
                raise ForgeError(
                    f"{self.cli} not authenticated: please run '{self.cli} auth login'"
                ) from e
            raise ForgeError(f"{self.cli} auth check failed: {message}") from e

    @abstractmethod
    async def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        """Fetch the most recent PR whose head is `branch`.

        Returns:
            PRInfo with fetched=True; state is None when no PR exists.

        Raises:
            ForgeError: If the lookup fails
        """


class GitHubForge(Forge):
    name = "github"
    cli = "gh"
    install_hint = "GitHub CLI (https://cli.github.com)"

    async def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        host, project = parse_remote_url(origin_url)
        repo_spec = f"{host}/{project}" if host and project else origin_url
        output = await run_cli(
            "gh", "pr", "list",
            "-R", repo_spec,
            "--head", branch,
            "--state", "all",
            "--json", "number,state,isDraft,url,author,comments,reviewDecision",
            "--limit", "1",
        )
        prs = _decode_list(output, "gh")
        if not prs:
            return PRInfo()

        pr = prs[0]
        review = pr.get("reviewDecision") or ""
        return PRInfo(
            number=int(pr.get("number") or 0),
            state=PRState.parse(pr.get("state")),
            is_draft=bool(pr.get("isDraft")),
            url=pr.get("url") or "",
            author=(pr.get("author") or {}).get("login", ""),
            comment_count=len(pr.get("comments") or []),
            has_reviews=review != "",
            is_approved=review == "APPROVED",
        )


class GitLabForge(Forge):
    name = "gitlab"
    cli = "glab"
    install_hint = "GitLab CLI (https://gitlab.com/gitlab-org/cli)"

    async def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        _, project = parse_remote_url(origin_url)
        output = await run_cli(
            "glab", "mr", "list",
            "-R", project or origin_url,
            "--source-branch", branch,
            "--all",
            "-F", "json",
            "-P", "1",
        )
        mrs = _decode_list(output, "glab")
        if not mrs:
            return PRInfo()

        mr = mrs[0]
        return PRInfo(
            number=int(mr.get("iid") or 0),
            state=PRState.parse(mr.get("state")),
            is_draft=bool(mr.get("draft")),
            url=mr.get("web_url") or "",
            author=(mr.get("author") or {}).get("username", ""),
            comment_count=int(mr.get("user_notes_count") or 0),
            has_reviews=bool(mr.get("approved_by")),
            is_approved=bool(mr.get("approved")),
        )


_FORGES: dict[str, type[Forge]] = {
    GitHubForge.name: GitHubForge,
    GitLabForge.name: GitLabForge,
}


def detect_forge_type(origin_url: str, hosts: dict[str, str], forge_config: ForgeConfig) -> str:
    """Decide which forge serves an origin URL.

    Order: explicit host mapping, then forge rules on "owner/repo", then
    URL heuristics, then the configured default.
    """
    host, project = parse_remote_url(origin_url)
    if host and host in hosts:
        return hosts[host]

    if project:
        rule_type = forge_config.type_for_repo(project)
        if rule_type:
            return rule_type

    lowered = origin_url.lower()
    if "gitlab." in lowered or "/gitlab/" in lowered:
        return "gitlab"
    if "github." in lowered:
        return "github"
    return forge_config.default


def detect(origin_url: str, hosts: dict[str, str], forge_config: ForgeConfig) -> Forge:
    """Return the Forge implementation for an origin URL."""
    kind = detect_forge_type(origin_url, hosts, forge_config)
    host, _ = parse_remote_url(origin_url)
    # gh/glab default to the public hosts; only pass custom ones through
    if host in ("github.com", "gitlab.com"):
        host = ""
    return _FORGES.get(kind, GitHubForge)(host)
