"""
Git repository metadata for Universal Memory MCP

Detects the repository the server was started in and turns it into tags,
a project name and a context for new memories.
"""

import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("universal-memory.repo")

GIT_TIMEOUT = 5
_REPO_NAME = re.compile(r"[/:]([^/]+/[^/]+?)(?:\.git)?$")


@dataclass
class RepositoryInfo:
    is_git_repo: bool = False
    repo_name: Optional[str] = None
    branch: Optional[str] = None
    remote_name: Optional[str] = None
    remote_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    @property
    def slug(self) -> Optional[str]:
        """owner-name form of the repository, used for tags and contexts"""
        return self.repo_name.replace("/", "-", 1) if self.repo_name else None


def _git(args: List[str], cwd: Optional[str]) -> Optional[str]:
    """Run a git command, returning stripped stdout or None when it fails"""
    try:
        result = subprocess.run(
            ["git", *args], cwd=cwd, capture_output=True, text=True, timeout=GIT_TIMEOUT
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git {' '.join(args)} failed: {e}")
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def parse_repo_name(remote_url: str) -> Optional[str]:
    """owner/name from an https or ssh remote URL"""
    match = _REPO_NAME.search(remote_url.strip())
    return match.group(1) if match else None


def detect_repository_info(cwd: Optional[str] = None) -> RepositoryInfo:
    info = RepositoryInfo()
    if _git(["rev-parse", "--git-dir"], cwd) is None:
        return info
    info.is_git_repo = True

    remote_url = _git(["remote", "get-url", "origin"], cwd)
    if remote_url:
        info.remote_url = remote_url
        info.repo_name = parse_repo_name(remote_url)
        if info.repo_name:
            info.tags.append(f"repo:{info.slug}")

    branch = _git(["branch", "--show-current"], cwd)
    if branch:
        info.branch = branch
        info.tags.append(f"branch:{branch}")

    remotes = _git(["remote"], cwd)
    if remotes:
        info.remote_name = remotes.splitlines()[0]

    info.tags.append("git-repo")
    return info


def enhance_with_repo_info(data: Dict[str, Any], info: RepositoryInfo) -> Dict[str, Any]:
    """Return a copy of memory fields enriched with repository metadata.

    Tags are appended without duplicates. The project is only filled in when
    the caller gave none, and the context only replaced when it is missing or
    "general".
    """
    enhanced = dict(data)
    if not info.is_git_repo:
        return enhanced

    tags = list(enhanced.get("tags") or [])
    tags.extend(tag for tag in info.tags if tag not in tags)
    enhanced["tags"] = tags or None

    if not enhanced.get("project") and info.repo_name:
        enhanced["project"] = info.repo_name

    if enhanced.get("context") in (None, "", "general") and info.slug:
        enhanced["context"] = f"repo-{info.slug}"

    return enhanced
