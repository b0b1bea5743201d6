"""Git branch helpers and feature branch naming."""

import re
from pathlib import Path

from taskledger.git.runner import run_git

FEATURE_BRANCH_RE = re.compile(r'^(\d{3})-([a-z0-9][a-z0-9-]*)$')


def has_git(repo: Path) -> bool:
    """Check if repo is inside a git work tree."""
    return run_git(["rev-parse", "--is-inside-work-tree"], repo).output == "true"


def get_current_branch(worktree: Path) -> str | None:
    """Current branch name, or None on a detached HEAD or outside a repo."""
    return run_git(["branch", "--show-current"], worktree).output


def get_commit_sha(worktree: Path, ref: str = "HEAD", short: bool = False) -> str | None:
    args = ["rev-parse", "--short", ref] if short else ["rev-parse", ref]
    return run_git(args, worktree).output


def is_feature_branch(branch: str | None) -> bool:
    """Feature branches are named NNN-some-name."""
    return bool(branch) and FEATURE_BRANCH_RE.match(branch) is not None


def parse_feature_branch(branch: str) -> tuple[str, str] | None:
    """Split 007-user-login into ("007", "user-login")."""
    match = FEATURE_BRANCH_RE.match(branch)
    if not match:
        return None
    return match.group(1), match.group(2)


def make_feature_branch(feature_id: str, name: str) -> str:
    """Build a branch name from a feature id and a free-form name.

    Raises:
        ValueError: If the name has nothing usable in it.
    """
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    if not slug:
        raise ValueError(f"Feature name '{name}' has no usable characters")
    branch = f"{feature_id}-{slug}"
    if not is_feature_branch(branch):
        raise ValueError(f"Invalid feature branch name: {branch}")
    return branch
