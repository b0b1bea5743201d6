"""Git operations for taskledger.

Return type conventions follow run_git: GitResult for raw commands,
None / False on failure for the parsed helpers.
"""

from taskledger.git.runner import run_git, GitResult
from taskledger.git.branch import (
    has_git,
    get_current_branch,
    get_commit_sha,
    is_feature_branch,
    parse_feature_branch,
    make_feature_branch,
)

__all__ = [
    "run_git",
    "GitResult",
    "has_git",
    "get_current_branch",
    "get_commit_sha",
    "is_feature_branch",
    "parse_feature_branch",
    "make_feature_branch",
]
