"""Git operations for smd.

Only what branch validation needs: find the current branch, check that a
branch exists, switch to it.

Return type conventions:
- Functions returning GitResult: Caller must check .success before using output.
- Functions returning bool: True on success/condition met, False otherwise.
"""

from smd.git.runner import GitResult, run_git
from smd.git.branch import (
    branch_exists,
    checkout_branch,
    get_current_branch,
    is_git_repo,
)

__all__ = [
    "GitResult",
    "run_git",
    "branch_exists",
    "checkout_branch",
    "get_current_branch",
    "is_git_repo",
]
