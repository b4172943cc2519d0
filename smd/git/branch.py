"""Git branch operations."""

from pathlib import Path

from smd.git.runner import GitResult, run_git


def is_git_repo(path: Path) -> bool:
    result = run_git(["rev-parse", "--is-inside-work-tree"], path)
    return result.success and result.output == "true"


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD or not a repo."""
    result = run_git(["branch", "--show-current"], worktree)
    if result.success:
        return result.output or None
    return None


def branch_exists(repo: Path, branch: str) -> bool:
    """Check if a local branch exists."""
    return run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], repo).success


def checkout_branch(repo: Path, branch: str) -> GitResult:
    """Switch to branch, creating it from HEAD if it doesn't exist yet."""
    if branch_exists(repo, branch):
        return run_git(["checkout", branch], repo)
    return run_git(["checkout", "-b", branch], repo)
