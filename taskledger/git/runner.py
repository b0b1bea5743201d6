"""Git subprocess wrapper.

The ledger only ever asks git read-only questions (branch, HEAD sha,
work tree root), so every failure, a missing binary included, comes back
as an unsuccessful GitResult rather than an exception.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str | None:
        """Stripped stdout of a successful command; None on failure or empty output."""
        if not self.success:
            return None
        return self.stdout.strip() or None


def run_git(args: list[str], cwd: Path, timeout: int = GIT_TIMEOUT_SECONDS) -> GitResult:
    """Run `git -C cwd <args>` and capture its output."""
    try:
        proc = subprocess.run(
            ["git", "-C", str(cwd), *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"[GIT] git {args[0]} timed out after {timeout}s in {cwd}")
        return GitResult(-1, "", f"Command timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(-1, "", "git not found")

    if proc.returncode != 0:
        logger.debug(f"[GIT] git {' '.join(args)} exited {proc.returncode}: {proc.stderr.strip()}")
    return GitResult(proc.returncode, proc.stdout, proc.stderr)
