"""Version-control helpers."""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


def detect_changed_files(workspace_root: str | Path) -> list[str]:
    """Return paths changed relative to HEAD (``git diff --name-only HEAD``).

    Returns an empty list when git is unavailable or the workspace is not a
    repository.
    """
    try:
        result = subprocess.run(
            ["git", "diff", "--name-only", "HEAD"],
            cwd=str(workspace_root),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("Could not run git to detect changed files: %s", exc)
        return []

    if result.returncode != 0:
        logger.warning("git diff failed: %s", result.stderr.strip())
        return []

    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
