"""Child-process helpers: isolated process groups and tree termination."""

import logging
import os
import signal
import subprocess
import sys
from typing import Any

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
DEFAULT_GRACE_SECONDS = 5.0


def process_group_kwargs() -> dict[str, Any]:
    """Popen keyword arguments that put the child at the head of its own process tree."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _wait(process: subprocess.Popen, timeout: float) -> bool:
    try:
        process.wait(timeout=timeout)
        return True
    except subprocess.TimeoutExpired:
        return False


def _signal_group(process: subprocess.Popen, sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        # Group already empty
        pass
    except PermissionError:
        if process.poll() is None:
            process.send_signal(sig)


def terminate_process_tree(
    process: subprocess.Popen,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
) -> bool:
    """Terminate ``process`` and every process it spawned, then confirm it exited.

    POSIX: SIGTERM to the process group, wait ``grace_seconds``, SIGKILL the group
    (children can outlive the leader), then wait again. Windows: ``taskkill /T /F``.
    The child must have been started with :func:`process_group_kwargs`.

    Returns:
        True if the process is confirmed to have exited.
    """
    if IS_WINDOWS:
        if process.poll() is None:
            subprocess.run(
                ["taskkill", "/pid", str(process.pid), "/T", "/F"],
                capture_output=True,
                check=False,
            )
        exited = _wait(process, grace_seconds)
    else:
        _signal_group(process, signal.SIGTERM)
        exited = _wait(process, grace_seconds)
        _signal_group(process, signal.SIGKILL)
        if not exited:
            exited = _wait(process, grace_seconds)

    if exited:
        logger.debug("Process tree %d terminated (exit code %s)", process.pid, process.returncode)
    else:
        logger.error("Process %d did not exit after SIGKILL; it may still be running", process.pid)
    return exited
