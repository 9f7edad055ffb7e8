"""Exceptions for agent operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fix_verifier.models import BackupSet


class AgentError(Exception):
    """Base exception for all agent operations."""


class ProviderError(AgentError):
    """Raised when a proposal service is misconfigured or every provider call fails."""


class GenerationError(AgentError):
    """Raised when a fix proposal cannot be parsed into the required shape."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class TestGenerationError(GenerationError):
    """Raised when a test proposal is empty or cannot be written."""


class FileSelectionError(AgentError):
    """Raised when relevant file selection cannot start (e.g. missing workspace)."""


class ApplyError(AgentError):
    """Raised when writing a fix fails part-way.

    ``backup`` holds every entry captured before the failure so the caller can
    roll back the subset already written.
    """

    def __init__(self, message: str, backup: BackupSet) -> None:
        super().__init__(message)
        self.backup = backup


class RollbackFailure(AgentError):
    """Raised when restoring a backup entry fails; the workspace may be mutated."""

    def __init__(self, message: str, failed_paths: list[str]) -> None:
        super().__init__(message)
        self.failed_paths = failed_paths


class TestExecutionError(AgentError):
    """Raised when the test infrastructure (not the test itself) fails."""


class ServerStartupError(TestExecutionError):
    """Raised when the dev server cannot be started or exits before it is ready."""


class ServerStartupTimeoutError(ServerStartupError):
    """Raised when the dev server does not answer within the startup timeout."""


class VisualAnalysisError(AgentError):
    """Raised when the visual-assessment service fails."""
