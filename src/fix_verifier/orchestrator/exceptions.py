"""Exceptions for orchestrator operations.

Note: Names chosen to avoid collisions with stdlib and framework exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fix_verifier.models import FixAndVerifyResult


class OrchestratorError(Exception):
    """Base exception for all orchestrator operations."""


class GraphBuildError(OrchestratorError):
    """Raised when graph construction fails."""


class PipelineHaltedError(OrchestratorError):
    """Raised when a rollback failed and no further attempts may run.

    ``result`` carries the attempt history collected up to the halt.
    """

    def __init__(self, message: str, result: FixAndVerifyResult) -> None:
        super().__init__(message)
        self.result = result
