"""State definition for the LangGraph fix-and-verify pipeline."""

import operator
from typing import Annotated, TypedDict

from fix_verifier.agents.exceptions import RollbackFailure
from fix_verifier.config import MAX_RETRIES_LIMIT
from fix_verifier.models import (
    BackupSet,
    CodebaseContext,
    FixAttempt,
    FixResult,
    PriorAttempt,
    RelevantFile,
    VerificationResult,
)


class FixVerifyState(TypedDict):
    """State for the fix-and-verify graph.

    Fields with Annotated[list, operator.add] reducers accumulate across nodes.
    All other fields use default overwrite semantics.
    """

    # Input
    bug_description: str
    hint_files: list[str]
    test_context: str | None
    start_server: bool
    max_attempts: int

    # Shared across attempts
    codebase_context: CodebaseContext | None
    relevant_files: list[RelevantFile]

    # Current attempt
    attempt_number: int
    current_fix: FixResult | None
    backup: BackupSet | None
    verification: VerificationResult | None
    attempt_error: str | None
    prior_attempt: PriorAttempt | None

    # History (accumulating reducers)
    attempts: Annotated[list[FixAttempt], operator.add]
    errors: Annotated[list[str], operator.add]

    # Outcome
    succeeded: bool
    cancelled: bool
    halted: bool
    fatal_error: RollbackFailure | None


def make_initial_state(
    bug_description: str,
    hint_files: list[str] | None = None,
    test_context: str | None = None,
    start_server: bool = False,
    max_attempts: int = 3,
) -> FixVerifyState:
    """Create the initial state for one pipeline run.

    Args:
        bug_description: Natural-language description of the defect.
        hint_files: Workspace paths the caller believes are relevant.
        test_context: Extra app context passed to test generation.
        start_server: Whether each test run launches the dev server.
        max_attempts: Outer attempt bound, clamped to 1..10.

    Returns:
        FixVerifyState dict with all fields initialised to defaults.
    """
    clamped_attempts = max(1, min(max_attempts, MAX_RETRIES_LIMIT))
    return {
        "bug_description": bug_description,
        "hint_files": list(hint_files or []),
        "test_context": test_context,
        "start_server": start_server,
        "max_attempts": clamped_attempts,
        "codebase_context": None,
        "relevant_files": [],
        "attempt_number": 0,
        "current_fix": None,
        "backup": None,
        "verification": None,
        "attempt_error": None,
        "prior_attempt": None,
        "attempts": [],
        "errors": [],
        "succeeded": False,
        "cancelled": False,
        "halted": False,
        "fatal_error": None,
    }
