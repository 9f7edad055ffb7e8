"""Pure helper functions for orchestrator routing and failure feedback.

All functions are stateless and have no external dependencies.
"""

from fix_verifier.models import FixResult, VerificationResult
from fix_verifier.orchestrator.state import FixVerifyState

FAILURE_SEPARATOR = "\n---\n"
NO_ERROR_CAPTURED = "Verification tests failed but no specific error message was captured."
FAILED_APPROACH = "Failed"


def build_failure_context(verification: VerificationResult | None, error: str | None = None) -> str:
    """Text fed back to the next fix attempt after a failed verification.

    An infrastructure error replaces the test output entirely. Otherwise the
    test error message, stderr and visual assessment are joined, skipping
    empty parts.
    """
    if error:
        return error
    if verification is None:
        return NO_ERROR_CAPTURED

    result = verification.test_result
    parts = [result.error_message, result.stderr]
    if verification.visual_report is not None:
        parts.append(verification.visual_report.overall_assessment)
    text = FAILURE_SEPARATOR.join(part.strip() for part in parts if part and part.strip())
    return text or NO_ERROR_CAPTURED


def failed_generation_fix(error: Exception) -> FixResult:
    """Placeholder FixResult recorded when fix generation itself failed."""
    return FixResult(
        changes=[],
        explanation=f"Fix generation error: {error}",
        approach=FAILED_APPROACH,
    )


def changed_paths(fix: FixResult) -> list[str]:
    """Relative paths touched by ``fix``, de-duplicated, in proposal order."""
    seen: set[str] = set()
    paths: list[str] = []
    for change in fix.changes:
        if change.relative_path not in seen:
            seen.add(change.relative_path)
            paths.append(change.relative_path)
    return paths


def next_attempt_or_end(state: FixVerifyState) -> str:
    """Router used whenever an attempt ended without success.

    Returns:
        "done" if the pipeline is halted or the attempt budget is spent,
        "continue" otherwise.
    """
    if state["halted"]:
        return "done"
    if state["attempt_number"] >= state["max_attempts"]:
        return "done"
    return "continue"


def route_after_generate(state: FixVerifyState) -> str:
    if state["cancelled"]:
        return "done"
    if state["current_fix"] is not None:
        return "apply"
    return next_attempt_or_end(state)


def route_after_apply(state: FixVerifyState) -> str:
    if state["backup"] is not None:
        return "verify"
    return next_attempt_or_end(state)


def route_after_verify(state: FixVerifyState) -> str:
    verification = state["verification"]
    if verification is not None and verification.overall_passed:
        return "accept"
    return "rollback"
