"""Tests for orchestrator routing helpers and initial state."""

from fix_verifier.models import (
    FileChange,
    FixResult,
    TestGenerationResult,
    TestResult,
    VerificationResult,
    VisualReport,
)
from fix_verifier.orchestrator.recovery import (
    NO_ERROR_CAPTURED,
    build_failure_context,
    changed_paths,
    failed_generation_fix,
    next_attempt_or_end,
    route_after_apply,
    route_after_generate,
    route_after_verify,
)
from fix_verifier.orchestrator.state import make_initial_state


def make_verification(passed: bool, error=None, stderr="", visual=None) -> VerificationResult:
    return VerificationResult(
        test_generation=TestGenerationResult(test_file_path="t.spec.ts", test_code="x", test_name="t"),
        test_result=TestResult(passed=passed, error_message=error, stderr=stderr),
        visual_report=visual,
        overall_passed=passed,
    )


def make_fix(*relative_paths: str) -> FixResult:
    return FixResult(
        changes=[
            FileChange(path=f"/ws/{p}", relative_path=p, original_content="", modified_content="x", diff="")
            for p in relative_paths
        ],
        explanation="e",
        approach="a",
    )


# ---------------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------------
class TestMakeInitialState:
    def test_defaults(self):
        state = make_initial_state("bug", hint_files=["src/a.js"])
        assert state["attempt_number"] == 0
        assert state["attempts"] == []
        assert state["hint_files"] == ["src/a.js"]
        assert state["succeeded"] is False

    def test_max_attempts_clamped(self):
        assert make_initial_state("bug", max_attempts=0)["max_attempts"] == 1
        assert make_initial_state("bug", max_attempts=99)["max_attempts"] == 10


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
class TestRouters:
    def test_next_attempt_or_end(self):
        state = make_initial_state("bug", max_attempts=2)
        state["attempt_number"] = 1
        assert next_attempt_or_end(state) == "continue"
        state["attempt_number"] = 2
        assert next_attempt_or_end(state) == "done"

    def test_halted_ends(self):
        state = make_initial_state("bug", max_attempts=3)
        state["attempt_number"] = 1
        state["halted"] = True
        assert next_attempt_or_end(state) == "done"

    def test_route_after_generate(self):
        state = make_initial_state("bug", max_attempts=3)
        state["attempt_number"] = 1
        assert route_after_generate(state) == "continue"
        state["current_fix"] = make_fix("src/a.js")
        assert route_after_generate(state) == "apply"
        state["cancelled"] = True
        assert route_after_generate(state) == "done"

    def test_route_after_apply(self):
        state = make_initial_state("bug", max_attempts=1)
        state["attempt_number"] = 1
        assert route_after_apply(state) == "done"
        state["backup"] = object()
        assert route_after_apply(state) == "verify"

    def test_route_after_verify(self):
        state = make_initial_state("bug")
        assert route_after_verify(state) == "rollback"
        state["verification"] = make_verification(False)
        assert route_after_verify(state) == "rollback"
        state["verification"] = make_verification(True)
        assert route_after_verify(state) == "accept"


# ---------------------------------------------------------------------------
# Failure feedback
# ---------------------------------------------------------------------------
class TestBuildFailureContext:
    def test_infrastructure_error_wins(self):
        assert build_failure_context(make_verification(False, "x"), "ServerStartupError: died") == (
            "ServerStartupError: died"
        )

    def test_joins_error_stderr_and_visual(self):
        visual = VisualReport(bug_description="b", overall_assessment="Found 1 visual issue(s)")
        text = build_failure_context(make_verification(False, "Expected 1", "trace", visual))
        assert text == "Expected 1\n---\ntrace\n---\nFound 1 visual issue(s)"

    def test_nothing_captured(self):
        assert build_failure_context(make_verification(False)) == NO_ERROR_CAPTURED
        assert build_failure_context(None) == NO_ERROR_CAPTURED


class TestHelpers:
    def test_failed_generation_fix(self):
        fix = failed_generation_fix(ValueError("bad json"))
        assert fix.approach == "Failed"
        assert fix.changes == []
        assert "bad json" in fix.explanation

    def test_changed_paths_deduplicated(self):
        assert changed_paths(make_fix("src/a.js", "src/b.js", "src/a.js")) == ["src/a.js", "src/b.js"]
