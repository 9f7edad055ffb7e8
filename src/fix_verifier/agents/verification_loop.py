"""Self-healing test verification loop."""

import logging
import threading
from enum import Enum

from fix_verifier.agents.exceptions import TestGenerationError
from fix_verifier.agents.test_executor import TestExecutor
from fix_verifier.agents.test_generator import TestGenerator
from fix_verifier.agents.visual_analyzer import VisualAnalyzer
from fix_verifier.config import AgentConfig
from fix_verifier.models import (
    EventPhase,
    EventStatus,
    TestGenerationInput,
    VerificationResult,
    VisualReport,
)
from fix_verifier.utils.events import EventCallback, emit
from fix_verifier.utils.response_parser import preview

logger = logging.getLogger(__name__)


class VerificationPhase(str, Enum):
    GENERATING = "generating"
    RUNNING = "running"
    HEALING = "healing"
    PASSED = "passed"
    EXHAUSTED = "exhausted"


class TestVerificationLoop:
    """Generate a test, run it, and on failure regenerate it from the error output.

    The test runs at most ``config.max_test_retries`` times. ``retry_count`` in
    the result is the number of failed runs (equal to the bound when exhausted).
    """

    __test__ = False  # Not a pytest test class

    def __init__(
        self,
        config: AgentConfig,
        test_generator: TestGenerator,
        test_executor: TestExecutor,
        visual_analyzer: VisualAnalyzer | None = None,
    ) -> None:
        self.config = config
        self.test_generator = test_generator
        self.test_executor = test_executor
        self.visual_analyzer = visual_analyzer
        self.phase: VerificationPhase | None = None

    def _transition(self, phase: VerificationPhase) -> None:
        logger.debug("Verification phase: %s -> %s", self.phase, phase.value)
        self.phase = phase

    def verify(
        self,
        bug_description: str,
        changed_files: list[str],
        test_context: str | None = None,
        start_server: bool = False,
        on_event: EventCallback | None = None,
        attempt: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> VerificationResult:
        """Run the loop and return its verdict.

        ``overall_passed`` mirrors the last test result. Visual analysis runs
        after the loop when enabled and screenshots exist; it is advisory and
        its failures only produce a missing report.

        Raises:
            TestGenerationError: If the initial test cannot be generated.
            TestExecutionError: On infrastructure failure (e.g. the dev server
                never became ready).
        """
        max_runs = self.config.max_test_retries
        self.phase = None

        def forward_output(line: str) -> None:
            emit(on_event, EventPhase.TEST_RUN, EventStatus.INFO, line, attempt)

        self.test_executor.clean_output_dir()
        request = TestGenerationInput(
            bug_description=bug_description,
            changed_files=changed_files,
            test_context=test_context,
            base_url=self.config.base_url,
        )

        self._transition(VerificationPhase.GENERATING)
        emit(on_event, EventPhase.TEST_GENERATION, EventStatus.STARTED,
             "Generating test from bug description", attempt)
        try:
            generation = self.test_generator.generate(request)
        except TestGenerationError as exc:
            emit(on_event, EventPhase.TEST_GENERATION, EventStatus.FAILED, str(exc), attempt)
            raise
        emit(on_event, EventPhase.TEST_GENERATION, EventStatus.SUCCEEDED,
             f"Test generated: {generation.test_name}", attempt)

        retry_count = 0
        while True:
            self._transition(VerificationPhase.RUNNING)
            emit(on_event, EventPhase.TEST_RUN, EventStatus.STARTED,
                 f"Running test (run {retry_count + 1}/{max_runs})", attempt)
            test_result = self.test_executor.run(
                test_path=generation.test_file_path,
                start_server=start_server,
                base_url=self.config.base_url,
                on_output=forward_output,
            )

            if test_result.passed:
                self._transition(VerificationPhase.PASSED)
                emit(on_event, EventPhase.TEST_RUN, EventStatus.SUCCEEDED, "Test passed", attempt)
                break

            emit(on_event, EventPhase.TEST_RUN, EventStatus.FAILED,
                 preview(test_result.error_message or test_result.stderr or "Test failed"),
                 attempt)
            retry_count += 1
            if retry_count >= max_runs:
                self._transition(VerificationPhase.EXHAUSTED)
                emit(on_event, EventPhase.SELF_HEAL, EventStatus.FAILED,
                     f"Test failed after {max_runs} run(s)", attempt)
                break

            if cancel_event is not None and cancel_event.is_set():
                self._transition(VerificationPhase.EXHAUSTED)
                emit(on_event, EventPhase.SELF_HEAL, EventStatus.INFO,
                     "Cancellation requested; not starting another test run", attempt)
                break

            self._transition(VerificationPhase.HEALING)
            emit(on_event, EventPhase.SELF_HEAL, EventStatus.STARTED,
                 f"Test failed. Self-healing attempt {retry_count}", attempt)
            try:
                generation = self.test_generator.regenerate(
                    request,
                    generation.test_code,
                    test_result.error_message or test_result.stderr,
                )
            except TestGenerationError as exc:
                self._transition(VerificationPhase.EXHAUSTED)
                emit(on_event, EventPhase.SELF_HEAL, EventStatus.FAILED,
                     f"Self-healing failed: {exc}", attempt)
                break
            emit(on_event, EventPhase.SELF_HEAL, EventStatus.SUCCEEDED,
                 f"Test regenerated: {generation.test_name}", attempt)

        visual_report = self._run_visual_analysis(
            bug_description, test_result.screenshots, on_event, attempt
        )
        if visual_report is not None and not visual_report.passed and test_result.passed:
            emit(on_event, EventPhase.VISUAL, EventStatus.INFO,
                 "Visual analysis flagged issues but test passed; proceeding. "
                 + visual_report.overall_assessment, attempt)

        return VerificationResult(
            test_generation=generation,
            test_result=test_result,
            visual_report=visual_report,
            retry_count=retry_count,
            overall_passed=test_result.passed,
        )

    def _run_visual_analysis(
        self,
        bug_description: str,
        screenshots: list[str],
        on_event: EventCallback | None,
        attempt: int | None,
    ) -> VisualReport | None:
        if not (self.config.enable_visual_analysis and self.visual_analyzer and screenshots):
            return None

        emit(on_event, EventPhase.VISUAL, EventStatus.STARTED,
             f"Analyzing {len(screenshots)} screenshot(s)", attempt)
        try:
            report = self.visual_analyzer.analyze(bug_description, screenshots)
        except Exception as exc:
            # Advisory only: a broken analysis never changes the verdict
            emit(on_event, EventPhase.VISUAL, EventStatus.FAILED,
                 f"Visual analysis failed: {exc}", attempt)
            return None
        emit(on_event, EventPhase.VISUAL, EventStatus.SUCCEEDED,
             report.overall_assessment, attempt)
        return report
