"""Top-level fix-and-verify orchestrator."""

import logging
import threading

from fix_verifier.agents.exceptions import RollbackFailure
from fix_verifier.agents.file_selector import RelevantFileSelector
from fix_verifier.agents.fix_applier import FixApplier, RollbackExecutor
from fix_verifier.agents.fix_generator import FixGenerator
from fix_verifier.agents.verification_loop import TestVerificationLoop
from fix_verifier.config import AgentConfig
from fix_verifier.models import EventPhase, EventStatus, FixAndVerifyResult
from fix_verifier.orchestrator.exceptions import PipelineHaltedError
from fix_verifier.orchestrator.graph import build_graph, recursion_limit_for
from fix_verifier.orchestrator.state import FixVerifyState, make_initial_state
from fix_verifier.utils.events import EventCallback, emit

logger = logging.getLogger(__name__)


class FixAndVerifyOrchestrator:
    """Drives bounded fix attempts until one verifies or the budget is spent.

    After :meth:`run` returns, the workspace holds the accepted fix when the
    run succeeded and its original contents otherwise.
    """

    def __init__(
        self,
        config: AgentConfig,
        selector: RelevantFileSelector,
        generator: FixGenerator,
        loop: TestVerificationLoop,
        applier: FixApplier | None = None,
        rollback_executor: RollbackExecutor | None = None,
    ) -> None:
        self.config = config
        self.selector = selector
        self.generator = generator
        self.loop = loop
        self.applier = applier or FixApplier(config.workspace_root)
        self.rollback_executor = rollback_executor or RollbackExecutor()

    def run(
        self,
        bug_description: str,
        hint_files: list[str] | None = None,
        start_server: bool = False,
        test_context: str | None = None,
        cancel_event: threading.Event | None = None,
        on_event: EventCallback | None = None,
    ) -> FixAndVerifyResult:
        """Run the pipeline.

        Args:
            bug_description: Natural-language description of the defect.
            hint_files: Workspace paths to seed the relevant-file set.
            start_server: Launch the dev server for each test run.
            test_context: Extra app context for test generation.
            cancel_event: When set, no new attempt or sub-retry starts;
                in-flight test runs finish.
            on_event: Receives structured progress events.

        Returns:
            FixAndVerifyResult with the full attempt history.

        Raises:
            PipelineHaltedError: A rollback failed; ``exc.result`` holds the
                history so far and the RollbackFailure is chained.
            FileSelectionError: The workspace does not exist.
            GraphBuildError: The graph could not be built.
        """
        emit(on_event, EventPhase.PIPELINE, EventStatus.STARTED,
             f"Fix-and-verify started (max {self.config.max_attempts} attempt(s))")
        graph = build_graph(
            self.config,
            self.selector,
            self.generator,
            self.applier,
            self.rollback_executor,
            self.loop,
            on_event=on_event,
            cancel_event=cancel_event,
        )
        initial = make_initial_state(
            bug_description,
            hint_files=hint_files,
            test_context=test_context,
            start_server=start_server,
            max_attempts=self.config.max_attempts,
        )

        final_state = self._stream(graph, initial)
        result = self._build_result(final_state)

        failure = final_state["fatal_error"]
        if final_state["halted"] and failure is not None:
            logger.critical(
                "Pipeline halted after attempt %d; workspace may be modified: %s",
                final_state["attempt_number"],
                failure,
            )
            emit(on_event, EventPhase.PIPELINE, EventStatus.FAILED,
                 f"Halted: {failure}", final_state["attempt_number"])
            raise PipelineHaltedError(
                f"Rollback failed; pipeline halted: {failure}", result
            ) from failure

        if result.succeeded:
            emit(on_event, EventPhase.PIPELINE, EventStatus.SUCCEEDED,
                 f"Fix verified after {len(result.attempts)} attempt(s)")
        elif result.cancelled:
            emit(on_event, EventPhase.PIPELINE, EventStatus.INFO,
                 f"Cancelled after {len(result.attempts)} attempt(s)")
        else:
            emit(on_event, EventPhase.PIPELINE, EventStatus.FAILED,
                 f"All {len(result.attempts)} fix attempt(s) failed")
        return result

    def _stream(self, graph, initial: FixVerifyState) -> FixVerifyState:
        """Run the graph, rolling back an applied attempt if the run is interrupted."""
        last_state: FixVerifyState = initial
        try:
            for state in graph.stream(
                initial,
                config={"recursion_limit": recursion_limit_for(initial["max_attempts"])},
                stream_mode="values",
            ):
                last_state = state
        except BaseException:
            backup = last_state.get("backup")
            if backup is not None:
                logger.warning("Run interrupted with a fix applied; rolling back")
                try:
                    self.rollback_executor.rollback(backup)
                except RollbackFailure as failure:
                    logger.critical("Rollback after interruption failed: %s", failure)
            raise
        return last_state

    def _build_result(self, state: FixVerifyState) -> FixAndVerifyResult:
        succeeded = state["succeeded"]
        return FixAndVerifyResult(
            succeeded=succeeded,
            attempts=list(state["attempts"]),
            final_fix=state["current_fix"] if succeeded else None,
            final_verification=state["verification"] if succeeded else None,
            relevant_files=list(state["relevant_files"]),
            codebase_context=state["codebase_context"],
            cancelled=state["cancelled"],
        )
