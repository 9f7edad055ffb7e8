"""LangGraph orchestrator graph for the fix-and-verify pipeline.

Wires RelevantFileSelector, FixGenerator, FixApplier, TestVerificationLoop and
RollbackExecutor into a StateGraph that runs bounded fix attempts, rolling the
workspace back after every attempt that does not pass.
"""

import logging
import threading
from typing import Callable

from langgraph.graph import END, START, StateGraph

from fix_verifier.agents.exceptions import AgentError, ApplyError, RollbackFailure
from fix_verifier.agents.file_selector import RelevantFileSelector
from fix_verifier.agents.fix_applier import FixApplier, RollbackExecutor
from fix_verifier.agents.fix_generator import FixGenerator
from fix_verifier.agents.verification_loop import TestVerificationLoop
from fix_verifier.config import AgentConfig
from fix_verifier.models import AttemptPhase, EventPhase, EventStatus, FixAttempt, PriorAttempt
from fix_verifier.orchestrator.exceptions import GraphBuildError
from fix_verifier.orchestrator.recovery import (
    build_failure_context,
    changed_paths,
    failed_generation_fix,
    next_attempt_or_end,
    route_after_apply,
    route_after_generate,
    route_after_verify,
)
from fix_verifier.orchestrator.state import FixVerifyState
from fix_verifier.utils.events import EventCallback, emit
from fix_verifier.utils.workspace import read_codebase_context

logger = logging.getLogger(__name__)

# Nodes visited per attempt at most: generate, apply, verify, rollback/accept
NODES_PER_ATTEMPT = 4
RECURSION_HEADROOM = 5


def recursion_limit_for(max_attempts: int) -> int:
    return NODES_PER_ATTEMPT * max_attempts + RECURSION_HEADROOM


def make_context_node(
    config: AgentConfig,
    selector: RelevantFileSelector,
    on_event: EventCallback | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that reads project context and selects files once.

    The closure:
    1. Calls read_codebase_context(config) -> CodebaseContext | None
    2. Calls selector.select(bug, hint_files, context) -> list[RelevantFile]
    3. Returns {"codebase_context": ..., "relevant_files": ...}

    Selection errors (missing workspace) propagate out of the graph.
    """

    def context_node(state: FixVerifyState) -> dict:
        emit(on_event, EventPhase.CONTEXT, EventStatus.STARTED, "Reading codebase context")
        context = read_codebase_context(config)
        emit(
            on_event,
            EventPhase.CONTEXT,
            EventStatus.SUCCEEDED,
            f"Loaded context from {context.file_path}" if context else "No codebase context file found",
        )
        relevant_files = selector.select(
            state["bug_description"],
            hint_files=state["hint_files"],
            codebase_context=context,
            on_event=on_event,
        )
        return {"codebase_context": context, "relevant_files": relevant_files}

    return context_node


def make_generate_node(
    generator: FixGenerator,
    on_event: EventCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that starts a new attempt by generating a fix.

    The closure:
    1. Refuses to start when cancellation was requested -> {"cancelled": True}
    2. Calls generator.generate(bug, files, context, prior_attempt)
    3. Returns {"attempt_number": n, "current_fix": fix, ...} with per-attempt fields reset

    On error: records a FixAttempt (phase generate, no verification) and
    leaves prior_attempt untouched; the workspace is not modified.
    """

    def generate_node(state: FixVerifyState) -> dict:
        if cancel_event is not None and cancel_event.is_set():
            emit(on_event, EventPhase.PIPELINE, EventStatus.INFO,
                 "Cancellation requested; no further attempts will start")
            return {"cancelled": True}

        attempt = state["attempt_number"] + 1
        reset = {
            "attempt_number": attempt,
            "current_fix": None,
            "backup": None,
            "verification": None,
            "attempt_error": None,
        }
        emit(on_event, EventPhase.FIX, EventStatus.STARTED,
             f"Generating fix (attempt {attempt}/{state['max_attempts']})", attempt)
        try:
            fix = generator.generate(
                state["bug_description"],
                state["relevant_files"],
                state["codebase_context"],
                state["prior_attempt"],
            )
        except AgentError as exc:
            emit(on_event, EventPhase.FIX, EventStatus.FAILED, str(exc), attempt)
            record = FixAttempt(
                attempt_number=attempt,
                fix=failed_generation_fix(exc),
                verification=None,
                error=f"{type(exc).__name__}: {exc}",
                phase=AttemptPhase.GENERATE,
            )
            return {
                **reset,
                "attempts": [record],
                "errors": [f"generate_node attempt {attempt}: {exc}"],
            }

        emit(on_event, EventPhase.FIX, EventStatus.SUCCEEDED,
             f"Fix generated: {fix.approach}", attempt)
        return {**reset, "current_fix": fix}

    return generate_node


def make_apply_node(
    applier: FixApplier,
    rollback_executor: RollbackExecutor,
    on_event: EventCallback | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that writes the current fix to disk.

    The closure:
    1. Calls applier.apply(fix) -> BackupSet
    2. Returns {"backup": backup}

    On ApplyError: rolls back the partial backup, records a FixAttempt (phase
    apply) and returns {"backup": None}. A failed rollback halts the pipeline.
    """

    def apply_node(state: FixVerifyState) -> dict:
        attempt = state["attempt_number"]
        fix = state["current_fix"]
        emit(on_event, EventPhase.APPLY, EventStatus.STARTED,
             f"Applying {len(fix.changes)} change(s)", attempt)
        try:
            backup = applier.apply(fix)
        except ApplyError as exc:
            emit(on_event, EventPhase.APPLY, EventStatus.FAILED, str(exc), attempt)
            update: dict = {"backup": None}
            rolled_back = False
            try:
                rollback_executor.rollback(exc.backup)
                rolled_back = True
                emit(on_event, EventPhase.ROLLBACK, EventStatus.SUCCEEDED,
                     "Partial changes rolled back", attempt)
            except RollbackFailure as failure:
                logger.critical("Rollback after failed apply left the workspace modified: %s", failure)
                emit(on_event, EventPhase.ROLLBACK, EventStatus.FAILED, str(failure), attempt)
                update.update({"halted": True, "fatal_error": failure})

            record = FixAttempt(
                attempt_number=attempt,
                fix=fix,
                verification=None,
                error=f"{type(exc).__name__}: {exc}",
                phase=AttemptPhase.APPLY,
                rolled_back=rolled_back,
            )
            return {
                **update,
                "attempts": [record],
                "errors": [f"apply_node attempt {attempt}: {exc}"],
            }

        emit(on_event, EventPhase.APPLY, EventStatus.SUCCEEDED,
             ", ".join(changed_paths(fix)), attempt)
        return {"backup": backup}

    return apply_node


def make_verify_node(
    loop: TestVerificationLoop,
    on_event: EventCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that runs the self-healing test loop.

    The closure:
    1. Calls loop.verify(bug, changed_files, ...) -> VerificationResult
    2. Returns {"verification": result}

    On infrastructure error (service or process failure, not a failing test):
    returns {"verification": None, "attempt_error": text}.
    """

    def verify_node(state: FixVerifyState) -> dict:
        attempt = state["attempt_number"]
        try:
            verification = loop.verify(
                state["bug_description"],
                changed_paths(state["current_fix"]),
                test_context=state["test_context"],
                start_server=state["start_server"],
                on_event=on_event,
                attempt=attempt,
                cancel_event=cancel_event,
            )
            return {"verification": verification, "attempt_error": None}
        except Exception as exc:
            # Anything but a failing test is an infrastructure error for this attempt
            logger.warning("verify_node failed on attempt %d: %s", attempt, exc)
            error = f"{type(exc).__name__}: {exc}"
            emit(on_event, EventPhase.TEST_RUN, EventStatus.FAILED,
                 f"Verification infrastructure error: {error}", attempt)
            return {
                "verification": None,
                "attempt_error": error,
                "errors": [f"verify_node attempt {attempt}: {error}"],
            }

    return verify_node


def make_accept_node(
    on_event: EventCallback | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that records the passing attempt and ends the run."""

    def accept_node(state: FixVerifyState) -> dict:
        attempt = state["attempt_number"]
        record = FixAttempt(
            attempt_number=attempt,
            fix=state["current_fix"],
            verification=state["verification"],
            phase=AttemptPhase.VERIFY,
        )
        emit(on_event, EventPhase.PIPELINE, EventStatus.SUCCEEDED,
             f"Fix verified on attempt {attempt}", attempt)
        return {"attempts": [record], "succeeded": True, "backup": None}

    return accept_node


def make_rollback_node(
    rollback_executor: RollbackExecutor,
    on_event: EventCallback | None = None,
) -> Callable[[FixVerifyState], dict]:
    """Factory: returns a node closure that undoes a failed attempt.

    The closure:
    1. Calls rollback_executor.rollback(state["backup"])
    2. Records the FixAttempt with its verification or infrastructure error
    3. Feeds the failure forward as prior_attempt

    On RollbackFailure: records the attempt, sets halted/fatal_error so no
    further attempt runs.
    """

    def rollback_node(state: FixVerifyState) -> dict:
        attempt = state["attempt_number"]
        fix = state["current_fix"]
        verification = state["verification"]
        error = state["attempt_error"]
        emit(on_event, EventPhase.ROLLBACK, EventStatus.STARTED,
             f"Verification failed (attempt {attempt}/{state['max_attempts']}). Rolling back", attempt)

        try:
            rollback_executor.rollback(state["backup"])
        except RollbackFailure as failure:
            logger.critical("Rollback failed; halting pipeline: %s", failure)
            emit(on_event, EventPhase.ROLLBACK, EventStatus.FAILED, str(failure), attempt)
            record = FixAttempt(
                attempt_number=attempt,
                fix=fix,
                verification=verification,
                error=error or str(failure),
                phase=AttemptPhase.VERIFY,
                rolled_back=False,
            )
            return {
                "attempts": [record],
                "backup": None,
                "halted": True,
                "fatal_error": failure,
                "errors": [f"rollback_node attempt {attempt}: {failure}"],
            }

        emit(on_event, EventPhase.ROLLBACK, EventStatus.SUCCEEDED, "Workspace restored", attempt)
        record = FixAttempt(
            attempt_number=attempt,
            fix=fix,
            verification=verification,
            error=error,
            phase=AttemptPhase.VERIFY,
            rolled_back=True,
        )
        prior = PriorAttempt(fix=fix, verification_error=build_failure_context(verification, error))
        return {"attempts": [record], "backup": None, "prior_attempt": prior}

    return rollback_node


def build_graph(
    config: AgentConfig,
    selector: RelevantFileSelector,
    generator: FixGenerator,
    applier: FixApplier,
    rollback_executor: RollbackExecutor,
    loop: TestVerificationLoop,
    on_event: EventCallback | None = None,
    cancel_event: threading.Event | None = None,
):
    """Build and compile the orchestrator StateGraph.

    Edge topology:
      START -> context_node -> generate_node
      generate_node -> conditional(route_after_generate) -> {apply_node, generate_node, END}
      apply_node -> conditional(route_after_apply) -> {verify_node, generate_node, END}
      verify_node -> conditional(route_after_verify) -> {accept_node, rollback_node}
      rollback_node -> conditional(next_attempt_or_end) -> {generate_node, END}
      accept_node -> END

    No checkpointer (in-memory state only).

    Returns:
        CompiledStateGraph ready to invoke.

    Raises:
        GraphBuildError: If graph construction fails.
    """
    try:
        graph = StateGraph(FixVerifyState)

        graph.add_node("context_node", make_context_node(config, selector, on_event))
        graph.add_node("generate_node", make_generate_node(generator, on_event, cancel_event))
        graph.add_node("apply_node", make_apply_node(applier, rollback_executor, on_event))
        graph.add_node("verify_node", make_verify_node(loop, on_event, cancel_event))
        graph.add_node("accept_node", make_accept_node(on_event))
        graph.add_node("rollback_node", make_rollback_node(rollback_executor, on_event))

        graph.add_edge(START, "context_node")
        graph.add_edge("context_node", "generate_node")

        graph.add_conditional_edges(
            "generate_node",
            route_after_generate,
            {
                "apply": "apply_node",
                "continue": "generate_node",
                "done": END,
            },
        )
        graph.add_conditional_edges(
            "apply_node",
            route_after_apply,
            {
                "verify": "verify_node",
                "continue": "generate_node",
                "done": END,
            },
        )
        graph.add_conditional_edges(
            "verify_node",
            route_after_verify,
            {
                "accept": "accept_node",
                "rollback": "rollback_node",
            },
        )
        graph.add_conditional_edges(
            "rollback_node",
            next_attempt_or_end,
            {
                "continue": "generate_node",
                "done": END,
            },
        )
        graph.add_edge("accept_node", END)

        return graph.compile()

    except Exception as exc:
        raise GraphBuildError(f"Failed to build orchestrator graph: {exc}") from exc
