"""LangGraph orchestrator package for the fix-and-verify pipeline."""

from fix_verifier.orchestrator.exceptions import (
    GraphBuildError,
    OrchestratorError,
    PipelineHaltedError,
)
from fix_verifier.orchestrator.graph import build_graph
from fix_verifier.orchestrator.pipeline import FixAndVerifyOrchestrator
from fix_verifier.orchestrator.state import FixVerifyState, make_initial_state

__all__ = [
    "FixAndVerifyOrchestrator",
    "FixVerifyState",
    "GraphBuildError",
    "OrchestratorError",
    "PipelineHaltedError",
    "build_graph",
    "make_initial_state",
]
