"""Agent components for the fix verifier."""

from fix_verifier.agents.exceptions import (
    AgentError,
    ApplyError,
    FileSelectionError,
    GenerationError,
    ProviderError,
    RollbackFailure,
    ServerStartupError,
    ServerStartupTimeoutError,
    TestExecutionError,
    TestGenerationError,
    VisualAnalysisError,
)
from fix_verifier.agents.file_selector import RelevantFileSelector
from fix_verifier.agents.fix_applier import FixApplier, RollbackExecutor
from fix_verifier.agents.fix_generator import FixGenerator
from fix_verifier.agents.test_executor import TestExecutor
from fix_verifier.agents.test_generator import TestGenerator
from fix_verifier.agents.verification_loop import TestVerificationLoop, VerificationPhase
from fix_verifier.agents.visual_analyzer import VisualAnalyzer

__all__ = [
    "AgentError",
    "ApplyError",
    "FileSelectionError",
    "FixApplier",
    "FixGenerator",
    "GenerationError",
    "ProviderError",
    "RelevantFileSelector",
    "RollbackExecutor",
    "RollbackFailure",
    "ServerStartupError",
    "ServerStartupTimeoutError",
    "TestExecutionError",
    "TestExecutor",
    "TestGenerationError",
    "TestGenerator",
    "TestVerificationLoop",
    "VerificationPhase",
    "VisualAnalysisError",
    "VisualAnalyzer",
]
