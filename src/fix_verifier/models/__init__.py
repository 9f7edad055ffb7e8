"""Data models for the fix verifier."""

from fix_verifier.models.event_models import EventPhase, EventStatus, PipelineEvent
from fix_verifier.models.fix_models import (
    BackupEntry,
    BackupSet,
    CodebaseContext,
    FileChange,
    FileSource,
    FixResult,
    PriorAttempt,
    RelevantFile,
)
from fix_verifier.models.proposal_models import (
    FixProposal,
    ParsedProposal,
    ProposalOk,
    ProposalParseError,
    ProposedChange,
)
from fix_verifier.models.report_models import (
    AttemptPhase,
    FixAndVerifyResult,
    FixAttempt,
    TestGenerationInput,
    TestGenerationResult,
    TestResult,
    VerificationResult,
    VisualAnalysisResult,
    VisualReport,
)

__all__ = [
    "AttemptPhase",
    "BackupEntry",
    "BackupSet",
    "CodebaseContext",
    "EventPhase",
    "EventStatus",
    "FileChange",
    "FileSource",
    "FixAndVerifyResult",
    "FixAttempt",
    "FixProposal",
    "FixResult",
    "ParsedProposal",
    "PipelineEvent",
    "PriorAttempt",
    "ProposalOk",
    "ProposalParseError",
    "ProposedChange",
    "RelevantFile",
    "TestGenerationInput",
    "TestGenerationResult",
    "TestResult",
    "VerificationResult",
    "VisualAnalysisResult",
    "VisualReport",
]
