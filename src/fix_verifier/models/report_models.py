"""Report models for test runs, verification and fix attempts."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fix_verifier.models.fix_models import CodebaseContext, FixResult, RelevantFile

Confidence = Literal["high", "medium", "low"]


class TestResult(BaseModel):
    """Outcome of one execution of the browser test."""

    model_config = ConfigDict(frozen=False)

    passed: bool
    exit_code: int | None = None
    videos: list[str] = Field(default_factory=list)
    screenshots: list[str] = Field(default_factory=list)
    traces: list[str] = Field(default_factory=list)
    error_message: str | None = None
    duration_seconds: float = 0.0
    stdout: str = ""
    stderr: str = ""


class TestGenerationInput(BaseModel):
    """What the test-proposal service is told about the fix under test."""

    model_config = ConfigDict(frozen=True)

    bug_description: str
    changed_files: list[str] = Field(default_factory=list)
    test_context: str | None = None
    base_url: str | None = None


class TestGenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_file_path: str
    test_code: str
    test_name: str


class VisualAnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=False)

    screenshot: str
    assessment: str
    issues: list[str] = Field(default_factory=list)
    confidence: Confidence = "low"


class VisualReport(BaseModel):
    """Advisory judgement over the screenshots of a passing run."""

    model_config = ConfigDict(frozen=False)

    bug_description: str
    overall_assessment: str
    screenshots: list[VisualAnalysisResult] = Field(default_factory=list)
    passed: bool = False


class VerificationResult(BaseModel):
    """Outcome of the self-healing test loop.

    ``overall_passed`` mirrors ``test_result.passed``; the visual report never
    changes it.
    """

    model_config = ConfigDict(frozen=False)

    test_generation: TestGenerationResult
    test_result: TestResult
    visual_report: VisualReport | None = None
    retry_count: int = 0
    overall_passed: bool = False


class AttemptPhase(str, Enum):
    """Phase of the outer loop in which an attempt stopped."""

    GENERATE = "generate"
    APPLY = "apply"
    VERIFY = "verify"


class FixAttempt(BaseModel):
    model_config = ConfigDict(frozen=False)

    attempt_number: int
    fix: FixResult
    verification: VerificationResult | None = None
    error: str | None = None
    phase: AttemptPhase = AttemptPhase.VERIFY
    rolled_back: bool = False


class FixAndVerifyResult(BaseModel):
    model_config = ConfigDict(frozen=False)

    succeeded: bool
    attempts: list[FixAttempt] = Field(default_factory=list)
    final_fix: FixResult | None = None
    final_verification: VerificationResult | None = None
    relevant_files: list[RelevantFile] = Field(default_factory=list)
    codebase_context: CodebaseContext | None = None
    cancelled: bool = False
    finished_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _final_fields_match_outcome(self) -> "FixAndVerifyResult":
        has_final = self.final_fix is not None and self.final_verification is not None
        if self.succeeded and not has_final:
            raise ValueError("a successful run must carry its final fix and verification")
        if not self.succeeded and (
            self.final_fix is not None or self.final_verification is not None
        ):
            raise ValueError("a failed run cannot carry a final fix or verification")
        return self
