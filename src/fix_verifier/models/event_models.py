"""Structured progress events emitted by pipeline components."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EventPhase(str, Enum):
    CONTEXT = "context"
    FILES = "files"
    FIX = "fix"
    APPLY = "apply"
    TEST_GENERATION = "test_generation"
    TEST_RUN = "test_run"
    SELF_HEAL = "self_heal"
    VISUAL = "visual"
    ROLLBACK = "rollback"
    PIPELINE = "pipeline"


class EventStatus(str, Enum):
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INFO = "info"


class PipelineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: EventPhase
    status: EventStatus
    detail: str = ""
    attempt: int | None = None
    emitted_at: datetime = Field(default_factory=datetime.now)
