"""Structured progress event helpers."""

import logging
from typing import Callable

from fix_verifier.models import EventPhase, EventStatus, PipelineEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[PipelineEvent], None]


def emit(
    on_event: EventCallback | None,
    phase: EventPhase,
    status: EventStatus,
    detail: str = "",
    attempt: int | None = None,
) -> PipelineEvent:
    """Log a progress event and hand it to ``on_event`` when one is registered."""
    event = PipelineEvent(phase=phase, status=status, detail=detail, attempt=attempt)
    level = logging.WARNING if status == EventStatus.FAILED else logging.INFO
    if attempt is None:
        logger.log(level, "[%s:%s] %s", phase.value, status.value, detail)
    else:
        logger.log(
            level, "[%s:%s] attempt %d: %s", phase.value, status.value, attempt, detail
        )
    if on_event is not None:
        on_event(event)
    return event
