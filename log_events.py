"""
Event helper functions for structured JSON logging.

This module provides consistent event emission and stage timing utilities
for the transcript cascade.
"""

import logging
import time
from typing import Optional

# Get the main application logger
logger = logging.getLogger()


def evt(event: str, level: int = logging.INFO, **fields) -> None:
    """
    Emit a structured event with consistent field naming.

    Args:
        event: The event type/name
        level: Log level, INFO unless the event marks a problem
        **fields: Additional fields to include in the event

    Example:
        evt("strategy_start", strategy="innertube", video_id="abc123")
        evt("stage_result", stage="piped", outcome="success", dur_ms=1250)
    """
    event_data = {"event": event}
    event_data.update(fields)

    logger.log(level, "", extra=event_data)


class StageTimer:
    """
    Context manager for automatic stage timing with structured logging.

    Emits stage_start on entry and stage_result on exit with duration.
    Strategies report failures as values rather than exceptions, so the
    outcome can also be set explicitly before the block ends.

    Example:
        with StageTimer("innertube", profile="ANDROID") as timer:
            result = await attempt()
            timer.outcome = "success" if result.ok else "failure"
    """

    def __init__(self, stage: str, **context_fields):
        self.stage = stage
        self.context_fields = context_fields
        self.start_time: Optional[float] = None
        self.outcome: Optional[str] = None
        self.detail: Optional[str] = None

    @property
    def elapsed_ms(self) -> int:
        if self.start_time is None:
            return 0
        return int((time.monotonic() - self.start_time) * 1000)

    def __enter__(self):
        self.start_time = time.monotonic()
        evt("stage_start", stage=self.stage, **self.context_fields)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is not None:
            outcome = "error"
            detail = f"{exc_type.__name__}: {str(exc_value)}"
        else:
            outcome = self.outcome or "success"
            detail = self.detail

        event_fields = {
            "stage": self.stage,
            "outcome": outcome,
            "dur_ms": self.elapsed_ms,
            **self.context_fields
        }

        if detail is not None:
            event_fields["detail"] = detail

        evt("stage_result", **event_fields)

        # Don't suppress the exception - let it propagate
        return False


def strategy_outcome(strategy: str, outcome: str, dur_ms: int, **fields) -> None:
    """
    Emit the per-strategy outcome event consumed by dashboards.

    Args:
        strategy: Strategy name (innertube, piped, ytdlp, ...)
        outcome: success or failure
        dur_ms: Strategy duration in milliseconds
        **fields: fail_class, detail, length...
    """
    level = logging.INFO if outcome == "success" else logging.WARNING
    evt("transcript_method_result", level=level, strategy=strategy, outcome=outcome, dur_ms=dur_ms, **fields)
