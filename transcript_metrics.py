import logging
import statistics
from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

_success = Counter()   # keys: strategy names
_fail = Counter()      # keys: strategy names, plus 'none' when the cascade is exhausted
_fail_classes = Counter()  # keys: fail classes
_lock = Lock()

_stage_durations = defaultdict(list)  # strategy -> list of duration_ms
_stage_metrics = deque(maxlen=1000)   # Recent attempts for detailed analysis
_successful_attempts = {}  # video_id -> successful strategy name

MAX_DURATIONS_PER_STAGE = 1000


@dataclass
class StageMetrics:
    """Structured metrics for one strategy attempt."""
    timestamp: str
    video_id: str
    stage: str
    duration_ms: int
    success: bool
    proxy_used: bool = False
    detail: Optional[str] = None
    fail_class: Optional[str] = None


def inc_success(source: str):
    with _lock:
        _success[source] += 1


def inc_fail(stage: str, fail_class: Optional[str] = None):
    with _lock:
        _fail[stage] += 1
        if fail_class:
            _fail_classes[fail_class] += 1


def record_stage_metrics(
    video_id: str,
    stage: str,
    duration_ms: int,
    success: bool,
    proxy_used: bool = False,
    detail: Optional[str] = None,
    fail_class: Optional[str] = None,
) -> None:
    """Record one strategy attempt and emit a key=value summary line."""

    with _lock:
        durations = _stage_durations[stage]
        durations.append(duration_ms)
        if len(durations) > MAX_DURATIONS_PER_STAGE:
            del durations[:-MAX_DURATIONS_PER_STAGE]

        _stage_metrics.append(StageMetrics(
            timestamp=datetime.now(timezone.utc).isoformat(),
            video_id=video_id,
            stage=stage,
            duration_ms=duration_ms,
            success=success,
            proxy_used=proxy_used,
            detail=detail,
            fail_class=fail_class,
        ))

        if success:
            _successful_attempts.pop(video_id, None)
            _successful_attempts[video_id] = stage
            if len(_successful_attempts) > MAX_DURATIONS_PER_STAGE:
                del _successful_attempts[next(iter(_successful_attempts))]

    log_data = {
        "video_id": video_id,
        "stage": stage,
        "duration_ms": duration_ms,
        "success": success,
        "proxy_used": proxy_used,
    }
    if detail:
        log_data["detail"] = detail
    if fail_class:
        log_data["fail_class"] = fail_class

    log_fields = " ".join(f"{k}={v}" for k, v in log_data.items())

    if success:
        logging.info(f"stage_success {log_fields}")
    else:
        logging.warning(f"stage_failure {log_fields}")


def _percentiles(durations: List[int]) -> Dict[str, float]:
    if not durations:
        return {"p50": 0.0, "p95": 0.0, "count": 0}
    p50 = statistics.median(durations)
    p95 = statistics.quantiles(durations, n=20)[18] if len(durations) >= 20 else max(durations)
    return {"p50": round(p50, 2), "p95": round(p95, 2), "count": len(durations)}


def get_metrics_snapshot() -> Dict[str, Any]:
    """Counters, percentiles, success rates and the most recent attempts."""

    with _lock:
        durations = {stage: list(values) for stage, values in _stage_durations.items()}
        recent = list(_stage_metrics)
        success = dict(_success)
        fail = dict(_fail)
        fail_classes = dict(_fail_classes)
        methods = dict(_successful_attempts)

    success_rates = {}
    for stage in durations:
        attempts = [m for m in recent if m.stage == stage]
        if attempts:
            success_rates[stage] = round(100.0 * sum(1 for m in attempts if m.success) / len(attempts), 1)

    return {
        "success_by_strategy": success,
        "fail_by_strategy": fail,
        "fail_by_class": fail_classes,
        "total_success": sum(success.values()),
        "total_fail": sum(fail.values()),
        "stage_percentiles": {stage: _percentiles(values) for stage, values in durations.items()},
        "stage_success_rates": success_rates,
        "recent_stage_metrics": [
            {
                "timestamp": m.timestamp,
                "video_id": m.video_id,
                "stage": m.stage,
                "duration_ms": m.duration_ms,
                "success": m.success,
                "proxy_used": m.proxy_used,
                "detail": m.detail,
                "fail_class": m.fail_class,
            }
            for m in recent[-50:]
        ],
        "successful_methods": methods,
    }


def reset_metrics() -> None:
    """Reset all metrics (for testing purposes)."""
    with _lock:
        _success.clear()
        _fail.clear()
        _fail_classes.clear()
        _stage_durations.clear()
        _stage_metrics.clear()
        _successful_attempts.clear()
