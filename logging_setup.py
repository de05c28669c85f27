"""
Core logging infrastructure for the transcript cascade.

Provides minimal JSON logging with task-safe context management,
rate limiting, and third-party library noise suppression.
"""

import json
import logging
import threading
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Set
from collections import defaultdict


# Per-task request context. A ContextVar (not thread-local) so that concurrent
# asyncio tasks racing mirrors keep their own video_id.
_request_ctx: ContextVar[Optional[Dict[str, str]]] = ContextVar("request_ctx", default=None)


def set_request_ctx(request_id: str = None, video_id: str = None):
    """
    Set context for request correlation.

    Args:
        request_id: Unique identifier for one fetch_transcript call
        video_id: YouTube video ID being processed
    """
    context = dict(_request_ctx.get() or {})

    if request_id is not None:
        context['request_id'] = request_id
    if video_id is not None:
        context['video_id'] = video_id

    _request_ctx.set(context)


def clear_request_ctx():
    """Clear the current request context."""
    _request_ctx.set({})


def get_request_ctx() -> Dict[str, str]:
    """Get a copy of the current request context."""
    return dict(_request_ctx.get() or {})


class JsonFormatter(logging.Formatter):
    """
    JSON formatter with standardized field order and context injection.

    Produces single-line JSON with stable schema:
    ts, lvl, request_id, video_id, stage, event, outcome, dur_ms, detail
    """

    ORDERED_FIELDS = ('stage', 'event', 'outcome', 'dur_ms', 'detail')
    OPTIONAL_FIELDS = ('strategy', 'profile', 'instance', 'fail_class', 'use_proxy', 'cookie_source')

    _STANDARD_ATTRS = {
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'exc_info',
        'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as single-line JSON."""
        try:
            # Millisecond precision, UTC
            dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
            timestamp = dt.strftime('%Y-%m-%dT%H:%M:%S') + f'.{int(dt.microsecond / 1000):03d}Z'

            log_data = {
                'ts': timestamp,
                'lvl': record.levelname
            }

            context = get_request_ctx()
            if 'request_id' in context:
                log_data['request_id'] = context['request_id']
            if 'video_id' in context:
                log_data['video_id'] = context['video_id']

            for field in self.ORDERED_FIELDS + self.OPTIONAL_FIELDS:
                value = getattr(record, field, None)
                if value is not None:
                    log_data[field] = value

            # Anything else passed via extra=
            handled = set(log_data) | self._STANDARD_ATTRS
            for attr_name, attr_value in record.__dict__.items():
                if attr_name.startswith('_') or attr_name in handled:
                    continue
                if attr_value is not None:
                    log_data[attr_name] = attr_value

            if 'detail' not in log_data and record.getMessage():
                log_data['detail'] = record.getMessage()

            if record.exc_info:
                log_data['exc'] = self.formatException(record.exc_info)

            return json.dumps(log_data, separators=(',', ':'), ensure_ascii=False, default=str)

        except Exception:
            # Fallback to basic formatting on any error
            return json.dumps({
                'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'lvl': record.levelname,
                'detail': str(record.msg),
            })


class RateLimitFilter(logging.Filter):
    """
    Rate limiting filter to prevent log spam.

    Limits messages to 5 per key per 60-second sliding window.
    Emits a suppression marker when limits are exceeded.
    """

    def __init__(self, per_key: int = 5, window_sec: int = 60):
        super().__init__()
        self.per_key = per_key
        self.window_sec = window_sec
        self.counts: Dict[str, list] = defaultdict(list)
        self.suppressed: Set[str] = set()
        self._lock = threading.Lock()

    def _get_message_key(self, record: logging.LogRecord) -> str:
        # Structured events log an empty message, so key on their labels too
        labels = ':'.join(
            str(getattr(record, name, '') or '')
            for name in ('event', 'stage', 'strategy', 'instance', 'profile')
        )
        message = record.getMessage()[:100]
        return f"{record.levelname}:{labels}:{message}"

    def _cleanup_old_entries(self, key: str, now: float):
        cutoff = now - self.window_sec
        self.counts[key] = [ts for ts in self.counts[key] if ts > cutoff]

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            key = self._get_message_key(record)
            now = time.time()

            with self._lock:
                self._cleanup_old_entries(key, now)

                if len(self.counts[key]) < self.per_key:
                    self.counts[key].append(now)
                    self.suppressed.discard(key)
                    return True

                if key not in self.suppressed:
                    self.suppressed.add(key)
                    record.msg = f"{record.getMessage()} [suppressed]"
                    record.args = ()
                    return True

                return False

        except Exception:
            return True


def configure_logging(log_level: str = "INFO", use_json: bool = True) -> logging.Logger:
    """
    Configure application logging with JSON formatting and noise suppression.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Whether to use JSON formatting (True) or basic formatting (False)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    handler = logging.StreamHandler()

    if use_json:
        formatter = JsonFormatter()
        handler.addFilter(RateLimitFilter())
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    _suppress_library_noise()

    return root_logger


def _suppress_library_noise():
    """Suppress verbose logging from third-party libraries."""
    library_levels = {
        'urllib3': logging.WARNING,
        'asyncio': logging.WARNING,
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
        'youtube_transcript_api': logging.WARNING,
    }

    for library, level in library_levels.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
