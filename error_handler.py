#!/usr/bin/env python3
"""
Error taxonomy and failure reporting for the transcript cascade.

Per-strategy failures are soft: they are classified, logged and folded into
the next attempt. Only the aggregated TranscriptUnavailableError reaches the
caller, and its message is bounded and safe to show in a UI banner.
"""

import asyncio
import json
import re
import subprocess
from typing import List, Optional, Sequence
from urllib.parse import urlencode, urlparse, urlunparse, parse_qs

import httpx

from strategy_result import AttemptFailed, FailClass, StrategyFailure

DEFAULT_DIGEST_MAX_CHARS = 600
DIGEST_SEPARATOR = " | "
MIN_ENTRY_MESSAGE_CHARS = 12
ATTEMPT_MESSAGE_MAX_CHARS = 120

BOT_CHECK_PATTERNS = [
    "sign in to confirm you're not a bot",
    "sign in to confirm youre not a bot",
    "sign in to confirm you’re not a bot",
    "confirm you're not a bot",
    "not a bot",
    "unusual traffic",
    "automated requests",
    "captcha",
    "bot_detection",
]

HTML_INDICATORS = [
    "<!doctype html",
    "<html",
    "<head>",
    "<body",
]

SENSITIVE_PARAMS = {'key', 'token', 'auth', 'session', 'sig', 'signature', 'lsig', 'pot', 'cookie'}

URL_RE = re.compile(r'https?://[^\s|"\'\]]+')
PROXY_CREDENTIALS_RE = re.compile(r'(\w+://)[^/\s:@]+:[^/\s@]+@')

BOT_HEADLINE = (
    "Failed to fetch transcript: YouTube is blocking requests from this server. "
    "Configure YOUTUBE_COOKIES, YOUTUBE_PROXY_URL or TRANSCRIPT_PROXY_URL and try again."
)
GENERIC_HEADLINE = "Failed to fetch transcript: no method could retrieve captions for this video."


class InvalidVideoIdError(ValueError):
    """The caller passed something that is not an 11-character video identifier."""


class TranscriptUnavailableError(RuntimeError):
    """Every strategy in the cascade failed."""

    def __init__(self, failures: Sequence[StrategyFailure], max_chars: int = DEFAULT_DIGEST_MAX_CHARS):
        self.failures = list(failures)
        self.bot_detected = any(f.is_bot_detection for f in self.failures)
        self.digest = build_failure_digest(self.failures, max_chars)
        headline = BOT_HEADLINE if self.bot_detected else GENERIC_HEADLINE
        super().__init__(f"{headline} Debug: [{self.digest}]")

    @property
    def strategies_tried(self) -> List[str]:
        return [f.strategy for f in self.failures]


def detect_bot_check(text: Optional[str]) -> bool:
    """Detect YouTube's bot-check / blocking markers in HTML, stderr or error text."""
    if not text:
        return False
    lowered = text.lower()
    return any(pattern in lowered for pattern in BOT_CHECK_PATTERNS)


def looks_like_html(content: Optional[str]) -> bool:
    """Detect if a caption response is actually an HTML page (consent wall, block page)."""
    if not content:
        return False
    head = content.lstrip()[:512].lower()
    return any(indicator in head for indicator in HTML_INDICATORS)


def mask_url_for_logging(url: str) -> str:
    """Mask sensitive query parameters in URLs for logging."""
    try:
        parsed = urlparse(url)
        netloc = parsed.netloc
        if '@' in netloc:
            netloc = '***:***@' + netloc.split('@', 1)[1]
        if not parsed.query:
            return urlunparse(parsed._replace(netloc=netloc))
        params = parse_qs(parsed.query, keep_blank_values=True)
        masked_params = {
            key: ['***MASKED***'] * len(values) if key.lower() in SENSITIVE_PARAMS else values
            for key, values in params.items()
        }
        masked_query = urlencode(masked_params, doseq=True)
        return urlunparse(parsed._replace(netloc=netloc, query=masked_query))
    except Exception:
        return f"{url.split('?')[0]}?***MASKED_QUERY***" if '?' in url else url


def _short_url(match: re.Match) -> str:
    url = match.group(0)
    parsed = urlparse(url)
    host = parsed.hostname or ''
    return f"{parsed.scheme}://{host}{parsed.path}" + ("?..." if parsed.query else "")


def sanitize_message(message: str) -> str:
    """Drop proxy credentials and signed query strings from a display message."""
    message = PROXY_CREDENTIALS_RE.sub(r'\1***:***@', message)
    return URL_RE.sub(_short_url, message)


def truncate(text: str, limit: int) -> str:
    text = ' '.join(text.split())
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[:limit - 3].rstrip() + "..."


def classify_exception(exc: BaseException) -> str:
    """Map an exception raised inside a strategy attempt to a FailClass."""
    if isinstance(exc, AttemptFailed):
        return exc.fail_class
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, subprocess.TimeoutExpired)):
        return FailClass.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return FailClass.HTTP_ERROR
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return FailClass.NETWORK
    if isinstance(exc, httpx.InvalidURL):
        return FailClass.CONFIG_ERROR
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        return FailClass.INVALID_RESPONSE
    if isinstance(exc, FileNotFoundError):
        return FailClass.NOT_INSTALLED
    if detect_bot_check(str(exc)):
        return FailClass.BOT_DETECTION
    return FailClass.UNEXPECTED


def describe_exception(exc: BaseException) -> str:
    """Short, human-readable description of an attempt failure."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, subprocess.TimeoutExpired)):
        return "timeout"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, json.JSONDecodeError):
        return "invalid JSON"
    message = str(exc)
    return message if message else type(exc).__name__


def combine_fail_classes(fail_classes: Sequence[str]) -> str:
    """
    Pick the strategy-level class from several attempt classes.

    Bot detection wins because it changes the advice given to the caller;
    otherwise the most frequent class is reported.
    """
    if not fail_classes:
        return FailClass.UNEXPECTED
    if FailClass.BOT_DETECTION in fail_classes:
        return FailClass.BOT_DETECTION
    return max(set(fail_classes), key=list(fail_classes).count)


def join_attempt_errors(errors: Sequence[str], limit: int = ATTEMPT_MESSAGE_MAX_CHARS) -> str:
    return DIGEST_SEPARATOR.join(truncate(error, limit) for error in errors)


def build_failure_digest(failures: Sequence[StrategyFailure], max_chars: int = DEFAULT_DIGEST_MAX_CHARS) -> str:
    """
    Build the strategy-labelled digest embedded in the final error.

    Each strategy gets an equal share of max_chars, but never so little that
    its label would be cut: every strategy name always appears. The bound is
    only exact when max_chars leaves every entry room for its label plus
    MIN_ENTRY_MESSAGE_CHARS; ReliabilityConfig never goes below that floor.
    """
    if not failures:
        return ""

    separators = len(DIGEST_SEPARATOR) * (len(failures) - 1)
    share = max(0, max_chars - separators) // len(failures)

    entries = []
    for failure in failures:
        label = f"{failure.strategy}: "
        room = max(share - len(label), MIN_ENTRY_MESSAGE_CHARS)
        entries.append(label + truncate(sanitize_message(failure.message), room))
    return DIGEST_SEPARATOR.join(entries)
