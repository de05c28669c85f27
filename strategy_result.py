"""
Result types shared by every transcript strategy.

Strategies return a StrategyResult (success or failure) instead of raising,
so the cascade can branch on values. Inside a strategy, individual attempts
(one client profile, one mirror instance, one yt-dlp client mode) signal
failure by raising AttemptFailed, which the strategy folds into its result.
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional


class FailClass:
    """Failure categories used in logs, metrics and the aggregated error."""

    NO_CAPTIONS = "no_captions"
    PARSE_EMPTY = "parse_empty"
    BOT_DETECTION = "bot_detection"
    UPSTREAM_STATUS = "upstream_status"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    NETWORK = "network_error"
    INVALID_RESPONSE = "invalid_response"
    NOT_INSTALLED = "not_installed"
    CONFIG_ERROR = "config_error"
    UNEXPECTED = "unexpected"

    # Logged at ERROR level; the cascade still moves on.
    FATAL = frozenset({NOT_INSTALLED, CONFIG_ERROR, UNEXPECTED})


class AttemptFailed(Exception):
    """One attempt inside a strategy failed; the strategy moves to its next attempt."""

    def __init__(self, message: str, fail_class: str = FailClass.INVALID_RESPONSE):
        super().__init__(message)
        self.fail_class = fail_class


@dataclass(frozen=True)
class StrategyFailure:
    """A (strategy, message) pair recorded by the cascade for the final error."""

    strategy: str
    message: str
    fail_class: str = FailClass.UNEXPECTED

    @property
    def is_bot_detection(self) -> bool:
        return self.fail_class == FailClass.BOT_DETECTION


@dataclass(frozen=True)
class StrategyResult:
    strategy: str
    transcript: Optional[str] = None
    fail_class: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    # Which profile, instance or client mode produced the result
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.fail_class is None and bool(self.transcript)

    @classmethod
    def success(cls, strategy: str, transcript: str, detail: Optional[str] = None) -> 'StrategyResult':
        return cls(strategy=strategy, transcript=transcript, detail=detail)

    @classmethod
    def failure(cls, strategy: str, fail_class: str, error: str) -> 'StrategyResult':
        return cls(strategy=strategy, fail_class=fail_class, error=error)

    def with_duration(self, duration_ms: int) -> 'StrategyResult':
        return dataclasses.replace(self, duration_ms=duration_ms)

    def to_failure(self) -> StrategyFailure:
        return StrategyFailure(
            strategy=self.strategy,
            message=self.error or "empty transcript",
            fail_class=self.fail_class or FailClass.PARSE_EMPTY,
        )
