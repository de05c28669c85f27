"""
Base class for transcript acquisition strategies.

A strategy is one independent way of getting caption text for a video. The
cascade only ever sees StrategyResult values: anything a subclass raises is
classified here, logged, and turned into a failure result.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

import httpx

from caption_text import normalize_caption_text
from error_handler import (
    classify_exception,
    combine_fail_classes,
    describe_exception,
    detect_bot_check,
    join_attempt_errors,
    looks_like_html,
)
from log_events import StageTimer, evt
from logging_setup import get_logger
from proxy_http import build_async_client, raise_for_upstream_status
from reliability_config import ReliabilityConfig
from strategy_result import AttemptFailed, FailClass, StrategyResult

logger = get_logger(__name__)

# (attempt label, fail class, message)
AttemptError = Tuple[str, str, str]


class TranscriptStrategy:
    """
    One acquisition strategy.

    Subclasses set ``name`` and implement ``_fetch``. They may raise freely
    inside ``_fetch``; ``fetch`` never raises except on cancellation.
    """

    name = "strategy"

    def __init__(self, config: ReliabilityConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def is_enabled(self) -> bool:
        """Strategies that need optional configuration override this."""
        return True

    def http_client(self, user_agent: Optional[str] = None, timeout: Optional[float] = None,
                    use_cookies: bool = True, use_proxy: bool = True) -> httpx.AsyncClient:
        return build_async_client(
            self.config,
            user_agent=user_agent,
            timeout=timeout,
            transport=self.transport,
            use_cookies=use_cookies,
            use_proxy=use_proxy,
        )

    async def fetch(self, video_id: str) -> StrategyResult:
        with StageTimer(self.name, strategy=self.name) as timer:
            try:
                result = await self._fetch(video_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                fail_class = classify_exception(e)
                if fail_class == FailClass.UNEXPECTED:
                    logger.exception(f"Strategy {self.name} crashed for {video_id}")
                result = StrategyResult.failure(self.name, fail_class, describe_exception(e))

            if result.ok:
                timer.outcome = "success"
                timer.detail = result.detail
            else:
                timer.outcome = "failure"
                timer.detail = result.fail_class

        result = result.with_duration(timer.elapsed_ms)

        if not result.ok and result.fail_class in FailClass.FATAL:
            evt("strategy_fatal", level=logging.ERROR, strategy=self.name,
                fail_class=result.fail_class, detail=result.error)
        return result

    async def _fetch(self, video_id: str) -> StrategyResult:
        raise NotImplementedError

    def success(self, transcript: str, detail: Optional[str] = None) -> StrategyResult:
        return StrategyResult.success(self.name, transcript, detail=detail)

    def failure(self, fail_class: str, error: str) -> StrategyResult:
        return StrategyResult.failure(self.name, fail_class, error)

    def failure_from_attempts(self, attempt_errors: List[AttemptError]) -> StrategyResult:
        """Fold per-attempt errors (profiles, instances, client modes) into one failure."""
        if not attempt_errors:
            return self.failure(FailClass.CONFIG_ERROR, "no attempts configured")
        fail_class = combine_fail_classes([fail_class for _, fail_class, _ in attempt_errors])
        message = join_attempt_errors([f"{label}: {message}" for label, _, message in attempt_errors])
        return self.failure(fail_class, message)

    @staticmethod
    def attempt_error(label: str, exc: BaseException) -> AttemptError:
        return (label, classify_exception(exc), describe_exception(exc))

    async def download_captions(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Optional[dict] = None,
        preclean: Optional[Callable[[str], str]] = None,
    ) -> str:
        """
        GET a caption track and return normalized text.

        Raises:
            AttemptFailed: empty body, HTML block page or nothing readable
            httpx.HTTPError: transport failures (classified by the caller)
        """
        response = await client.get(url, headers=headers)
        raise_for_upstream_status(response)
        body = response.text
        if not body or not body.strip():
            raise AttemptFailed("empty caption response", FailClass.PARSE_EMPTY)
        if looks_like_html(body):
            if detect_bot_check(body):
                raise AttemptFailed("caption request hit bot check", FailClass.BOT_DETECTION)
            raise AttemptFailed("caption response is an HTML page", FailClass.INVALID_RESPONSE)
        if preclean is not None:
            body = preclean(body)
        return normalize_caption_text(body)
