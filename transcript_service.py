"""
Transcript cascade orchestrator.

Runs the configured strategies one after another until one returns caption
text. Each strategy reports success or failure as a value; failures are
logged, counted and collected, and once every strategy has failed a single
TranscriptUnavailableError with a bounded digest is raised.

Default pipeline order (TRANSCRIPT_STRATEGIES overrides it):
1. Hosted transcript proxy (only when TRANSCRIPT_PROXY_URL is set)
2. youtube-transcript-api
3. Internal player API as several first-party clients
4. Piped mirrors, raced
5. Invidious mirrors, raced
6. Watch page scrape
7. yt-dlp binary
8. Legacy timedtext endpoint
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

import httpx

from error_handler import InvalidVideoIdError, TranscriptUnavailableError
from innertube_service import InnertubeStrategy
from log_events import evt, strategy_outcome
from logging_setup import clear_request_ctx, get_logger, set_request_ctx
from mirror_service import InvidiousStrategy, PipedStrategy
from reliability_config import ReliabilityConfig, get_reliability_config
from strategy_result import StrategyFailure
from timedtext_service import LegacyTimedtextStrategy
from transcript_api_service import TranscriptApiStrategy
from transcript_metrics import get_metrics_snapshot, inc_fail, inc_success, record_stage_metrics
from transcript_proxy_service import TranscriptProxyStrategy
from transcript_strategy import TranscriptStrategy
from video_id import is_valid_video_id
from watchpage_service import WatchPageStrategy
from ytdlp_service import YtDlpStrategy

logger = get_logger(__name__)

STRATEGY_CLASSES = {
    TranscriptProxyStrategy.name: TranscriptProxyStrategy,
    TranscriptApiStrategy.name: TranscriptApiStrategy,
    InnertubeStrategy.name: InnertubeStrategy,
    PipedStrategy.name: PipedStrategy,
    InvidiousStrategy.name: InvidiousStrategy,
    WatchPageStrategy.name: WatchPageStrategy,
    YtDlpStrategy.name: YtDlpStrategy,
    LegacyTimedtextStrategy.name: LegacyTimedtextStrategy,
}


def build_default_strategies(
    config: ReliabilityConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[TranscriptStrategy]:
    """Instantiate the strategies named in config.strategy_order, skipping disabled ones."""
    strategies = []
    for name in config.strategy_order:
        strategy_cls = STRATEGY_CLASSES.get(name)
        if strategy_cls is None:
            logger.warning(f"Unknown strategy '{name}' in cascade order, skipping")
            continue
        strategy = strategy_cls(config, transport=transport)
        if not strategy.is_enabled():
            evt("strategy_disabled", strategy=name)
            continue
        strategies.append(strategy)
    return strategies


class TranscriptService:
    def __init__(
        self,
        strategies: Optional[Sequence[TranscriptStrategy]] = None,
        config: Optional[ReliabilityConfig] = None,
    ):
        self.config = config or get_reliability_config()
        if strategies is None:
            strategies = build_default_strategies(self.config)
        self.strategies = list(strategies)

        evt("transcript_service_init",
            detail=f"strategies={','.join(s.name for s in self.strategies)}")

    @property
    def strategy_names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    async def fetch_transcript(self, video_id: str, request_id: Optional[str] = None) -> str:
        """
        Return flattened caption text for video_id.

        Args:
            video_id: 11-character YouTube video ID
            request_id: Optional correlation ID for the log context

        Raises:
            InvalidVideoIdError: video_id is not a well-formed ID
            TranscriptUnavailableError: every strategy failed
        """
        if not isinstance(video_id, str) or not is_valid_video_id(video_id):
            raise InvalidVideoIdError(f"Invalid YouTube video ID: {video_id!r}")

        set_request_ctx(request_id=request_id or uuid.uuid4().hex[:12], video_id=video_id)
        try:
            return await self._execute_transcript_pipeline(video_id)
        finally:
            clear_request_ctx()

    async def _execute_transcript_pipeline(self, video_id: str) -> str:
        failures: List[StrategyFailure] = []
        evt("transcript_pipeline_start", detail=f"strategies={len(self.strategies)}")

        for strategy in self.strategies:
            evt("transcript_method_start", strategy=strategy.name)
            result = await strategy.fetch(video_id)

            record_stage_metrics(
                video_id=video_id,
                stage=strategy.name,
                duration_ms=result.duration_ms,
                success=result.ok,
                proxy_used=bool(self.config.proxy_url),
                detail=result.detail,
                fail_class=None if result.ok else result.to_failure().fail_class,
            )

            if result.ok:
                inc_success(strategy.name)
                strategy_outcome(strategy.name, "success", result.duration_ms,
                                 detail=result.detail, length=len(result.transcript))
                return result.transcript

            failure = result.to_failure()
            failures.append(failure)
            inc_fail(strategy.name, failure.fail_class)
            strategy_outcome(strategy.name, "failure", result.duration_ms,
                             fail_class=failure.fail_class, detail=failure.message)

        inc_fail("none")
        error = TranscriptUnavailableError(failures, self.config.failure_digest_max_chars)
        evt("transcript_pipeline_exhausted", level=logging.ERROR,
            outcome="bot_detected" if error.bot_detected else "no_transcript",
            detail=error.digest)
        raise error

    def get_health_diagnostics(self) -> Dict[str, Any]:
        """Get diagnostic information for health checks"""
        return {
            "strategies": self.strategy_names,
            "config": self.config.to_dict(),
            "metrics": get_metrics_snapshot(),
        }


async def fetch_transcript(video_id: str, config: Optional[ReliabilityConfig] = None) -> str:
    """Fetch caption text with the default cascade built from config (or the environment)."""
    return await TranscriptService(config=config).fetch_transcript(video_id)


def fetch_transcript_sync(video_id: str, config: Optional[ReliabilityConfig] = None) -> str:
    """Blocking wrapper for callers outside an event loop."""
    return asyncio.run(fetch_transcript(video_id, config=config))


def get_health_diagnostics(config: Optional[ReliabilityConfig] = None) -> Dict[str, Any]:
    return TranscriptService(config=config).get_health_diagnostics()
