"""
Hosted transcript proxy strategy.

An edge worker deployed on a different network scrapes the watch page on
our behalf: GET <TRANSCRIPT_PROXY_URL>?v=<id> answers
{"success": true, "transcript": "..."} or {"error": "<code or message>"}.
Only enabled when TRANSCRIPT_PROXY_URL is configured.
"""

import httpx

from caption_text import normalize_caption_text
from error_handler import detect_bot_check, truncate
from logging_setup import get_logger
from strategy_result import FailClass, StrategyResult
from transcript_strategy import TranscriptStrategy

logger = get_logger(__name__)

# Error codes returned by the worker
PROXY_ERROR_CLASSES = {
    "BOT_DETECTION": FailClass.BOT_DETECTION,
    "NO_CAPTIONS_FOUND": FailClass.NO_CAPTIONS,
    "NO_ENGLISH_TRACK": FailClass.NO_CAPTIONS,
}


class TranscriptProxyStrategy(TranscriptStrategy):
    name = "transcript_proxy"

    def is_enabled(self) -> bool:
        return bool(self.config.transcript_proxy_url)

    async def _fetch(self, video_id: str) -> StrategyResult:
        if not self.config.transcript_proxy_url:
            return self.failure(FailClass.CONFIG_ERROR, "TRANSCRIPT_PROXY_URL not set")

        # The worker talks to YouTube itself: no cookies and no outbound proxy
        async with self.http_client(use_cookies=False, use_proxy=False) as client:
            response = await client.get(self.config.transcript_proxy_url, params={"v": video_id})
        logger.debug(f"transcript proxy answered HTTP {response.status_code} for {video_id}")

        try:
            data = response.json()
        except ValueError:
            if not response.is_success:
                return self.failure(FailClass.HTTP_ERROR, f"HTTP {response.status_code}")
            return self.failure(FailClass.INVALID_RESPONSE, "proxy returned non-JSON body")

        if not isinstance(data, dict):
            return self.failure(FailClass.INVALID_RESPONSE, "proxy returned unexpected JSON")

        error = data.get("error")
        if isinstance(error, str) and error:
            fail_class = PROXY_ERROR_CLASSES.get(error)
            if fail_class is None:
                fail_class = FailClass.BOT_DETECTION if detect_bot_check(error) else FailClass.UPSTREAM_STATUS
            return self.failure(fail_class, truncate(error, 100))

        transcript = data.get("transcript")
        if data.get("success") is not True or not isinstance(transcript, str):
            return self.failure(FailClass.INVALID_RESPONSE, f"unexpected proxy response (HTTP {response.status_code})")

        return self.success(normalize_caption_text(transcript), detail=httpx.URL(self.config.transcript_proxy_url).host)
