"""
Legacy timedtext endpoint transcript strategy.

The old caption endpoints (video.google.com/timedtext and the
www.youtube.com/api/timedtext alias) still answer for some videos with a
manually uploaded English track. They take no client identity and usually
return an empty body, so this strategy sits at the very end of the cascade.

- Tenacity retry with exponential backoff and jitter on transport errors.
- Strict pre-parsing validation so empty bodies and consent pages are
  reported by reason instead of being parsed.
"""

from typing import Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from caption_text import normalize_caption_text
from error_handler import detect_bot_check, looks_like_html, mask_url_for_logging
from log_events import evt
from logging_setup import get_logger
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import TranscriptStrategy
from user_agent_manager import DESKTOP_UA
from video_id import watch_url

# --- Configuration ---
TIMEDTEXT_RETRY_ATTEMPTS = 2
TIMEDTEXT_BACKOFF_MIN = 0.5
TIMEDTEXT_BACKOFF_MAX = 2.0
TIMEDTEXT_ENDPOINTS = (
    "http://video.google.com/timedtext",
    "https://www.youtube.com/api/timedtext",
)
TRANSCRIPT_MARKERS = ("<transcript", "<timedtext")

logger = get_logger(__name__)


def _validate_response(resp: httpx.Response) -> Tuple[bool, str, str]:
    """
    Guard before parsing. Returns (is_valid, fail_class, reason).
    """
    body = resp.text or ""

    if not resp.is_success:
        fail_class = FailClass.BOT_DETECTION if resp.status_code == 429 else FailClass.HTTP_ERROR
        return False, fail_class, f"HTTP {resp.status_code}"

    # YouTube answers 200 with an empty body when no legacy track exists
    if not body.strip():
        return False, FailClass.NO_CAPTIONS, "empty body"

    if looks_like_html(body):
        if "before you continue to youtube" in body.lower():
            evt("timedtext_consent_wall_detected")
            return False, FailClass.INVALID_RESPONSE, "consent page"
        if detect_bot_check(body):
            return False, FailClass.BOT_DETECTION, "bot check page"
        return False, FailClass.INVALID_RESPONSE, "HTML response"

    lowered = body.lower()
    if not any(marker in lowered for marker in TRANSCRIPT_MARKERS):
        return False, FailClass.INVALID_RESPONSE, "no transcript element"

    return True, "", "valid"


class LegacyTimedtextStrategy(TranscriptStrategy):
    name = "legacy_timedtext"

    async def _fetch(self, video_id: str) -> StrategyResult:
        errors = []

        async with self.http_client(user_agent=DESKTOP_UA) as client:
            for endpoint in TIMEDTEXT_ENDPOINTS:
                label = httpx.URL(endpoint).host
                try:
                    text = await self._fetch_endpoint(client, endpoint, video_id)
                except AttemptFailed as e:
                    errors.append((label, e.fail_class, str(e)))
                except httpx.HTTPError as e:
                    errors.append(self.attempt_error(label, e))
                else:
                    return self.success(text, detail=label)

        return self.failure_from_attempts(errors)

    async def _fetch_endpoint(self, client: httpx.AsyncClient, endpoint: str, video_id: str) -> str:
        response = await self._execute_request(client, endpoint, video_id)
        is_valid, fail_class, reason = _validate_response(response)
        if not is_valid:
            evt("timedtext_response_invalid", strategy=self.name,
                detail=f"{mask_url_for_logging(str(response.url))}: {reason}")
            raise AttemptFailed(reason, fail_class)
        return normalize_caption_text(response.text)

    @retry(
        stop=stop_after_attempt(TIMEDTEXT_RETRY_ATTEMPTS),
        wait=wait_exponential_jitter(initial=TIMEDTEXT_BACKOFF_MIN, max=TIMEDTEXT_BACKOFF_MAX),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
        before_sleep=lambda s: logger.info(f"Request failed, retrying in {s.next_action.sleep:.2f}s..."),
    )
    async def _execute_request(self, client: httpx.AsyncClient, endpoint: str, video_id: str) -> httpx.Response:
        """GET the endpoint for the English track with a watch-page Referer."""
        return await client.get(
            endpoint,
            params={"lang": "en", "v": video_id},
            headers={"Referer": watch_url(video_id)},
        )
