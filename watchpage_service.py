"""
Watch page scrape transcript strategy.

Loads www.youtube.com/watch?v=<id>, pulls the embedded ytInitialPlayerResponse
blob out of the HTML and fetches the caption track it lists. The caption
request replays the page's cookies (consent plus any Set-Cookie values) so it
looks like it came from the same browser session.
"""

import json
import re
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from caption_tracks import decode_player_response, select_caption_track
from cookie_utils import CONSENT_COOKIE, merge_cookie_headers, set_cookie_pairs
from error_handler import detect_bot_check
from logging_setup import get_logger
from proxy_http import raise_for_upstream_status
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import TranscriptStrategy
from user_agent_manager import ANDROID_UA, DESKTOP_UA
from video_id import watch_url

# --- Configuration ---
MIN_WATCH_PAGE_BYTES = 10000
WATCH_PAGE_RETRY_ATTEMPTS = 2
WATCH_PAGE_BACKOFF_MIN = 0.5
WATCH_PAGE_BACKOFF_MAX = 2.0
PLAYER_RESPONSE_VAR = "ytInitialPlayerResponse"

logger = get_logger(__name__)


def _balanced_object_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the object opened at text[start], or None."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_assignment(html: str, var_name: str) -> Optional[str]:
    """
    Return the JSON object literal assigned to var_name in a script block.

    Matches both ``var name = {...}`` and ``window["name"] = {...}``. Braces
    inside string literals are ignored, so captions or titles containing
    "}" do not cut the blob short.
    """
    pattern = re.compile(re.escape(var_name) + r'(?:"\])?\s*=\s*')
    for match in pattern.finditer(html):
        start = match.end()
        if start >= len(html) or html[start] != '{':
            continue
        end = _balanced_object_end(html, start)
        if end is not None:
            return html[start:end + 1]
    return None


class WatchPageStrategy(TranscriptStrategy):
    name = "watch_page"

    async def _fetch(self, video_id: str) -> StrategyResult:
        page_url = watch_url(video_id)

        async with self.http_client(user_agent=DESKTOP_UA) as client:
            response = await self._get_watch_page(client, page_url)
            raise_for_upstream_status(response)
            html = response.text

            if len(html) < MIN_WATCH_PAGE_BYTES:
                if detect_bot_check(html):
                    return self.failure(FailClass.BOT_DETECTION, "watch page is a bot check")
                return self.failure(FailClass.INVALID_RESPONSE, f"watch page too small ({len(html)} bytes)")

            blob = extract_json_assignment(html, PLAYER_RESPONSE_VAR)
            if blob is None:
                if detect_bot_check(html):
                    return self.failure(FailClass.BOT_DETECTION, "bot check on watch page")
                return self.failure(FailClass.INVALID_RESPONSE, "no player data in watch page")

            try:
                data = json.loads(blob)
            except ValueError:
                return self.failure(FailClass.INVALID_RESPONSE, "player data is not valid JSON")

            player = decode_player_response(data)
            track = select_caption_track(player.caption_tracks)
            if track is None:
                if player.status and not player.playable:
                    reason = player.reason or "unplayable"
                    fail_class = FailClass.BOT_DETECTION if detect_bot_check(reason) else FailClass.UPSTREAM_STATUS
                    return self.failure(fail_class, f"{player.status}: {reason}")
                return self.failure(FailClass.NO_CAPTIONS, "no captions in watch page")

            cookie = merge_cookie_headers(
                CONSENT_COOKIE,
                self.config.cookie_header,
                set_cookie_pairs(response.headers.get_list("set-cookie")),
            )
            headers = {"User-Agent": DESKTOP_UA, "Referer": page_url, "Cookie": cookie}

            try:
                text = await self.download_captions(client, track.url, headers=headers)
            except AttemptFailed as e:
                if e.fail_class != FailClass.PARSE_EMPTY:
                    raise
                # Caption server sometimes returns an empty body to browser UAs
                logger.debug(f"watch_page: empty captions with desktop UA, retrying as Android for {video_id}")
                headers["User-Agent"] = ANDROID_UA
                text = await self.download_captions(client, track.url, headers=headers)
                return self.success(text, detail=f"{track.language_code}/android_ua")

        return self.success(text, detail=track.language_code)

    @retry(
        stop=stop_after_attempt(WATCH_PAGE_RETRY_ATTEMPTS),
        wait=wait_exponential_jitter(initial=WATCH_PAGE_BACKOFF_MIN, max=WATCH_PAGE_BACKOFF_MAX),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
        before_sleep=lambda s: logger.info(f"Watch page request failed, retrying in {s.next_action.sleep:.2f}s..."),
    )
    async def _get_watch_page(self, client: httpx.AsyncClient, page_url: str) -> httpx.Response:
        return await client.get(page_url, headers={"Accept-Language": "en-US,en;q=0.9"})
