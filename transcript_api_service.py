"""
youtube-transcript-api transcript strategy.

The library is synchronous and built on requests, so it runs in a worker
thread with a requests.Session that carries the configured cookies. A
configured YOUTUBE_PROXY_URL is handed over as a GenericProxyConfig.
"""

import asyncio
from typing import List

import requests
from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    AgeRestricted,
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    PoTokenRequired,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
    VideoUnplayable,
    YouTubeDataUnparsable,
    YouTubeRequestFailed,
)
from youtube_transcript_api.proxies import GenericProxyConfig

from caption_text import normalize_caption_text
from caption_tracks import CaptionTrack, select_caption_track
from error_handler import sanitize_message, truncate
from logging_setup import get_logger
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import TranscriptStrategy
from user_agent_manager import UserAgentManager

logger = get_logger(__name__)

# Listing and fetching are two round trips
LIBRARY_DEADLINE_FACTOR = 2
LIBRARY_MESSAGE_CHARS = 100


def _classify_transcript_api_error(exc: CouldNotRetrieveTranscript) -> str:
    """Map library exceptions to fail classes. IpBlocked subclasses RequestBlocked."""
    if isinstance(exc, (RequestBlocked, PoTokenRequired)):
        return FailClass.BOT_DETECTION
    if isinstance(exc, (TranscriptsDisabled, NoTranscriptFound)):
        return FailClass.NO_CAPTIONS
    if isinstance(exc, (VideoUnavailable, VideoUnplayable, AgeRestricted)):
        return FailClass.UPSTREAM_STATUS
    if isinstance(exc, YouTubeRequestFailed):
        return FailClass.HTTP_ERROR
    if isinstance(exc, YouTubeDataUnparsable):
        return FailClass.INVALID_RESPONSE
    return FailClass.UPSTREAM_STATUS


def _summarize(exc: CouldNotRetrieveTranscript) -> str:
    # Library messages are multi-paragraph help texts; keep the class name and cause
    cause = getattr(exc, "cause", None) or ""
    first_line = str(cause).strip().splitlines()[0] if str(cause).strip() else ""
    return truncate(f"{type(exc).__name__}: {first_line}".rstrip(": "), LIBRARY_MESSAGE_CHARS)


class TranscriptApiStrategy(TranscriptStrategy):
    name = "transcript_api"

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(UserAgentManager().get_transcript_headers())
        if self.config.cookie_header:
            session.headers["Cookie"] = self.config.cookie_header
        return session

    def _build_api(self, session: requests.Session) -> YouTubeTranscriptApi:
        proxy_config = None
        if self.config.proxy_url:
            proxy_config = GenericProxyConfig(http_url=self.config.proxy_url, https_url=self.config.proxy_url)
        return YouTubeTranscriptApi(proxy_config=proxy_config, http_client=session)

    async def _fetch(self, video_id: str) -> StrategyResult:
        deadline = self.config.request_timeout * LIBRARY_DEADLINE_FACTOR
        try:
            text, language = await asyncio.wait_for(asyncio.to_thread(self._fetch_sync, video_id), deadline)
        except CouldNotRetrieveTranscript as e:
            return self.failure(_classify_transcript_api_error(e), _summarize(e))
        except requests.Timeout:
            return self.failure(FailClass.TIMEOUT, "timeout")
        except requests.RequestException as e:
            return self.failure(FailClass.NETWORK, truncate(sanitize_message(str(e)), LIBRARY_MESSAGE_CHARS))
        return self.success(text, detail=language)

    def _fetch_sync(self, video_id: str):
        session = self._build_session()
        try:
            api = self._build_api(session)
            transcripts = list(api.list(video_id))
            if not transcripts:
                raise AttemptFailed("no transcripts listed", FailClass.NO_CAPTIONS)

            tracks: List[CaptionTrack] = [
                CaptionTrack(
                    language_code=t.language_code,
                    url="",
                    name=t.language,
                    kind="asr" if t.is_generated else None,
                )
                for t in transcripts
            ]
            chosen = select_caption_track(tracks)
            transcript = transcripts[tracks.index(chosen)]
            logger.debug(f"transcript_api: {len(transcripts)} transcripts listed for {video_id}, "
                         f"using {transcript.language_code}")
            fetched = transcript.fetch()
            raw = " ".join(snippet.text for snippet in fetched)
            return normalize_caption_text(raw), transcript.language_code
        finally:
            session.close()
