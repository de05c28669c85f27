"""
Direct internal player API (Innertube) transcript strategy.

Posts to youtubei/v1/player as a series of first-party clients (Android app,
iOS app, embedded TV player, desktop web). YouTube applies different bot
scrutiny per client, so a video blocked for one client often still returns
caption tracks for another. The caption track is then fetched with the same
client User-Agent, since the caption server answers per client as well.
"""

from typing import List, Optional

import httpx

from caption_tracks import decode_player_response, select_caption_track
from error_handler import detect_bot_check
from log_events import evt
from logging_setup import get_logger
from proxy_http import raise_for_upstream_status
from reliability_config import ReliabilityConfig
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import AttemptError, TranscriptStrategy
from user_agent_manager import PLAYER_API_URL, ClientProfile, get_profiles

logger = get_logger(__name__)


class InnertubeStrategy(TranscriptStrategy):
    name = "innertube"

    def __init__(self, config: ReliabilityConfig, profiles: Optional[List[ClientProfile]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config, transport=transport)
        self.profiles = profiles if profiles is not None else get_profiles(config.innertube_clients)

    async def _fetch(self, video_id: str) -> StrategyResult:
        errors: List[AttemptError] = []

        async with self.http_client() as client:
            for profile in self.profiles:
                try:
                    text = await self._try_profile(client, profile, video_id)
                except AttemptFailed as e:
                    errors.append((profile.name, e.fail_class, str(e)))
                except httpx.HTTPError as e:
                    errors.append(self.attempt_error(profile.name, e))
                else:
                    evt("innertube_profile_success", strategy=self.name, profile=profile.name, length=len(text))
                    return self.success(text, detail=profile.name)

                evt("innertube_profile_failed", strategy=self.name, profile=profile.name,
                    fail_class=errors[-1][1], detail=errors[-1][2])

        return self.failure_from_attempts(errors)

    async def _try_profile(self, client: httpx.AsyncClient, profile: ClientProfile, video_id: str) -> str:
        response = await client.post(
            PLAYER_API_URL,
            json=profile.player_payload(video_id),
            headers=profile.headers(),
        )
        raise_for_upstream_status(response)

        try:
            data = response.json()
        except ValueError:
            raise AttemptFailed("invalid JSON from player API", FailClass.INVALID_RESPONSE)

        player = decode_player_response(data)
        if not player.playable:
            status = player.status or "NO_STATUS"
            reason = player.reason or "blocked"
            fail_class = FailClass.BOT_DETECTION if detect_bot_check(reason) else FailClass.UPSTREAM_STATUS
            raise AttemptFailed(f"{status}: {reason}", fail_class)

        track = select_caption_track(player.caption_tracks)
        if track is None:
            raise AttemptFailed("no caption tracks", FailClass.NO_CAPTIONS)

        logger.debug(f"innertube {profile.name}: {len(player.caption_tracks)} tracks, using {track.language_code}")
        return await self.download_captions(client, track.url, headers={"User-Agent": profile.user_agent})
