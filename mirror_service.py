"""
Mirror federation transcript strategies (Piped and Invidious).

Public Piped and Invidious instances proxy YouTube from their own IPs, which
makes them useful when this server's IP is flagged. Individual instances are
unreliable (down, rate limited, serving Cloudflare pages), so every configured
instance is queried at once and the first one to return readable captions
wins; the rest are cancelled.
"""

import asyncio
from typing import Dict, Sequence
from urllib.parse import urlparse

import httpx

from caption_text import dedupe_rolling_lines, drop_cue_numbers
from caption_tracks import decode_invidious_captions, decode_piped_subtitles, select_caption_track
from error_handler import detect_bot_check, looks_like_html, truncate
from log_events import evt
from logging_setup import get_logger
from proxy_http import raise_for_upstream_status
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import AttemptError, TranscriptStrategy
from user_agent_manager import UserAgentManager

logger = get_logger(__name__)

# Listing plus caption download, each bounded by the per-request timeout
REQUESTS_PER_INSTANCE = 2


def instance_label(base_url: str) -> str:
    return urlparse(base_url).netloc or base_url


class MirrorFederationStrategy(TranscriptStrategy):
    """Race every instance of one federation; first readable transcript wins."""

    name = "mirror"

    def instances(self) -> Sequence[str]:
        raise NotImplementedError

    async def _query_instance(self, client: httpx.AsyncClient, base_url: str, video_id: str) -> str:
        raise NotImplementedError

    @property
    def instance_deadline(self) -> float:
        return self.config.mirror_request_timeout * REQUESTS_PER_INSTANCE

    async def _fetch(self, video_id: str) -> StrategyResult:
        instances = list(self.instances())
        if not instances:
            return self.failure(FailClass.CONFIG_ERROR, "no instances configured")

        logger.debug(f"{self.name}: racing {len(instances)} instances for {video_id}")

        errors: Dict[str, AttemptError] = {}

        # Mirrors are third parties: never send them YouTube cookies, and talk
        # to them directly since they already shield this server's IP.
        user_agent = UserAgentManager().get_user_agent("mirror")
        async with self.http_client(user_agent=user_agent, timeout=self.config.mirror_request_timeout,
                                    use_cookies=False, use_proxy=False) as client:
            tasks = {
                asyncio.create_task(
                    asyncio.wait_for(self._query_instance(client, base_url, video_id), self.instance_deadline)
                ): base_url
                for base_url in instances
            }
            pending = set(tasks)
            try:
                while pending:
                    done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                    for task in done:
                        base_url = tasks[task]
                        label = instance_label(base_url)
                        try:
                            text = task.result()
                        except AttemptFailed as e:
                            errors[base_url] = (label, e.fail_class, str(e))
                        except Exception as e:
                            errors[base_url] = self.attempt_error(label, e)
                        else:
                            evt("mirror_instance_success", strategy=self.name, instance=label, length=len(text))
                            return self.success(text, detail=label)
                        evt("mirror_instance_failed", strategy=self.name, instance=label,
                            fail_class=errors[base_url][1], detail=errors[base_url][2])
            finally:
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

        # Report in configured order, not completion order
        return self.failure_from_attempts([errors[base_url] for base_url in instances])

    @staticmethod
    def decode_json(response: httpx.Response):
        raise_for_upstream_status(response)
        if looks_like_html(response.text):
            if detect_bot_check(response.text):
                raise AttemptFailed("instance served a bot check", FailClass.BOT_DETECTION)
            raise AttemptFailed("HTML instead of JSON", FailClass.INVALID_RESPONSE)
        try:
            data = response.json()
        except ValueError:
            raise AttemptFailed("invalid JSON", FailClass.INVALID_RESPONSE)
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            message = truncate(data["error"], 80)
            fail_class = FailClass.BOT_DETECTION if detect_bot_check(data["error"]) else FailClass.UPSTREAM_STATUS
            raise AttemptFailed(message, fail_class)
        return data


class PipedStrategy(MirrorFederationStrategy):
    name = "piped"

    def instances(self) -> Sequence[str]:
        return self.config.piped_instances

    async def _query_instance(self, client: httpx.AsyncClient, base_url: str, video_id: str) -> str:
        response = await client.get(f"{base_url.rstrip('/')}/streams/{video_id}")
        data = self.decode_json(response)
        track = select_caption_track(decode_piped_subtitles(data, base_url))
        if track is None:
            raise AttemptFailed("no subtitles", FailClass.NO_CAPTIONS)
        return await self.download_captions(client, track.url, preclean=drop_cue_numbers)


class InvidiousStrategy(MirrorFederationStrategy):
    name = "invidious"

    def instances(self) -> Sequence[str]:
        return self.config.invidious_instances

    async def _query_instance(self, client: httpx.AsyncClient, base_url: str, video_id: str) -> str:
        response = await client.get(f"{base_url.rstrip('/')}/api/v1/captions/{video_id}")
        data = self.decode_json(response)
        track = select_caption_track(decode_invidious_captions(data, base_url))
        if track is None:
            raise AttemptFailed("no captions", FailClass.NO_CAPTIONS)
        return await self.download_captions(client, track.url, preclean=dedupe_rolling_lines)
