"""
yt-dlp transcript strategy.

yt-dlp tracks YouTube's player changes far faster than any hand-written
client, so it is kept as a late fallback. It runs as a separate binary:
`--dump-single-json --skip-download` prints the video's info JSON, including
subtitle and automatic caption URLs, which are then fetched over HTTP.

Features:
- Binary resolution (YTDLP_BINARY, ./bin/yt-dlp, PATH, then `python -m yt_dlp`)
- One run per player client mode (web, ios, android, tv_embedded)
- Argument lists only, never a shell string
- Fail_class error categorization of stderr
"""

import asyncio
import importlib.util
import json
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from caption_tracks import CaptionTrack, decode_ytdlp_subtitle_map
from error_handler import detect_bot_check, sanitize_message, truncate
from log_events import evt
from logging_setup import get_logger
from reliability_config import ReliabilityConfig
from strategy_result import AttemptFailed, FailClass, StrategyResult
from transcript_strategy import AttemptError, TranscriptStrategy
from user_agent_manager import UserAgentManager
from video_id import watch_url

logger = get_logger(__name__)

BIN_DIR = Path(__file__).resolve().parent / "bin"
SUBTITLE_FORMAT_PREFERENCE = ("vtt", "srv3", "ttml")
STDERR_EXCERPT_CHARS = 160


def _sanitize_proxy_url(proxy_url: str) -> Dict[str, Optional[str]]:
    """
    Sanitize proxy URL for logging by extracting scheme and host.

    Args:
        proxy_url: Full proxy URL (may contain credentials)

    Returns:
        Dict with proxy_host and proxy_profile (sanitized)
    """
    parsed = urlparse(proxy_url)
    proxy_host = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname
    return {"proxy_host": proxy_host, "proxy_profile": parsed.scheme or "unknown"}


def _classify_ytdlp_error(stderr: str) -> str:
    """
    Classify yt-dlp stderr output into a fail_class.

    Args:
        stderr: Captured standard error of a failed run

    Returns:
        fail_class string
    """
    error_str = stderr.lower()

    if detect_bot_check(stderr):
        return FailClass.BOT_DETECTION

    # Video unavailable patterns
    if any(pattern in error_str for pattern in [
        "video unavailable",
        "this video is unavailable",
        "private video",
        "not available in your country",
        "sign in to confirm your age",
        "members-only",
    ]):
        return FailClass.UPSTREAM_STATUS

    # Network errors
    if any(pattern in error_str for pattern in [
        "unable to download",
        "connection",
        "timed out",
        "failed to establish",
        "proxy",
    ]):
        return FailClass.NETWORK

    return FailClass.INVALID_RESPONSE


def _stderr_excerpt(stderr: str) -> str:
    """Last ERROR line of stderr, or its last non-empty line."""
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    if not lines:
        return "no output"
    errors = [line for line in lines if line.startswith("ERROR:")]
    return truncate(sanitize_message((errors or lines)[-1]), STDERR_EXCERPT_CHARS)


def resolve_ytdlp_command(config: ReliabilityConfig) -> Optional[List[str]]:
    """
    Find the yt-dlp executable.

    Order: YTDLP_BINARY, the project's bin/ directory, PATH, and finally the
    installed yt_dlp package run as a module.
    """
    if config.ytdlp_binary:
        found = shutil.which(config.ytdlp_binary)
        if found:
            return [found]
        logger.error(f"YTDLP_BINARY {config.ytdlp_binary} is not an executable")
        return None

    local_name = "yt-dlp.exe" if os.name == "nt" else "yt-dlp"
    local_binary = BIN_DIR / local_name
    if local_binary.is_file() and os.access(local_binary, os.X_OK):
        return [str(local_binary)]

    found = shutil.which("yt-dlp")
    if found:
        return [found]

    if importlib.util.find_spec("yt_dlp") is not None:
        return [sys.executable, "-m", "yt_dlp"]
    return None


def build_ytdlp_args(
    command: Sequence[str],
    video_id: str,
    client_mode: str,
    config: ReliabilityConfig,
    user_agent: str,
) -> List[str]:
    """Build the argv for one info-JSON run. Never passed through a shell."""
    args = list(command) + [
        "--dump-single-json",
        "--skip-download",
        "--no-warnings",
        "--no-playlist",
        "--user-agent", user_agent,
        "--extractor-args", f"youtube:player_client={client_mode}",
    ]
    if config.proxy_url:
        args += ["--proxy", config.proxy_url]
    if config.cookie_header:
        args += ["--add-headers", f"Cookie:{config.cookie_header}"]
    if config.ytdlp_geo_bypass:
        args.append("--geo-bypass")
    # End of options: a video ID may start with "-"
    args += ["--", watch_url(video_id)]
    return args


def _english_code(codes: Sequence[str]) -> Optional[str]:
    if "en" in codes:
        return "en"
    for code in codes:
        if code.lower().startswith("en"):
            return code
    return None


def _preferred_format(tracks: Sequence[CaptionTrack]) -> CaptionTrack:
    for ext in SUBTITLE_FORMAT_PREFERENCE:
        for track in tracks:
            if track.ext == ext:
                return track
    return tracks[0]


def choose_subtitle(info: Any) -> Optional[CaptionTrack]:
    """
    Pick a subtitle from yt-dlp info JSON.

    English uploaded subtitles first, then English automatic captions, then
    the first uploaded subtitle in any language. Within a language the
    format preference is vtt, srv3, ttml, else whatever comes first.
    """
    manual = decode_ytdlp_subtitle_map(info, "subtitles")
    manual.pop("live_chat", None)
    automatic = decode_ytdlp_subtitle_map(info, "automatic_captions")

    code = _english_code(list(manual))
    if code:
        return _preferred_format(manual[code])
    code = _english_code(list(automatic))
    if code:
        return _preferred_format(automatic[code])
    if manual:
        return _preferred_format(next(iter(manual.values())))
    return None


class YtDlpStrategy(TranscriptStrategy):
    name = "ytdlp"

    def __init__(self, config: ReliabilityConfig, transport=None):
        super().__init__(config, transport=transport)
        self.user_agent = UserAgentManager().get_yt_dlp_user_agent()

    async def _fetch(self, video_id: str) -> StrategyResult:
        command = resolve_ytdlp_command(self.config)
        if command is None:
            evt("ytdlp_not_installed", strategy=self.name)
            return self.failure(FailClass.NOT_INSTALLED, "yt-dlp binary not found")

        if self.config.proxy_url:
            evt("ytdlp_proxy_enabled", strategy=self.name, **_sanitize_proxy_url(self.config.proxy_url))

        errors: List[AttemptError] = []
        for client_mode in self.config.ytdlp_clients:
            try:
                info = await self._dump_info(command, video_id, client_mode)
                track = choose_subtitle(info)
                if track is None:
                    raise AttemptFailed("no subtitles or automatic captions", FailClass.NO_CAPTIONS)
                async with self.http_client(user_agent=self.user_agent) as client:
                    text = await self.download_captions(client, track.url)
            except FileNotFoundError:
                # Binary vanished between resolution and exec
                return self.failure(FailClass.NOT_INSTALLED, "yt-dlp binary not found")
            except AttemptFailed as e:
                errors.append((client_mode, e.fail_class, str(e)))
            except Exception as e:
                errors.append(self.attempt_error(client_mode, e))
            else:
                evt("ytdlp_subtitle_success", strategy=self.name, profile=client_mode,
                    detail=f"{track.language_code}/{track.ext}", length=len(text))
                return self.success(text, detail=f"{client_mode}:{track.language_code}")

            evt("ytdlp_client_failed", strategy=self.name, profile=client_mode,
                fail_class=errors[-1][1], detail=errors[-1][2])

        return self.failure_from_attempts(errors)

    async def _dump_info(self, command: List[str], video_id: str, client_mode: str) -> Dict[str, Any]:
        args = build_ytdlp_args(command, video_id, client_mode, self.config, self.user_agent)
        completed = await asyncio.to_thread(
            subprocess.run,
            args,
            capture_output=True,
            text=True,
            timeout=self.config.ytdlp_timeout,
        )
        if completed.returncode != 0:
            stderr = completed.stderr or ""
            raise AttemptFailed(
                f"exit {completed.returncode}: {_stderr_excerpt(stderr)}",
                _classify_ytdlp_error(stderr),
            )
        try:
            info = json.loads(completed.stdout)
        except ValueError:
            raise AttemptFailed("invalid info JSON", FailClass.INVALID_RESPONSE)
        if not isinstance(info, dict):
            raise AttemptFailed("invalid info JSON", FailClass.INVALID_RESPONSE)
        return info
