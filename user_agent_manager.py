"""
UserAgentManager - Client identities presented to YouTube

This module holds the User-Agent strings and internal player API client
profiles the strategies impersonate. YouTube answers differently per client
identity, so the cascade tries several of them in a fixed order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
ANDROID_UA = "com.google.android.youtube/19.09.37 (Linux; U; Android 12; US) gzip"
IOS_UA = "com.google.ios.youtube/19.09.3 (iPhone14,3; U; CPU iOS 17_0 like Mac OS X; en_US)"
TV_EMBEDDED_UA = "Mozilla/5.0 (ChromiumStylePlatform) Cobalt/Version"

PLAYER_API_URL = "https://www.youtube.com/youtubei/v1/player?prettyPrint=false"


@dataclass(frozen=True)
class ClientProfile:
    """A named client identity for the internal player API."""

    name: str
    user_agent: str
    client_context: Dict[str, Any]
    third_party: Optional[Dict[str, Any]] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def player_payload(self, video_id: str) -> Dict[str, Any]:
        context: Dict[str, Any] = {"client": dict(self.client_context)}
        if self.third_party:
            context["thirdParty"] = dict(self.third_party)
        return {
            "context": context,
            "videoId": video_id,
            "contentCheckOk": True,
            "racyCheckOk": True,
        }

    def headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        headers.update(self.extra_headers)
        return headers


INNERTUBE_PROFILES: Dict[str, ClientProfile] = {
    "ANDROID": ClientProfile(
        name="ANDROID",
        user_agent=ANDROID_UA,
        client_context={
            "clientName": "ANDROID",
            "clientVersion": "19.09.37",
            "androidSdkVersion": 31,
            "hl": "en",
            "gl": "US",
        },
    ),
    "IOS": ClientProfile(
        name="IOS",
        user_agent=IOS_UA,
        client_context={
            "clientName": "IOS",
            "clientVersion": "19.09.3",
            "deviceModel": "iPhone14,3",
            "hl": "en",
            "gl": "US",
        },
    ),
    "TV_EMBEDDED": ClientProfile(
        name="TV_EMBEDDED",
        user_agent=TV_EMBEDDED_UA,
        client_context={
            "clientName": "TVHTML5_SIMPLY_EMBEDDED_PLAYER",
            "clientVersion": "2.0",
            "hl": "en",
            "gl": "US",
        },
        third_party={"embedUrl": "https://www.google.com"},
    ),
    "WEB": ClientProfile(
        name="WEB",
        user_agent=DESKTOP_UA,
        client_context={
            "clientName": "WEB",
            "clientVersion": "2.20240304.00.00",
            "hl": "en",
            "gl": "US",
        },
        extra_headers={"Origin": "https://www.youtube.com"},
    ),
}


def get_profiles(names: Sequence[str]) -> List[ClientProfile]:
    """Resolve profile names in order, skipping (and logging) unknown ones."""
    profiles = []
    for name in names:
        profile = INNERTUBE_PROFILES.get(name.upper())
        if profile is None:
            logging.warning(f"Unknown innertube client profile '{name}', skipping")
            continue
        profiles.append(profile)
    return profiles


class UserAgentManager:
    """
    Manages User-Agent strings for plain HTTP requests to YouTube and mirrors.

    Mirror federations get an empty User-Agent: several instances reject
    browser-looking clients outright.
    """

    USER_AGENT_CONFIG = {
        "default": DESKTOP_UA,
        "android": ANDROID_UA,
        "ios": IOS_UA,
        "tv": TV_EMBEDDED_UA,
        "mirror": "",
    }

    def get_user_agent(self, request_type: str = "default") -> str:
        user_agent = self.USER_AGENT_CONFIG.get(request_type)
        if user_agent is None:
            logging.warning(f"Unknown User-Agent type '{request_type}', using default")
            return self.USER_AGENT_CONFIG["default"]
        return user_agent

    def get_transcript_headers(self, request_type: str = "default") -> Dict[str, str]:
        """Headers for page and caption requests: User-Agent plus Accept-Language."""
        return {
            'User-Agent': self.get_user_agent(request_type),
            'Accept-Language': 'en-US,en;q=0.9',
        }

    def get_yt_dlp_user_agent(self) -> str:
        """Same UA as direct page requests, so yt-dlp and httpx look alike."""
        return self.get_user_agent("default")
