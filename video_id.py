"""Parse YouTube URLs into canonical 11-character video identifiers."""

import re
from typing import Optional

VIDEO_ID_RE = re.compile(r'^[A-Za-z0-9_-]{11}$')

# Tried in order; the first capturing group is the identifier.
VIDEO_URL_PATTERNS = [
    re.compile(r'youtube\.com/watch\?(?:[^#]*&)?v=([A-Za-z0-9_-]{11})'),
    re.compile(r'youtu\.be/([A-Za-z0-9_-]{11})'),
    re.compile(r'youtube\.com/embed/([A-Za-z0-9_-]{11})'),
    re.compile(r'youtube\.com/shorts/([A-Za-z0-9_-]{11})'),
]


def is_valid_video_id(value: Optional[str]) -> bool:
    return bool(value) and VIDEO_ID_RE.fullmatch(value) is not None


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """
    Return the video identifier from a watch, short-link, embed or shorts URL.

    Unrecognised input yields None rather than an exception; callers turn that
    into their own "invalid URL" message.
    """
    if not url:
        return None
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
