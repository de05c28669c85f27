"""
Caption track descriptors and the upstream payload decoders that produce them.

Every upstream (internal player API, watch page, Piped, Invidious, yt-dlp)
describes its tracks differently. The decoders here turn each payload into
CaptionTrack values and treat missing or wrongly-typed fields as "no tracks"
instead of raising, so a malformed mirror never crashes a strategy.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin


@dataclass(frozen=True)
class CaptionTrack:
    language_code: str
    url: str
    name: str = ""
    ext: Optional[str] = None
    kind: Optional[str] = None

    @property
    def is_english(self) -> bool:
        code = self.language_code.lower()
        return code == "en" or code.startswith("en")


@dataclass(frozen=True)
class PlayerResponse:
    """The parts of a player response (API or watch page) the cascade reads."""

    status: Optional[str]
    reason: Optional[str] = None
    caption_tracks: List[CaptionTrack] = field(default_factory=list)

    @property
    def playable(self) -> bool:
        return self.status == "OK"


def select_caption_track(tracks: Sequence[CaptionTrack]) -> Optional[CaptionTrack]:
    """Prefer the first English track, otherwise the first track in upstream order."""
    if not tracks:
        return None
    for track in tracks:
        if track.is_english:
            return track
    return tracks[0]


def _get_path(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _text_of(value: Any) -> str:
    """Player API names come as {"simpleText": ...} or {"runs": [{"text": ...}]}."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if isinstance(value.get("simpleText"), str):
            return value["simpleText"]
        runs = value.get("runs")
        if isinstance(runs, list):
            return "".join(_as_str(run.get("text")) for run in runs if isinstance(run, dict))
    return ""


def decode_player_response(data: Any) -> PlayerResponse:
    status = _get_path(data, "playabilityStatus", "status")
    reason = _get_path(data, "playabilityStatus", "reason")
    raw_tracks = _get_path(data, "captions", "playerCaptionsTracklistRenderer", "captionTracks")

    tracks = []
    if isinstance(raw_tracks, list):
        for raw in raw_tracks:
            if not isinstance(raw, dict):
                continue
            url = _as_str(raw.get("baseUrl"))
            code = _as_str(raw.get("languageCode"))
            if not url or not code:
                continue
            tracks.append(CaptionTrack(
                language_code=code,
                url=url,
                name=_text_of(raw.get("name")),
                kind=_as_str(raw.get("kind")) or None,
            ))

    return PlayerResponse(
        status=status if isinstance(status, str) else None,
        reason=_text_of(reason) or None,
        caption_tracks=tracks,
    )


def decode_piped_subtitles(data: Any, base_url: Optional[str] = None) -> List[CaptionTrack]:
    """
    Piped /streams/{id}: {"subtitles": [{"code"|"languageCode", "url", "name", "mimeType"}]}.

    Some instances proxy subtitles through themselves and return a path; it is
    resolved against base_url when one is given.
    """
    subtitles = _get_path(data, "subtitles")
    if not isinstance(subtitles, list):
        return []

    tracks = []
    for raw in subtitles:
        if not isinstance(raw, dict):
            continue
        url = _as_str(raw.get("url"))
        code = _as_str(raw.get("code")) or _as_str(raw.get("languageCode"))
        if not url:
            continue
        mime = _as_str(raw.get("mimeType"))
        tracks.append(CaptionTrack(
            language_code=code,
            url=urljoin(base_url.rstrip("/") + "/", url) if base_url else url,
            name=_as_str(raw.get("name")),
            ext=mime.rsplit("/", 1)[-1] if mime else None,
            kind="asr" if raw.get("autoGenerated") is True else None,
        ))
    return tracks


def decode_invidious_captions(data: Any, base_url: str) -> List[CaptionTrack]:
    """
    Invidious /api/v1/captions/{id}: a bare list or {"captions": [...]} of
    {"languageCode", "label", "url"}; url is usually relative to the instance.
    """
    captions = data.get("captions") if isinstance(data, dict) else data
    if not isinstance(captions, list):
        return []

    tracks = []
    for raw in captions:
        if not isinstance(raw, dict):
            continue
        url = _as_str(raw.get("url"))
        if not url:
            continue
        tracks.append(CaptionTrack(
            language_code=_as_str(raw.get("languageCode")),
            url=urljoin(base_url.rstrip("/") + "/", url),
            name=_as_str(raw.get("label")),
            ext="vtt",
        ))
    return tracks


def decode_ytdlp_subtitle_map(data: Any, field_name: str) -> Dict[str, List[CaptionTrack]]:
    """yt-dlp info JSON: {"subtitles": {"en": [{"ext", "url", "name"}]}, "automatic_captions": {...}}."""
    raw_map = _get_path(data, field_name)
    if not isinstance(raw_map, dict):
        return {}

    decoded = {}
    for code, entries in raw_map.items():
        if not isinstance(code, str) or not isinstance(entries, list):
            continue
        tracks = [
            CaptionTrack(
                language_code=code,
                url=_as_str(entry.get("url")),
                name=_as_str(entry.get("name")),
                ext=_as_str(entry.get("ext")) or None,
            )
            for entry in entries
            if isinstance(entry, dict) and _as_str(entry.get("url"))
        ]
        if tracks:
            decoded[code] = tracks
    return decoded
