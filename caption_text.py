"""
Caption text normalization.

Upstream sources rarely declare their subtitle format, so the format is
sniffed from content:

- JSON3 timed text ({"events": [{"segs": [{"utf8": ...}]}]})
- WebVTT / SRT (a WEBVTT header or "-->" cue timing lines)
- Timed-text XML (<text>, <p> or <s> segments; srv1, srv3, TTML)
- anything else is treated as plain text

Whatever the input, the output is one line of plain text with no tags,
no timing codes, no entity references and single spaces only.
"""

import html
import json
import re
from typing import List, Optional

from strategy_result import AttemptFailed, FailClass

TIMESTAMP_LINE_RE = re.compile(
    r'^\s*(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}\s*-->\s*(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}\b.*$'
)
VTT_HEADER_RE = re.compile(r'^\ufeff?WEBVTT(?:\s|$)')
VTT_METADATA_RE = re.compile(r'^(?:Kind|Language|X-TIMESTAMP-MAP)\s*[:=]', re.IGNORECASE)
VTT_BLOCK_RE = re.compile(r'^(?:NOTE|STYLE|REGION)(?:\s|$)')
CUE_NUMBER_RE = re.compile(r'^\d+$')

# Opening tag must not be self-closing, otherwise <p d="0"/> would swallow
# everything up to the next </p>.
XML_SEGMENT_RE = re.compile(
    r'<(text|p|s)(?:\s[^>]*)?(?<!/)>(.*?)</\1\s*>',
    re.DOTALL | re.IGNORECASE,
)
BR_RE = re.compile(r'<br\s*/?>', re.IGNORECASE)
TAG_RE = re.compile(r'<[^>]*>')
WHITESPACE_RE = re.compile(r'\s+')

MAX_ENTITY_PASSES = 10


class EmptyCaptionsError(AttemptFailed, ValueError):
    """Raised when a caption payload holds no text once cleaned."""

    def __init__(self, message: str = "caption text empty after normalization"):
        super().__init__(message, FailClass.PARSE_EMPTY)


def _decode_entities(text: str) -> str:
    # Timed text is frequently double-escaped (&amp;#39;), decode until stable
    for _ in range(MAX_ENTITY_PASSES):
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    return text


def clean_fragment(text: str) -> str:
    """Strip markup, decode entities and collapse whitespace in one fragment."""
    text = BR_RE.sub(' ', text)
    text = TAG_RE.sub('', text)
    text = _decode_entities(text)
    # Decoding &lt;b&gt; can reveal new tags
    text = TAG_RE.sub('', text)
    return WHITESPACE_RE.sub(' ', text).strip()


def _is_vtt(raw: str) -> bool:
    stripped = raw.lstrip()
    if VTT_HEADER_RE.match(stripped):
        return True
    return any(TIMESTAMP_LINE_RE.match(line) for line in stripped.splitlines())


def _json3_segments(raw: str) -> Optional[List[str]]:
    stripped = raw.lstrip()
    if not stripped.startswith('{') or '"events"' not in stripped:
        return None
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    events = data.get('events') if isinstance(data, dict) else None
    if not isinstance(events, list):
        return None

    parts = []
    for event in events:
        segs = event.get('segs') if isinstance(event, dict) else None
        if not isinstance(segs, list):
            continue
        parts.append(''.join(
            seg.get('utf8', '') for seg in segs
            if isinstance(seg, dict) and isinstance(seg.get('utf8'), str)
        ))
    return parts


def _vtt_text_lines(raw: str) -> List[str]:
    lines = raw.splitlines()
    kept = []
    in_block = False
    seen_content = False

    for index, raw_line in enumerate(lines):
        line = raw_line.strip()

        if in_block:
            if not line:
                in_block = False
            continue
        if not line:
            continue
        if not seen_content and VTT_HEADER_RE.match(line):
            seen_content = True
            continue
        seen_content = True
        if VTT_METADATA_RE.match(line):
            continue
        if VTT_BLOCK_RE.match(line):
            in_block = True
            continue
        if TIMESTAMP_LINE_RE.match(line):
            continue
        if CUE_NUMBER_RE.match(line) and _next_line_is_timing(lines, index):
            continue
        kept.append(line)

    return kept


def _next_line_is_timing(lines: List[str], index: int) -> bool:
    for candidate in lines[index + 1:]:
        if candidate.strip():
            return TIMESTAMP_LINE_RE.match(candidate.strip()) is not None
    return False


def _xml_segments(raw: str) -> List[str]:
    return [match.group(2) for match in XML_SEGMENT_RE.finditer(raw)]


def normalize_caption_text(raw: Optional[str]) -> str:
    """
    Convert any supported subtitle serialization into flattened plain text.

    Raises:
        EmptyCaptionsError: nothing readable was left after cleaning
    """
    if not raw or not raw.strip():
        raise EmptyCaptionsError("caption payload empty")

    json3 = _json3_segments(raw)
    if json3 is not None:
        fragments = json3
    elif _is_vtt(raw):
        fragments = [' '.join(_vtt_text_lines(raw))]
    else:
        fragments = _xml_segments(raw) or [raw]

    text = ' '.join(cleaned for cleaned in (clean_fragment(f) for f in fragments) if cleaned)
    if not text:
        raise EmptyCaptionsError()
    return text


def drop_cue_numbers(raw: str) -> str:
    """Remove SRT-style cue counters that some mirrors leave in their VTT output."""
    lines = raw.splitlines()
    return '\n'.join(
        line for index, line in enumerate(lines)
        if not (CUE_NUMBER_RE.match(line.strip()) and _next_line_is_timing(lines, index))
    )


def dedupe_rolling_lines(raw: str) -> str:
    """
    Drop repeated text lines from auto-generated VTT.

    Auto captions roll: every cue repeats the previous cue's last line before
    adding a new one, which would otherwise double most of the transcript.
    """
    kept = []
    last_text = None
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or TIMESTAMP_LINE_RE.match(stripped):
            kept.append(line)
            continue
        text = clean_fragment(stripped)
        if text and text == last_text:
            continue
        if text:
            last_text = text
        kept.append(line)
    return '\n'.join(kept)
