"""
Command line entry point: fetch-transcript <url-or-id>

Loads a .env file if present, configures JSON logging on stderr and prints
the transcript (or health diagnostics) on stdout.
"""

import argparse
import asyncio
import dataclasses
import json
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from error_handler import InvalidVideoIdError, TranscriptUnavailableError
from logging_setup import configure_logging
from reliability_config import ReliabilityConfig
from transcript_service import TranscriptService
from video_id import extract_video_id, is_valid_video_id

EXIT_OK = 0
EXIT_UNAVAILABLE = 1
EXIT_BAD_INPUT = 2


def _resolve_video_id(value: str) -> Optional[str]:
    value = value.strip()
    if is_valid_video_id(value):
        return value
    return extract_video_id(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fetch-transcript",
        description="Fetch the caption text of a YouTube video.",
    )
    parser.add_argument("video", nargs="?", help="YouTube URL or 11-character video ID")
    parser.add_argument("--strategies", help="comma-separated cascade order (overrides TRANSCRIPT_STRATEGIES)")
    parser.add_argument("--health", action="store_true", help="print configuration and metrics as JSON and exit")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL or INFO)")
    parser.add_argument("--plain-logs", action="store_true", help="human-readable logs instead of JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = args.log_level or os.getenv("LOG_LEVEL", "INFO")
    use_json = not args.plain_logs and os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level, use_json=use_json)

    config = ReliabilityConfig.from_env()
    if args.strategies:
        order = tuple(name.strip().lower() for name in args.strategies.split(",") if name.strip())
        if order:
            config = dataclasses.replace(config, strategy_order=order)
    service = TranscriptService(config=config)

    if args.health:
        print(json.dumps(service.get_health_diagnostics(), indent=2, default=str))
        return EXIT_OK

    if not args.video:
        parser.error("a video URL or ID is required")

    video_id = _resolve_video_id(args.video)
    if video_id is None:
        print(f"Could not find a YouTube video ID in {args.video!r}", file=sys.stderr)
        return EXIT_BAD_INPUT

    try:
        transcript = asyncio.run(service.fetch_transcript(video_id))
    except InvalidVideoIdError as e:
        print(str(e), file=sys.stderr)
        return EXIT_BAD_INPUT
    except TranscriptUnavailableError as e:
        print(str(e), file=sys.stderr)
        return EXIT_UNAVAILABLE

    print(transcript)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
