#!/usr/bin/env python3
"""
Reliability Configuration Management for the Transcript Cascade

This module provides centralized configuration for the transcript strategies:
cookies, proxies, timeouts, mirror federations, client profiles and the
cascade order. Settings are read once from environment variables with
sensible defaults; bad values are clamped or replaced, never fatal.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from cookie_utils import cookie_header_from_netscape_file
from error_handler import DIGEST_SEPARATOR, MIN_ENTRY_MESSAGE_CHARS
from logging_setup import get_logger

logger = get_logger(__name__)

# Hand-tuned order: fastest and most reliable first. The hosted proxy only
# runs when TRANSCRIPT_PROXY_URL is configured.
DEFAULT_STRATEGY_ORDER = (
    "transcript_proxy",
    "transcript_api",
    "innertube",
    "piped",
    "invidious",
    "watch_page",
    "ytdlp",
    "legacy_timedtext",
)

# Smallest digest bound that fits every strategy label plus a short message, so
# the aggregated error never outgrows its configured size.
MIN_FAILURE_DIGEST_CHARS = len(DEFAULT_STRATEGY_ORDER) * (
    max(len(name) for name in DEFAULT_STRATEGY_ORDER) + len(": ") + MIN_ENTRY_MESSAGE_CHARS + len(DIGEST_SEPARATOR)
)

DEFAULT_PIPED_INSTANCES = (
    "https://pipedapi.kavin.rocks",
    "https://api.piped.privacy.com.de",
    "https://piped-api.lunar.icu",
    "https://pipedapi.drgns.space",
    "https://api.piped.yt",
    "https://piped-api.garudalinux.org",
    "https://pa.il.ax",
    "https://p.odyssey346.dev",
    "https://api.piped.projectsegfau.lt",
    "https://pipedapi.system41.xyz",
    "https://api.piped.zing.studio",
    "https://piped.video",
    "https://piped.tokhmi.xyz",
    "https://piped.moomoo.me",
    "https://piped.syncpundit.io",
    "https://piped.mha.fi",
)

DEFAULT_INVIDIOUS_INSTANCES = (
    "https://inv.tux.pizza",
    "https://invidious.flokinet.to",
    "https://invidious.projectsegfau.lt",
    "https://vid.puffyan.us",
    "https://yewtu.be",
    "https://yt.artemislena.eu",
    "https://invidious.privacydev.net",
    "https://iv.ggtyler.dev",
    "https://invidious.lunar.icu",
    "https://inv.nadeko.net",
    "https://invidious.protokolla.fi",
    "https://invidious.drgns.space",
    "https://invidious.jing.rocks",
    "https://invidious.nerdvpn.de",
)

DEFAULT_INNERTUBE_CLIENTS = ("ANDROID", "IOS", "TV_EMBEDDED", "WEB")
DEFAULT_YTDLP_CLIENTS = ("web", "ios", "android", "tv_embedded")


@dataclass
class ReliabilityConfig:
    """Configuration for the transcript cascade and its strategies."""

    # Upstream identity
    cookie_header: Optional[str] = None
    proxy_url: Optional[str] = None
    transcript_proxy_url: Optional[str] = None

    # Cascade
    strategy_order: Tuple[str, ...] = DEFAULT_STRATEGY_ORDER
    failure_digest_max_chars: int = 600

    # Timeouts (seconds)
    request_timeout: float = 15.0
    mirror_request_timeout: float = 6.0
    ytdlp_timeout: int = 60

    # Mirror federations
    piped_instances: Tuple[str, ...] = DEFAULT_PIPED_INSTANCES
    invidious_instances: Tuple[str, ...] = DEFAULT_INVIDIOUS_INSTANCES

    # Client profiles
    innertube_clients: Tuple[str, ...] = DEFAULT_INNERTUBE_CLIENTS
    ytdlp_clients: Tuple[str, ...] = DEFAULT_YTDLP_CLIENTS
    ytdlp_binary: Optional[str] = None
    ytdlp_geo_bypass: bool = False

    # Problems found while loading, reported by health diagnostics
    config_errors: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> 'ReliabilityConfig':
        """Load configuration from environment variables with validation."""
        errors: List[str] = []

        cookie_header = _clean(os.getenv("YOUTUBE_COOKIES"))
        cookie_file = _clean(os.getenv("YOUTUBE_COOKIES_FILE"))
        if not cookie_header and cookie_file:
            try:
                cookie_header = cookie_header_from_netscape_file(Path(cookie_file))
            except OSError as e:
                errors.append(f"YOUTUBE_COOKIES_FILE unreadable: {e}")
                logger.error(f"Failed to read YOUTUBE_COOKIES_FILE {cookie_file}: {e}")

        proxy_url = _clean(os.getenv("YOUTUBE_PROXY_URL"))
        if proxy_url and not proxy_url.startswith(("http://", "https://", "socks5://", "socks5h://")):
            errors.append("YOUTUBE_PROXY_URL must start with http://, https:// or socks5://")
            logger.error("Ignoring YOUTUBE_PROXY_URL: unsupported scheme")
            proxy_url = None

        transcript_proxy_url = _clean(os.getenv("TRANSCRIPT_PROXY_URL"))
        if transcript_proxy_url and not transcript_proxy_url.startswith(("http://", "https://")):
            errors.append("TRANSCRIPT_PROXY_URL must be an http(s) URL")
            logger.error("Ignoring TRANSCRIPT_PROXY_URL: not an http(s) URL")
            transcript_proxy_url = None

        strategy_order = cls._parse_list_env("TRANSCRIPT_STRATEGIES", DEFAULT_STRATEGY_ORDER, lower=True)
        unknown = [name for name in strategy_order if name not in DEFAULT_STRATEGY_ORDER]
        if unknown:
            errors.append(f"Unknown strategies ignored: {', '.join(unknown)}")
            logger.error(f"TRANSCRIPT_STRATEGIES contains unknown names: {unknown}")
            strategy_order = tuple(name for name in strategy_order if name in DEFAULT_STRATEGY_ORDER)

        config = cls(
            cookie_header=cookie_header,
            proxy_url=proxy_url,
            transcript_proxy_url=transcript_proxy_url,
            strategy_order=strategy_order or DEFAULT_STRATEGY_ORDER,
            failure_digest_max_chars=cls._parse_int_env("FAILURE_DIGEST_MAX_CHARS", 600, min_val=MIN_FAILURE_DIGEST_CHARS, max_val=2000),
            request_timeout=cls._parse_float_env("REQUEST_TIMEOUT", 15.0, min_val=2.0, max_val=60.0),
            mirror_request_timeout=cls._parse_float_env("MIRROR_REQUEST_TIMEOUT", 6.0, min_val=1.0, max_val=15.0),
            ytdlp_timeout=cls._parse_int_env("YTDLP_TIMEOUT", 60, min_val=10, max_val=300),
            piped_instances=cls._parse_list_env("PIPED_INSTANCES", DEFAULT_PIPED_INSTANCES),
            invidious_instances=cls._parse_list_env("INVIDIOUS_INSTANCES", DEFAULT_INVIDIOUS_INSTANCES),
            innertube_clients=cls._parse_list_env("INNERTUBE_CLIENTS", DEFAULT_INNERTUBE_CLIENTS, upper=True),
            ytdlp_clients=cls._parse_list_env("YTDLP_CLIENTS", DEFAULT_YTDLP_CLIENTS, lower=True),
            ytdlp_binary=_clean(os.getenv("YTDLP_BINARY")),
            ytdlp_geo_bypass=cls._parse_bool_env("YTDLP_GEO_BYPASS", False),
            config_errors=errors,
        )

        config._validate_config()
        config._log_config()
        return config

    @staticmethod
    def _parse_bool_env(env_var: str, default: bool) -> bool:
        value = os.getenv(env_var, str(default).lower())
        return value.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int_env(env_var: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
        try:
            value = int(os.getenv(env_var, str(default)))
        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default
        return _clamp(env_var, value, min_val, max_val)

    @staticmethod
    def _parse_float_env(env_var: str, default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
        try:
            value = float(os.getenv(env_var, str(default)))
        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default
        return _clamp(env_var, value, min_val, max_val)

    @staticmethod
    def _parse_list_env(env_var: str, default: Tuple[str, ...], lower: bool = False, upper: bool = False) -> Tuple[str, ...]:
        raw = os.getenv(env_var)
        if not raw or not raw.strip():
            return tuple(default)
        items = [item.strip() for item in raw.split(",") if item.strip()]
        if lower:
            items = [item.lower() for item in items]
        if upper:
            items = [item.upper() for item in items]
        if not items:
            logger.warning(f"{env_var} is empty after parsing, using defaults")
            return tuple(default)
        return tuple(items)

    def _validate_config(self) -> None:
        """Log warnings for problematic combinations."""
        warnings = []

        if self.mirror_request_timeout >= self.request_timeout:
            warnings.append(
                f"Mirror timeout ({self.mirror_request_timeout}s) should be shorter than request timeout ({self.request_timeout}s)"
            )
        if "transcript_proxy" in self.strategy_order and not self.transcript_proxy_url:
            logger.debug("transcript_proxy strategy skipped: TRANSCRIPT_PROXY_URL not set")
        if not self.piped_instances and "piped" in self.strategy_order:
            warnings.append("piped strategy enabled with no instances")
        if not self.invidious_instances and "invidious" in self.strategy_order:
            warnings.append("invidious strategy enabled with no instances")

        for warning in warnings:
            logger.warning(f"Configuration warning: {warning}")

    def _log_config(self) -> None:
        logger.info("Transcript cascade configuration loaded:")
        logger.info(f"  Strategies: {', '.join(self.strategy_order)}")
        logger.info(f"  Identity: cookies={'set' if self.cookie_header else 'none'}, proxy={'set' if self.proxy_url else 'none'}, transcript_proxy={'set' if self.transcript_proxy_url else 'none'}")
        logger.info(f"  Timeouts: request={self.request_timeout}s, mirror={self.mirror_request_timeout}s, ytdlp={self.ytdlp_timeout}s")
        logger.info(f"  Mirrors: piped={len(self.piped_instances)}, invidious={len(self.invidious_instances)}")

    def to_dict(self) -> Dict[str, Any]:
        """Configuration summary without secrets."""
        return {
            "strategies": list(self.strategy_order),
            "identity": {
                "cookies_configured": bool(self.cookie_header),
                "proxy_configured": bool(self.proxy_url),
                "transcript_proxy_configured": bool(self.transcript_proxy_url),
            },
            "timeouts": {
                "request_timeout": self.request_timeout,
                "mirror_request_timeout": self.mirror_request_timeout,
                "ytdlp_timeout": self.ytdlp_timeout,
            },
            "mirrors": {
                "piped": len(self.piped_instances),
                "invidious": len(self.invidious_instances),
            },
            "clients": {
                "innertube": list(self.innertube_clients),
                "ytdlp": list(self.ytdlp_clients),
            },
            "errors": list(self.config_errors),
        }


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clamp(env_var: str, value, min_val, max_val):
    if min_val is not None and value < min_val:
        logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
        return min_val
    if max_val is not None and value > max_val:
        logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
        return max_val
    return value


# Global configuration instance
_reliability_config: Optional[ReliabilityConfig] = None


def get_reliability_config() -> ReliabilityConfig:
    """Get the global configuration instance, reading the environment once."""
    global _reliability_config
    if _reliability_config is None:
        _reliability_config = ReliabilityConfig.from_env()
    return _reliability_config


def reload_reliability_config() -> ReliabilityConfig:
    """Reload configuration from environment variables."""
    global _reliability_config
    _reliability_config = ReliabilityConfig.from_env()
    return _reliability_config
