"""
httpx client factory for upstream requests.

Every strategy talks to YouTube and its mirrors through clients built here so
that proxy, cookie and cache-busting behaviour stay identical across them.
"""

from typing import Dict, Optional

import httpx

from logging_setup import get_logger
from reliability_config import ReliabilityConfig
from strategy_result import AttemptFailed, FailClass

logger = get_logger(__name__)

# Edge caches in front of some mirrors serve stale "no captions" answers
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
}


def build_headers(user_agent: Optional[str], cookie_header: Optional[str] = None,
                  extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = dict(NO_CACHE_HEADERS)
    if user_agent is not None:
        # An empty string is sent as-is: mirrors expect a blank User-Agent
        headers["User-Agent"] = user_agent
    if cookie_header:
        headers["Cookie"] = cookie_header
    if extra:
        headers.update(extra)
    return headers


def build_async_client(
    config: ReliabilityConfig,
    user_agent: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    use_cookies: bool = True,
    use_proxy: bool = True,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient for one strategy run.

    Args:
        config: loaded configuration (cookies, proxy, timeouts)
        user_agent: default User-Agent header; None leaves httpx's default
        timeout: seconds, defaults to config.request_timeout
        transport: injected transport (tests use httpx.MockTransport)
        use_cookies: attach the configured cookie header
        use_proxy: route through YOUTUBE_PROXY_URL when configured
    """
    timeout = httpx.Timeout(timeout if timeout is not None else config.request_timeout)
    headers = build_headers(user_agent, config.cookie_header if use_cookies else None)

    kwargs = {
        "timeout": timeout,
        "headers": headers,
        "follow_redirects": True,
    }
    if transport is not None:
        kwargs["transport"] = transport
    elif use_proxy and config.proxy_url:
        kwargs["proxy"] = config.proxy_url

    logger.debug(
        f"httpx client: proxy={'on' if 'proxy' in kwargs else 'off'}, "
        f"cookies={'on' if 'Cookie' in headers else 'off'}, timeout={timeout.read}s"
    )
    return httpx.AsyncClient(**kwargs)


def raise_for_upstream_status(response: httpx.Response) -> None:
    """
    Turn a non-2xx response into an attempt failure.

    429 is how YouTube throttles flagged IPs, so it is reported as bot
    detection rather than a plain HTTP error.
    """
    if response.is_success:
        return
    if response.status_code == 429:
        raise AttemptFailed("HTTP 429 (rate limited)", FailClass.BOT_DETECTION)
    raise AttemptFailed(f"HTTP {response.status_code}", FailClass.HTTP_ERROR)
