#!/usr/bin/env python3
"""
Tests for the Piped and Invidious federation strategies: concurrent racing,
cancellation of losers, bounded time and failure reporting order.
"""

import asyncio
import os
import sys
import time
import unittest

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mirror_service import InvidiousStrategy, MirrorFederationStrategy, PipedStrategy, instance_label
from reliability_config import ReliabilityConfig
from strategy_result import AttemptFailed, FailClass

VIDEO_ID = "dQw4w9WgXcQ"
VTT_BODY = "WEBVTT\n\n1\n00:00:00.000 --> 00:00:02.000\nhello from the mirror\n"


def piped_streams(host):
    return {"title": "x", "subtitles": [
        {"url": f"https://{host}/subs/{VIDEO_ID}.vtt", "mimeType": "text/vtt", "code": "en", "name": "English"},
    ]}


class FakeFederation:
    """
    Async MockTransport handler where every host has a scripted behaviour:
    ("ok", delay), ("hang",), ("status", code, delay), ("json", payload, delay).
    """

    def __init__(self, behaviours):
        self.behaviours = behaviours
        self.requests = []
        self.cancelled = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        behaviour = self.behaviours[host]
        kind = behaviour[0]
        try:
            if kind == "hang":
                await asyncio.sleep(30)
            elif kind == "ok":
                await asyncio.sleep(behaviour[1])
                if request.url.path.startswith("/subs/"):
                    return httpx.Response(200, text=VTT_BODY)
                if request.url.path.startswith("/api/v1/captions/"):
                    return httpx.Response(200, json={"captions": [
                        {"label": "English", "languageCode": "en", "url": f"/subs/{VIDEO_ID}.vtt"},
                    ]})
                return httpx.Response(200, json=piped_streams(host))
            elif kind == "status":
                await asyncio.sleep(behaviour[2])
                return httpx.Response(behaviour[1], text="unavailable")
            elif kind == "json":
                await asyncio.sleep(behaviour[2])
                return httpx.Response(200, json=behaviour[1])
        except asyncio.CancelledError:
            self.cancelled.append(host)
            raise
        return httpx.Response(404)


class TestPipedRace(unittest.IsolatedAsyncioTestCase):

    def _config(self, hosts, timeout=1.0, **kwargs):
        return ReliabilityConfig(
            piped_instances=tuple(f"https://{host}" for host in hosts),
            invidious_instances=tuple(f"https://{host}" for host in hosts),
            mirror_request_timeout=timeout,
            **kwargs
        )

    async def test_single_success_among_failures_and_hangs(self):
        behaviours = {
            "hang1.example": ("hang",),
            "down.example": ("status", 502, 0.01),
            "good.example": ("ok", 0.2),
            "hang2.example": ("hang",),
            "empty.example": ("json", {"subtitles": []}, 0.05),
        }
        fake = FakeFederation(behaviours)
        strategy = PipedStrategy(self._config(behaviours), transport=httpx.MockTransport(fake))

        started = time.monotonic()
        result = await strategy.fetch(VIDEO_ID)
        elapsed = time.monotonic() - started

        self.assertTrue(result.ok)
        self.assertEqual(result.transcript, "hello from the mirror")
        self.assertEqual(result.detail, "good.example")
        # Bounded by the winner's delay, not by the per-instance deadline
        self.assertLess(elapsed, 1.0)
        self.assertCountEqual(fake.cancelled, ["hang1.example", "hang2.example"])

    async def test_all_instances_hang_bounded_by_deadline(self):
        behaviours = {f"hang{i}.example": ("hang",) for i in range(6)}
        strategy = PipedStrategy(self._config(behaviours, timeout=0.3),
                                 transport=httpx.MockTransport(FakeFederation(behaviours)))

        started = time.monotonic()
        result = await strategy.fetch(VIDEO_ID)
        elapsed = time.monotonic() - started

        self.assertFalse(result.ok)
        self.assertEqual(result.fail_class, FailClass.TIMEOUT)
        # One deadline (2 x 0.3s) for the whole race, not six
        self.assertLess(elapsed, 1.5)

    async def test_failures_reported_in_configured_order(self):
        behaviours = {
            "a.example": ("status", 500, 0.15),
            "b.example": ("json", {"error": "Video unavailable"}, 0.1),
            "c.example": ("json", {"subtitles": []}, 0.01),
        }
        strategy = PipedStrategy(self._config(behaviours),
                                 transport=httpx.MockTransport(FakeFederation(behaviours)))

        result = await strategy.fetch(VIDEO_ID)

        self.assertFalse(result.ok)
        error = result.error
        self.assertLess(error.index("a.example"), error.index("b.example"))
        self.assertLess(error.index("b.example"), error.index("c.example"))
        self.assertIn("a.example: HTTP 500", error)
        self.assertIn("b.example: Video unavailable", error)
        self.assertIn("c.example: no subtitles", error)

    async def test_mirrors_get_no_cookies_and_blank_user_agent(self):
        behaviours = {"good.example": ("ok", 0)}
        fake = FakeFederation(behaviours)
        config = self._config(behaviours, cookie_header="SID=secret", proxy_url="http://proxy.example:8080")
        strategy = PipedStrategy(config, transport=httpx.MockTransport(fake))

        result = await strategy.fetch(VIDEO_ID)

        self.assertTrue(result.ok)
        for request in fake.requests:
            self.assertNotIn("cookie", request.headers)
            self.assertEqual(request.headers["user-agent"], "")

    async def test_relative_subtitle_url_resolved_against_instance(self):
        payload = {"subtitles": [{"code": "en", "url": f"/subs/{VIDEO_ID}.vtt"}]}
        fake = FakeFederation({"p.example": ("json", payload, 0)})

        async def handler(request):
            if request.url.path.startswith("/subs/"):
                return httpx.Response(200, text=VTT_BODY)
            return await fake(request)

        strategy = PipedStrategy(self._config(["p.example"]), transport=httpx.MockTransport(handler))
        result = await strategy.fetch(VIDEO_ID)

        self.assertTrue(result.ok)
        self.assertEqual(result.detail, "p.example")
        self.assertEqual(result.transcript, "hello from the mirror")

    async def test_no_instances_is_config_error(self):
        strategy = PipedStrategy(ReliabilityConfig(piped_instances=()))

        result = await strategy.fetch(VIDEO_ID)

        self.assertEqual(result.fail_class, FailClass.CONFIG_ERROR)

    async def test_bot_check_page_from_instance(self):
        behaviours = {"cf.example": ("status", 200, 0)}

        def handler(request):
            return httpx.Response(200, text="<!DOCTYPE html><html><body>Please complete the captcha</body></html>")

        strategy = PipedStrategy(self._config(behaviours), transport=httpx.MockTransport(handler))
        result = await strategy.fetch(VIDEO_ID)

        self.assertEqual(result.fail_class, FailClass.BOT_DETECTION)
        self.assertIn("instance served a bot check", result.error)


class TestInvidiousRace(unittest.IsolatedAsyncioTestCase):

    async def test_relative_caption_url_resolved_against_instance(self):
        behaviours = {"down.example": ("status", 503, 0), "inv.example": ("ok", 0.05)}
        fake = FakeFederation(behaviours)
        config = ReliabilityConfig(invidious_instances=("https://down.example", "https://inv.example"),
                                   mirror_request_timeout=1.0)

        result = await InvidiousStrategy(config, transport=httpx.MockTransport(fake)).fetch(VIDEO_ID)

        self.assertTrue(result.ok)
        self.assertEqual(result.detail, "inv.example")
        caption_request = fake.requests[-1]
        self.assertEqual(str(caption_request.url), f"https://inv.example/subs/{VIDEO_ID}.vtt")


class TestDecodeJson(unittest.TestCase):

    def test_error_payload(self):
        response = httpx.Response(200, json={"error": "Sign in to confirm you're not a bot"})

        with self.assertRaises(AttemptFailed) as ctx:
            MirrorFederationStrategy.decode_json(response)
        self.assertEqual(ctx.exception.fail_class, FailClass.BOT_DETECTION)

    def test_html_instead_of_json(self):
        response = httpx.Response(200, text="<html><body>maintenance</body></html>")

        with self.assertRaises(AttemptFailed) as ctx:
            MirrorFederationStrategy.decode_json(response)
        self.assertEqual(str(ctx.exception), "HTML instead of JSON")

    def test_invalid_json(self):
        with self.assertRaises(AttemptFailed) as ctx:
            MirrorFederationStrategy.decode_json(httpx.Response(200, text="{nope"))
        self.assertEqual(ctx.exception.fail_class, FailClass.INVALID_RESPONSE)

    def test_valid_payload(self):
        data = MirrorFederationStrategy.decode_json(httpx.Response(200, json={"subtitles": []}))
        self.assertEqual(data, {"subtitles": []})

    def test_instance_label(self):
        self.assertEqual(instance_label("https://pipedapi.kavin.rocks/"), "pipedapi.kavin.rocks")


if __name__ == '__main__':
    unittest.main()
