#!/usr/bin/env python3
"""
Unit tests for UserAgentManager and the player API client profiles
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_agent_manager import (
    ANDROID_UA, DESKTOP_UA, INNERTUBE_PROFILES, UserAgentManager, get_profiles,
)


class TestUserAgentManager(unittest.TestCase):
    """Test cases for UserAgentManager class"""

    def setUp(self):
        """Set up test fixtures"""
        self.ua_manager = UserAgentManager()

    def test_get_user_agent_default(self):
        """Test getting default User-Agent string"""
        user_agent = self.ua_manager.get_user_agent()
        self.assertEqual(user_agent, DESKTOP_UA)
        self.assertIn('Mozilla/5.0', user_agent)
        self.assertIn('Chrome/', user_agent)

    def test_get_user_agent_types(self):
        self.assertEqual(self.ua_manager.get_user_agent('android'), ANDROID_UA)
        self.assertIn('iPhone', self.ua_manager.get_user_agent('ios'))
        self.assertEqual(self.ua_manager.get_user_agent('mirror'), '')

    def test_get_user_agent_invalid_type(self):
        """Test fallback to default for invalid request type"""
        with self.assertLogs(level='WARNING'):
            user_agent = self.ua_manager.get_user_agent('invalid_type')
        self.assertEqual(user_agent, DESKTOP_UA)

    def test_get_transcript_headers(self):
        headers = self.ua_manager.get_transcript_headers('android')

        self.assertEqual(headers['User-Agent'], ANDROID_UA)
        self.assertEqual(headers['Accept-Language'], 'en-US,en;q=0.9')

    def test_yt_dlp_user_agent_matches_page_requests(self):
        self.assertEqual(self.ua_manager.get_yt_dlp_user_agent(), self.ua_manager.get_user_agent())


class TestClientProfiles(unittest.TestCase):

    def test_player_payload(self):
        payload = INNERTUBE_PROFILES["ANDROID"].player_payload("dQw4w9WgXcQ")

        self.assertEqual(payload["videoId"], "dQw4w9WgXcQ")
        self.assertEqual(payload["context"]["client"]["clientName"], "ANDROID")
        self.assertTrue(payload["contentCheckOk"])
        self.assertTrue(payload["racyCheckOk"])
        self.assertNotIn("thirdParty", payload["context"])

    def test_embedded_profile_sends_third_party(self):
        payload = INNERTUBE_PROFILES["TV_EMBEDDED"].player_payload("dQw4w9WgXcQ")

        self.assertEqual(payload["context"]["thirdParty"]["embedUrl"], "https://www.google.com")
        self.assertEqual(payload["context"]["client"]["clientName"], "TVHTML5_SIMPLY_EMBEDDED_PLAYER")

    def test_payload_does_not_share_state(self):
        payload = INNERTUBE_PROFILES["IOS"].player_payload("dQw4w9WgXcQ")
        payload["context"]["client"]["hl"] = "de"

        self.assertEqual(INNERTUBE_PROFILES["IOS"].client_context["hl"], "en")

    def test_headers(self):
        headers = INNERTUBE_PROFILES["WEB"].headers()

        self.assertEqual(headers["Content-Type"], "application/json")
        self.assertEqual(headers["User-Agent"], DESKTOP_UA)
        self.assertEqual(headers["Origin"], "https://www.youtube.com")

    def test_get_profiles_keeps_order_and_skips_unknown(self):
        with self.assertLogs(level='WARNING'):
            profiles = get_profiles(["ios", "NOPE", "ANDROID"])

        self.assertEqual([p.name for p in profiles], ["IOS", "ANDROID"])


if __name__ == '__main__':
    unittest.main()
