"""
Unit tests for log_events.py event helper functions.

Tests the evt() function, StageTimer context manager and strategy_outcome for:
- Consistent event emission
- Outcome reporting for value-returning strategies
- Exception handling
"""

import unittest
import logging
import time
import json
from io import StringIO

# Add parent directory to path for imports
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Import the modules under test
import log_events
from logging_setup import JsonFormatter


class _CapturingTestCase(unittest.TestCase):

    def setUp(self):
        """Route the root logger into a JSON buffer."""
        self.log_buffer = StringIO()

        self.handler = logging.StreamHandler(self.log_buffer)
        self.handler.setFormatter(JsonFormatter())

        self.logger = logging.getLogger()
        self._saved_handlers = self.logger.handlers[:]
        self._saved_level = self.logger.level
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.INFO)

    def tearDown(self):
        self.logger.removeHandler(self.handler)
        self.handler.close()
        for handler in self._saved_handlers:
            self.logger.addHandler(handler)
        self.logger.setLevel(self._saved_level)

    def events(self):
        return [json.loads(line) for line in self.log_buffer.getvalue().splitlines() if line.strip()]


class TestEvtFunction(_CapturingTestCase):
    """Test the evt() function for consistent event emission."""

    def test_evt_basic_event_emission(self):
        log_events.evt("test_event", strategy="innertube", length=42)

        events = self.events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["event"], "test_event")
        self.assertEqual(events[0]["strategy"], "innertube")
        self.assertEqual(events[0]["length"], 42)
        self.assertEqual(events[0]["lvl"], "INFO")

    def test_evt_level(self):
        log_events.evt("transcript_pipeline_exhausted", level=logging.ERROR, detail="all failed")

        event = self.events()[0]
        self.assertEqual(event["lvl"], "ERROR")
        self.assertEqual(event["detail"], "all failed")

    def test_evt_below_level_dropped(self):
        log_events.evt("debug_only", level=logging.DEBUG)

        self.assertEqual(self.events(), [])


class TestStageTimer(_CapturingTestCase):
    """Test the StageTimer context manager."""

    def test_stage_timer_success_case(self):
        with log_events.StageTimer("piped", strategy="piped"):
            time.sleep(0.01)

        start, result = self.events()
        self.assertEqual(start["event"], "stage_start")
        self.assertEqual(result["event"], "stage_result")
        self.assertEqual(result["stage"], "piped")
        self.assertEqual(result["outcome"], "success")
        self.assertEqual(result["strategy"], "piped")
        self.assertGreaterEqual(result["dur_ms"], 10)

    def test_explicit_failure_outcome(self):
        with log_events.StageTimer("innertube") as timer:
            timer.outcome = "failure"
            timer.detail = "no_captions"

        result = self.events()[-1]
        self.assertEqual(result["outcome"], "failure")
        self.assertEqual(result["detail"], "no_captions")

    def test_elapsed_ms(self):
        timer = log_events.StageTimer("unused")
        self.assertEqual(timer.elapsed_ms, 0)

        with timer:
            time.sleep(0.02)
        self.assertGreaterEqual(timer.elapsed_ms, 20)

    def test_stage_timer_exception_handling(self):
        with self.assertRaises(ValueError):
            with log_events.StageTimer("error_stage", profile="IOS"):
                raise ValueError("Test error message")

        result = self.events()[-1]
        self.assertEqual(result["outcome"], "error")
        self.assertIn("ValueError", result["detail"])
        self.assertIn("Test error message", result["detail"])
        self.assertEqual(result["profile"], "IOS")


class TestStrategyOutcome(_CapturingTestCase):

    def test_success_logged_at_info(self):
        log_events.strategy_outcome("watch_page", "success", 120, detail="en", length=900)

        event = self.events()[0]
        self.assertEqual(event["event"], "transcript_method_result")
        self.assertEqual(event["lvl"], "INFO")
        self.assertEqual(event["strategy"], "watch_page")
        self.assertEqual(event["dur_ms"], 120)
        self.assertEqual(event["length"], 900)

    def test_failure_logged_at_warning(self):
        log_events.strategy_outcome("ytdlp", "failure", 3000, fail_class="timeout", detail="timeout")

        event = self.events()[0]
        self.assertEqual(event["lvl"], "WARNING")
        self.assertEqual(event["fail_class"], "timeout")


if __name__ == '__main__':
    unittest.main()
