"""
Unit tests for the structured logging pipeline.
"""

import json
import logging
from datetime import datetime

from shared.logging import clear_context, configure_logging, get_logger, set_request_id


class TestStructuredLogging:
    """JSON log lines emitted through structlog."""

    def _last_event(self, caplog):
        return json.loads(caplog.records[-1].getMessage())

    def test_event_carries_iso_timestamp(self, caplog):
        caplog.set_level(logging.INFO)
        configure_logging("reports")

        get_logger("reports.timestamps").info("Snapshot served", item_count=3)

        event = self._last_event(caplog)
        assert isinstance(event["timestamp"], str)
        datetime.fromisoformat(event["timestamp"].replace("Z", "+00:00"))
        assert event["event"] == "Snapshot served"
        assert event["level"] == "info"
        assert event["service"] == "reports"

    def test_request_id_is_attached(self, caplog):
        caplog.set_level(logging.INFO)
        configure_logging("reports")
        set_request_id("req-42")
        try:
            get_logger("reports.correlation").info("Refreshing snapshot")
        finally:
            clear_context()

        assert self._last_event(caplog)["request_id"] == "req-42"
