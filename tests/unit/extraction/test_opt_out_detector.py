"""Unit tests for /STOP detection."""

from datetime import datetime, timezone

import pytest

from driver_locator.schemas.matching import MessagePayload
from driver_locator.services.extraction.opt_out_detector import has_stop_command, is_stop_message


class TestIsStopMessage:

    @pytest.mark.parametrize("text", ["/STOP", "/stop", "  /Stop  ", "/STOP\n"])
    def test_exact_command(self, text):
        assert is_stop_message(text) is True

    @pytest.mark.parametrize(
        "text",
        ["STOP", "/STOP please", "please /STOP", "/STOPPED", "/ STOP", "", None],
    )
    def test_anything_else_is_not_a_stop(self, text):
        assert is_stop_message(text) is False


class TestHasStopCommand:

    def test_incoming_stop_detected(self):
        messages = [
            {"direction": "outgoing", "text": "Are you near Phoenix?"},
            {"direction": "incoming", "text": "/STOP"},
        ]
        assert has_stop_command(messages) is True

    def test_outgoing_stop_ignored(self):
        messages = [{"direction": "outgoing", "text": "/STOP"}]
        assert has_stop_command(messages) is False

    def test_attribute_messages(self):
        messages = [
            MessagePayload(
                id="m1",
                direction="incoming",
                text="/stop",
                timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
            )
        ]
        assert has_stop_command(messages) is True

    def test_no_messages(self):
        assert has_stop_command([]) is False
