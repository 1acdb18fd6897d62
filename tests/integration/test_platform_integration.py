"""Integration tests against a live telephony platform.

These tests reuse the session stored by ``voicemail-sync login`` and are
skipped unless ``VOICEMAIL_SYNC_INTEGRATION=1`` is set.
"""

import os

import pytest

from voicemail_sync.config import get_settings
from voicemail_sync.widget import VoicemailWidget

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.environ.get("VOICEMAIL_SYNC_INTEGRATION") != "1",
        reason="set VOICEMAIL_SYNC_INTEGRATION=1 and log in first",
    ),
]


class TestPlatformIntegration:
    """Integration tests for the platform voicemail API."""

    @pytest.mark.asyncio
    async def test_fetch_first_page(self) -> None:
        """Test that the stored session can list the first page of voicemails."""
        widget = VoicemailWidget.create(get_settings())
        try:
            if not widget.session.is_authenticated:
                pytest.skip("no stored session")
            await widget.synchronizer.fetch(page_number=1)
            assert widget.synchronizer.error_message is None
            assert widget.synchronizer.display_count <= widget.settings.page_size
        finally:
            await widget.unmount()

    @pytest.mark.asyncio
    async def test_notification_channel_connects(self) -> None:
        """Test creating and subscribing a notification channel."""
        widget = VoicemailWidget.create(get_settings())
        try:
            if not widget.session.is_authenticated:
                pytest.skip("no stored session")
            assert await widget.channel.connect(widget.session.access_token()) is True
        finally:
            await widget.unmount()
