"""Unit tests for the Teams notifier."""

import json

import httpx
import pytest

from docsync.notifier import TeamsNotifier, build_message_card


class TestTeamsNotifier:
    """Test cases for TeamsNotifier."""

    @pytest.mark.asyncio
    async def test_unconfigured_is_skipped(self):
        """Without a webhook URL nothing is sent."""
        notifier = TeamsNotifier(None)

        assert notifier.enabled is False
        assert await notifier.notify("title", "message") is False

    @pytest.mark.asyncio
    async def test_posts_message_card(self):
        """The card carries the title and message."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="1")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = TeamsNotifier("https://teams.test/webhook", client=client)

        assert await notifier.notify("Docs updated", "Commit abc1234") is True

        body = json.loads(requests[0].content)
        assert body == build_message_card("Docs updated", "Commit abc1234")
        assert body["@type"] == "MessageCard"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_failures_are_ignored(self):
        """Errors from the webhook are logged and swallowed."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        notifier = TeamsNotifier("https://teams.test/webhook", client=client)

        assert await notifier.notify("title", "message") is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_errors_are_ignored(self):
        """Connection errors are swallowed too."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = TeamsNotifier("https://teams.test/webhook", client=client)

        assert await notifier.notify("title", "message") is False
        await client.aclose()
