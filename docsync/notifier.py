"""Microsoft Teams alerting for commit outcomes."""

from __future__ import annotations

from typing import Any, Dict

import httpx

from docsync.logger import get_logger

logger = get_logger()


def build_message_card(title: str, message: str) -> Dict[str, Any]:
    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "summary": title,
        "themeColor": "0076D7",
        "title": title,
        "text": message,
    }


class TeamsNotifier:
    """Fire-and-forget Teams webhook sink; a no-op when no webhook is configured."""

    def __init__(
        self,
        webhook_url: str | None,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def notify(self, title: str, message: str) -> bool:
        if not self.enabled:
            logger.debug("Microsoft Teams webhook not configured. Skipping notification.")
            return False

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await self._client.post(self._webhook_url, json=build_message_card(title, message))
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error(f"Failed to send Teams notification: {exc}")
            return False

        logger.info("Teams notification sent.")
        return True

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
