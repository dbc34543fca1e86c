"""
Discord notification channel.

Delivers the cycle summary as a direct message from a bot to the owner,
split into chunks that fit Discord's per-message character limit.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp
from aiohttp import ClientTimeout

from orderwatch.core.config import Settings, get_settings
from orderwatch.utils.error_handler import NotificationDeliveryException
from orderwatch.version import VERSION

logger = logging.getLogger(__name__)

DISCORD_CHARACTER_LIMIT = 2000


def split_message(text: str, limit: int = DISCORD_CHARACTER_LIMIT) -> list[str]:
    """
    Split a message into consecutive chunks of at most ``limit`` characters.

    Chunks are cut at fixed offsets, without regard for word or line breaks.

    Args:
        text: Message to split
        limit: Maximum chunk length

    Returns:
        list[str]: Chunks in order; empty for an empty message
    """
    if limit < 1:
        raise ValueError(f"Chunk limit must be positive: {limit}")
    return [text[start : start + limit] for start in range(0, len(text), limit)]


class DiscordNotifier:
    """
    Sends direct messages to the configured owner through the Discord REST API.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize the notifier.

        Args:
            settings: Application settings (default: global settings)
        """
        self.settings = settings or get_settings()
        self.api_base = self.settings.DISCORD_API_BASE.rstrip("/")
        self.owner_id = self.settings.DISCORD_OWNER_ID
        self.message_limit = self.settings.DISCORD_MESSAGE_LIMIT
        self.max_retries = max(self.settings.MAX_RETRIES, 1)

        self.session: Optional[aiohttp.ClientSession] = None
        self._dm_channel_id: Optional[str] = None

    async def initialize(self):
        """Create the HTTP session authenticated as the bot."""
        if self.session:
            return

        self.session = aiohttp.ClientSession(
            timeout=ClientTimeout(total=30, connect=10),
            headers={
                "Authorization": f"Bot {self.settings.DISCORD_TOKEN or ''}",
                "Content-Type": "application/json",
                "User-Agent": f"DiscordBot (orderwatch, {VERSION})",
            },
        )
        logger.info("✅ Discord notifier initialized")

    async def close(self):
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Discord notifier closed")

    async def send(self, text: str) -> int:
        """
        Deliver a message to the owner, chunked to the channel's limit.

        Chunks are sent one at a time, in order. An empty message is not sent.

        Args:
            text: Message to deliver

        Returns:
            int: Number of chunks delivered

        Raises:
            NotificationDeliveryException: If any chunk is rejected
        """
        if not text:
            return 0

        chunks = split_message(text, self.message_limit)
        channel_id = await self._get_dm_channel_id()

        for index, chunk in enumerate(chunks):
            try:
                await self._post(f"/channels/{channel_id}/messages", {"content": chunk})
            except NotificationDeliveryException as e:
                e.chunk_index = index
                e.chunk_count = len(chunks)
                e.details.update({"chunk_index": index, "chunk_count": len(chunks)})
                raise

        logger.info(f"📨 Delivered notification in {len(chunks)} message(s)")
        return len(chunks)

    async def _get_dm_channel_id(self) -> str:
        """Open (or reuse) the direct-message channel with the owner."""
        if self._dm_channel_id:
            return self._dm_channel_id

        if not self.owner_id:
            raise NotificationDeliveryException("DISCORD_OWNER_ID is not configured")

        data = await self._post("/users/@me/channels", {"recipient_id": str(self.owner_id)})
        channel_id = data.get("id")
        if not channel_id:
            raise NotificationDeliveryException("Discord did not return a DM channel id")

        self._dm_channel_id = str(channel_id)
        return self._dm_channel_id

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        POST to the Discord API, waiting out rate limits and retrying server errors.

        Raises:
            NotificationDeliveryException: On any non-2xx response, undecodable body or network error
        """
        if not self.session:
            raise NotificationDeliveryException("Notifier not initialized. Call initialize() first.")

        url = f"{self.api_base}{path}"
        last_exception: Optional[NotificationDeliveryException] = None
        for attempt in range(self.max_retries):
            try:
                async with self.session.post(url, json=body) as response:
                    data = self._decode_body(await response.text())

                    if response.status == 429 or response.status >= 500:
                        last_exception = NotificationDeliveryException(
                            f"Discord HTTP {response.status} on {path}: {self._error_message(data)}",
                            api_response_code=response.status,
                        )
                        if attempt < self.max_retries - 1:
                            retry_after = self._retry_after(data, attempt)
                            logger.warning(
                                f"Discord HTTP {response.status} on {path}, waiting {retry_after}s "
                                f"(attempt {attempt + 1})"
                            )
                            await asyncio.sleep(retry_after)
                            continue
                        raise last_exception

                    if response.status >= 300:
                        raise NotificationDeliveryException(
                            f"Discord HTTP {response.status} on {path}: {self._error_message(data)}",
                            api_response_code=response.status,
                        )

                    if data is None:
                        raise NotificationDeliveryException(
                            f"Discord returned an undecodable response on {path}",
                            api_response_code=response.status,
                        )
                    return data

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NotificationDeliveryException(f"Network error sending to Discord: {e}") from e

        raise last_exception or NotificationDeliveryException(f"Discord request to {path} failed after retries")

    def _retry_after(self, data: Optional[dict[str, Any]], attempt: int) -> float:
        """Seconds to wait: Discord's ``retry_after`` when present, else exponential backoff."""
        if data and data.get("retry_after") is not None:
            try:
                return float(data["retry_after"])
            except (TypeError, ValueError):
                pass
        return float(min(self.settings.RETRY_BACKOFF_FACTOR**attempt, 10))

    @staticmethod
    def _decode_body(text: str) -> Optional[dict[str, Any]]:
        """Parse a JSON object body; empty bodies are ``{}`` and anything else is ``None``."""
        if not text or not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _error_message(data: Optional[dict[str, Any]]) -> str:
        if not data:
            return "Unknown error"
        return str(data.get("message", "Unknown error"))
