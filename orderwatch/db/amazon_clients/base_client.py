"""
Base Amazon Selling Partner API client with common functionality.

This module provides the foundation for the SP-API clients, including
session management, Login with Amazon (LWA) token refresh, rate limiting,
and request execution with retries.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from orderwatch.core.config import Settings, get_settings
from orderwatch.utils.error_handler import OrderSourceException
from orderwatch.version import VERSION

logger = logging.getLogger(__name__)

# Refresh the access token this long before Amazon says it expires
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


class BaseSPAPIClient:
    """
    Base client for Selling Partner API operations.

    Provides connection management, access token refresh, rate limiting,
    error handling, and request execution that the specialized clients inherit.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize the base SP-API client.

        Args:
            settings: Application settings (default: global settings)
        """
        self.settings = settings or get_settings()
        self.endpoint = self.settings.AMAZON_SP_API_ENDPOINT.rstrip("/")
        self.max_retries = max(self.settings.MAX_RETRIES, 1)

        # Session, token and rate limiting
        self.session: Optional[aiohttp.ClientSession] = None
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._last_request_time = 0.0
        self._min_request_interval = 0.5  # 500ms between requests

        logger.info(f"Initialized SP-API client for {self.endpoint}")

    async def initialize(self):
        """
        Initialize the HTTP session.

        Raises:
            OrderSourceException: If initialization fails
        """
        if self.session:
            return

        try:
            timeout = ClientTimeout(total=self.settings.AMAZON_REQUEST_TIMEOUT, connect=10)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": f"OrderWatch/{VERSION} (Language=Python)",
                },
            )
            logger.info("✅ SP-API client initialized")

        except Exception as e:
            logger.error(f"❌ Failed to initialize SP-API client: {e}")
            raise OrderSourceException(f"Client initialization failed: {str(e)}") from e

    async def close(self):
        """Close the HTTP session and clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("SP-API client closed")

    async def _get_access_token(self) -> str:
        """
        Return a valid LWA access token, refreshing it when needed.

        Raises:
            OrderSourceException: If the token exchange fails
        """
        now = datetime.now(UTC)
        if self._access_token and self._token_expires_at and now < self._token_expires_at - TOKEN_REFRESH_MARGIN:
            return self._access_token

        if not self.session:
            raise OrderSourceException("Client not initialized. Call initialize() first.")

        form = {
            "grant_type": "refresh_token",
            "refresh_token": self.settings.AMAZON_LWA_REFRESH_TOKEN or "",
            "client_id": self.settings.AMAZON_LWA_CLIENT_ID or "",
            "client_secret": self.settings.AMAZON_LWA_CLIENT_SECRET or "",
        }

        try:
            async with self.session.post(self.settings.AMAZON_LWA_TOKEN_URL, data=form) as response:
                data = await response.json(content_type=None)
                if response.status != 200 or "access_token" not in data:
                    raise OrderSourceException(
                        f"LWA token exchange failed: HTTP {response.status} "
                        f"{data.get('error_description') or data.get('error', 'unknown error')}",
                        api_response_code=response.status,
                        endpoint=self.settings.AMAZON_LWA_TOKEN_URL,
                        auth_failed=True,
                    )
        except aiohttp.ClientError as e:
            raise OrderSourceException(f"Network error during LWA token exchange: {e}") from e

        self._access_token = data["access_token"]
        self._token_expires_at = now + timedelta(seconds=int(data.get("expires_in", 3600)))
        logger.debug("🔑 LWA access token refreshed")
        return self._access_token

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GET request with rate limiting, retries and error handling.

        Args:
            path: API path (e.g. "/orders/v0/orders")
            params: Query parameters

        Returns:
            Dict: The ``payload`` of the response

        Raises:
            OrderSourceException: If the request fails after retries
        """
        if not self.session:
            raise OrderSourceException("Client not initialized. Call initialize() first.")

        url = f"{self.endpoint}{path}"
        last_exception: Optional[OrderSourceException] = None

        for attempt in range(self.max_retries):
            await self._check_rate_limit()
            token = await self._get_access_token()

            try:
                async with self.session.get(url, params=params, headers={"x-amz-access-token": token}) as response:
                    self._last_request_time = time.time()

                    if response.status == 429 or response.status >= 500:
                        retry_after = self._retry_after(response, attempt)
                        last_exception = OrderSourceException(
                            f"HTTP {response.status} from {path}",
                            api_response_code=response.status,
                            endpoint=path,
                            rate_limited=response.status == 429,
                            retry_after=retry_after,
                        )
                        if attempt < self.max_retries - 1:
                            logger.warning(
                                f"HTTP {response.status} from {path}, waiting {retry_after}s (attempt {attempt + 1})"
                            )
                            await asyncio.sleep(retry_after)
                        continue

                    response_data = await response.json(content_type=None)

                    if response.status == 403:
                        # Access token rejected, force a refresh on the next call
                        self._access_token = None

                    if response.status != 200:
                        raise OrderSourceException(
                            f"HTTP {response.status}: {self._error_message(response_data)}",
                            api_response_code=response.status,
                            endpoint=path,
                        )

                    return response_data.get("payload") or {}

            except aiohttp.ClientError as e:
                last_exception = OrderSourceException(f"Network error: {str(e)}", endpoint=path)
                if attempt < self.max_retries - 1:
                    wait_time = min(self.settings.RETRY_BACKOFF_FACTOR**attempt, 10)
                    logger.warning(f"Network error on {path}, retrying in {wait_time}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait_time)

            except asyncio.TimeoutError:
                last_exception = OrderSourceException(f"Timeout calling {path}", endpoint=path)
                if attempt < self.max_retries - 1:
                    wait_time = min(self.settings.RETRY_BACKOFF_FACTOR**attempt, 10)
                    logger.warning(f"Timeout on {path}, retrying in {wait_time}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait_time)

        raise last_exception or OrderSourceException(f"Request to {path} failed after retries", endpoint=path)

    def _retry_after(self, response: aiohttp.ClientResponse, attempt: int) -> int:
        """Seconds to wait before retrying a throttled or failed request."""
        header = response.headers.get("Retry-After")
        if header and header.isdigit():
            return min(int(header), 60)
        return int(min(self.settings.RETRY_BACKOFF_FACTOR**attempt * 2, 60))

    @staticmethod
    def _error_message(response_data: Any) -> str:
        """Join the messages of an SP-API ``errors`` array."""
        if isinstance(response_data, dict) and response_data.get("errors"):
            return ", ".join(err.get("message", str(err)) for err in response_data["errors"])
        return "Unknown error"

    async def _check_rate_limit(self):
        """
        Implement basic rate limiting to avoid overwhelming the API.
        """
        time_since_last_request = time.time() - self._last_request_time

        if time_since_last_request < self._min_request_interval:
            await asyncio.sleep(self._min_request_interval - time_since_last_request)
