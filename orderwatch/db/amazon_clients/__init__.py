"""
Amazon Selling Partner API clients.

- BaseSPAPIClient: session, LWA token refresh, rate limiting and retries
- AmazonOrdersClient: order listing and line-item lookup
"""

from .base_client import BaseSPAPIClient
from .orders_client import AmazonOrdersClient

__all__ = ["BaseSPAPIClient", "AmazonOrdersClient"]
