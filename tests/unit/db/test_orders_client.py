"""Tests unitarios para el cliente de órdenes de Amazon SP-API."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, call

import pytest

from orderwatch.core.config import Settings
from orderwatch.db.amazon_clients import AmazonOrdersClient
from orderwatch.db.amazon_clients.orders_client import ORDERS_PATH, format_api_datetime
from orderwatch.utils.error_handler import OrderSourceException

UPDATED_AFTER = datetime(2025, 2, 1, tzinfo=UTC)


def raw_order(order_id: str, status: str = "Unshipped") -> dict:
    return {
        "AmazonOrderId": order_id,
        "OrderStatus": status,
        "OrderTotal": {"Amount": "24.99", "CurrencyCode": "USD"},
        "ShippingAddress": {"City": "Seattle", "StateOrRegion": "WA", "CountryCode": "US"},
        "LastUpdateDate": "2025-02-03T10:00:00Z",
    }


@pytest.fixture
def client():
    return AmazonOrdersClient(Settings())


class TestFormatApiDatetime:
    """Tests para el formato de fechas de la API."""

    def test_naive_datetime_is_utc(self):
        """Debe tratar fechas sin zona horaria como UTC."""
        assert format_api_datetime(datetime(2025, 2, 1, 8, 30)) == "2025-02-01T08:30:00Z"


class TestListOrders:
    """Tests para el listado paginado de órdenes."""

    @pytest.mark.asyncio
    async def test_single_page(self, client):
        """Debe convertir las órdenes de una página."""
        client._get = AsyncMock(return_value={"Orders": [raw_order("A"), raw_order("B", "Shipped")]})

        orders = await client.list_orders("ATVPDKIKX0DER", UPDATED_AFTER)

        assert [order.order_id for order in orders] == ["A", "B"]
        assert orders[0].order_total.amount == Decimal("24.99")
        assert orders[1].is_shipped
        client._get.assert_awaited_once_with(
            ORDERS_PATH,
            {"MarketplaceIds": "ATVPDKIKX0DER", "LastUpdatedAfter": "2025-02-01T00:00:00Z"},
        )

    @pytest.mark.asyncio
    async def test_follows_next_token(self, client):
        """Debe seguir NextToken hasta agotar las páginas."""
        client._get = AsyncMock(
            side_effect=[
                {"Orders": [raw_order("A")], "NextToken": "page-2"},
                {"Orders": [raw_order("B")], "NextToken": "page-3"},
                {"Orders": [raw_order("C")]},
            ]
        )

        orders = await client.list_orders("ATVPDKIKX0DER", UPDATED_AFTER)

        assert [order.order_id for order in orders] == ["A", "B", "C"]
        assert client._get.await_args_list[1] == call(
            ORDERS_PATH, {"MarketplaceIds": "ATVPDKIKX0DER", "NextToken": "page-2"}
        )

    @pytest.mark.asyncio
    async def test_malformed_order_raises(self, client):
        """Debe fallar si una orden no trae AmazonOrderId."""
        client._get = AsyncMock(return_value={"Orders": [{"OrderStatus": "Pending"}]})

        with pytest.raises(OrderSourceException):
            await client.list_orders("ATVPDKIKX0DER", UPDATED_AFTER)

    @pytest.mark.asyncio
    async def test_source_failure_propagates(self, client):
        """Debe propagar los errores de la API."""
        client._get = AsyncMock(side_effect=OrderSourceException("HTTP 500", api_response_code=500))

        with pytest.raises(OrderSourceException):
            await client.list_orders("ATVPDKIKX0DER", UPDATED_AFTER)

    @pytest.mark.asyncio
    async def test_page_limit_aborts_listing(self):
        """Debe fallar en vez de retornar un listado parcial al llegar al límite de páginas."""
        client = AmazonOrdersClient(Settings(), max_pages=2)
        client._get = AsyncMock(
            side_effect=[
                {"Orders": [raw_order("A")], "NextToken": "page-2"},
                {"Orders": [raw_order("B")], "NextToken": "page-3"},
            ]
        )

        with pytest.raises(OrderSourceException) as exc_info:
            await client.list_orders("ATVPDKIKX0DER", UPDATED_AFTER)

        assert exc_info.value.details["endpoint"] == ORDERS_PATH
        assert client._get.await_count == 2


class TestListOrderItems:
    """Tests para el listado de items de una orden."""

    @pytest.mark.asyncio
    async def test_items_with_pagination(self, client):
        """Debe juntar los items de todas las páginas."""
        client._get = AsyncMock(
            side_effect=[
                {"OrderItems": [{"Title": "Blue Mug", "QuantityOrdered": 2}], "NextToken": "next"},
                {"OrderItems": [{"Title": "Red Mug", "QuantityOrdered": 1}]},
            ]
        )

        items = await client.list_order_items("A")

        assert [item.title for item in items] == ["Blue Mug", "Red Mug"]
        assert items[0].quantity == 2
        assert client._get.await_args_list == [
            call("/orders/v0/orders/A/orderItems", None),
            call("/orders/v0/orders/A/orderItems", {"NextToken": "next"}),
        ]


class TestBaseClient:
    """Tests para el manejo de sesión del cliente base."""

    @pytest.mark.asyncio
    async def test_get_requires_initialize(self, client):
        """Debe fallar si no se llamó initialize()."""
        with pytest.raises(OrderSourceException):
            await client._get(ORDERS_PATH, {})
