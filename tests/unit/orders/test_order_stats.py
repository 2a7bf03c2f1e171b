from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from modules.orders.constants import OrderStatus, PaymentMethod

pytestmark = pytest.mark.unit


@pytest.fixture()
def orders(customer, other_customer, variant, variant_large, place_order, deliver):
    """A delivered Khalti order (2400) and a confirmed COD order (1500 + 200 shipping)."""
    delivered = deliver(place_order(customer, variant, quantity=2))
    cod = place_order(other_customer, variant_large, payment_method=PaymentMethod.COD)
    return delivered, cod


class TestOrderStats:
    def test_overview(self, orders, order_service):
        stats = order_service.get_order_stats()

        assert stats["overview"] == {
            "total_orders": 2,
            "confirmed_orders": 1,
            "pending_orders": 0,
            "delivered_orders": 1,
            "cancelled_orders": 0,
            "total_revenue": Decimal("4100.00"),
            "average_order_value": Decimal("2050.00"),
            "cod_orders": 1,
            "online_orders": 1,
        }
        assert stats["conversion_rate"] == 50

    def test_status_breakdown_and_daily_stats(self, orders, order_service):
        stats = order_service.get_order_stats()

        assert stats["status_breakdown"] == [
            {"status": OrderStatus.CONFIRMED, "count": 1},
            {"status": OrderStatus.DELIVERED, "count": 1},
        ]
        assert stats["daily_stats"] == [
            {
                "date": timezone.localdate().isoformat(),
                "count": 2,
                "revenue": Decimal("4100.00"),
            }
        ]

    def test_filtered_by_customer(self, orders, customer, order_service):
        stats = order_service.get_order_stats(customer_id=customer.id)

        assert stats["overview"]["total_orders"] == 1
        assert stats["overview"]["total_revenue"] == Decimal("2400.00")
        assert stats["overview"]["cod_orders"] == 0
        assert stats["conversion_rate"] == 100

    def test_filtered_by_date_range(self, orders, order_service):
        today = timezone.localdate()

        assert order_service.get_order_stats(start_date=today, end_date=today)[
            "overview"
        ]["total_orders"] == 2
        assert order_service.get_order_stats(end_date=today - timedelta(days=1))[
            "overview"
        ]["total_orders"] == 0

    def test_no_orders(self, order_service):
        stats = order_service.get_order_stats()

        assert stats["overview"]["total_orders"] == 0
        assert stats["overview"]["total_revenue"] == Decimal("0.00")
        assert stats["overview"]["average_order_value"] == Decimal("0.00")
        assert stats["status_breakdown"] == []
        assert stats["daily_stats"] == []
        assert stats["conversion_rate"] == 0
