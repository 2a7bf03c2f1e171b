from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from modules.orders.constants import OrderStatus, WorkflowKind
from modules.orders.models import Order
from modules.orders.workflows import CancellationRecord, ReturnRecord

pytestmark = pytest.mark.unit


@pytest.fixture()
def order(customer, variant, place_order):
    return place_order(customer, variant, quantity=2)


class TestOrderRules:
    def test_days_since_delivery_floors(self, order):
        now = timezone.now()
        order.delivered_at = now - timedelta(days=3, hours=23)

        assert order.days_since_delivery(now) == 3

    def test_days_since_delivery_none_until_delivered(self, order):
        assert order.days_since_delivery() is None

    def test_return_window_is_inclusive(self, order):
        now = timezone.now()
        order.status = OrderStatus.DELIVERED
        order.delivered_at = now - timedelta(days=7)

        assert order.can_be_returned(now)
        assert not order.can_be_returned(now + timedelta(days=1))

    def test_exchange_disallowed_by_rule(self, order):
        order.status = OrderStatus.DELIVERED
        order.delivered_at = timezone.now()
        order.business_rules = {**order.business_rules, "allow_exchange": False}

        assert not order.can_be_exchanged()

    def test_only_pending_and_confirmed_are_cancellable(self, order):
        assert order.can_be_cancelled()
        order.status = OrderStatus.PROCESSING
        assert not order.can_be_cancelled()


class TestWorkflowRecord:
    def test_single_active_workflow(self, order):
        order.set_workflow(CancellationRecord(cancelled_at=timezone.now(), reason="Duplicate"))
        order.save()
        order.refresh_from_db()

        assert order.workflow_kind == WorkflowKind.CANCELLATION
        assert order.cancellation.reason == "Duplicate"
        assert order.return_record is None
        assert order.exchange is None

        order.set_workflow(ReturnRecord(return_requested_at=timezone.now()))
        order.save()
        order.refresh_from_db()

        assert order.workflow_kind == WorkflowKind.RETURN
        assert order.cancellation is None


class TestOrderSummary:
    def test_summary(self, order):
        summary = Order.objects.get(id=order.id).order_summary

        assert summary["total_items"] == 2
        assert summary["unique_products"] == 1
        assert summary["is_fully_paid"] is False
        assert summary["remaining_amount"] == Decimal("2400.00")
