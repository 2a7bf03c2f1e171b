"""Unit tests for PaymentService (Khalti initiation, verification, refunds)."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from modules.notifications.interfaces import NotificationKind
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.exceptions import OrderAccessDenied, OrderAlreadyPaid
from modules.orders.models import Order
from modules.payments.exceptions import (
    InvalidRefundAmount,
    PaymentNotCompleted,
    PaymentNotRefundable,
)
from modules.payments.gateway import KhaltiGateway
from modules.payments.services import PaymentService

pytestmark = pytest.mark.unit


class FakeKhalti:
    """Scripted Khalti API: responses keyed by endpoint path."""

    def __init__(self):
        self.calls = []
        self.lookup_status = "Completed"

    def __call__(self, request):
        path = request.url.path.rsplit("/epayment", 1)[-1]
        body = json.loads(request.content)
        self.calls.append((path, body))
        if path == "/initiate/":
            return httpx.Response(
                200, json={"pidx": "PIDX-1", "payment_url": "https://pay.khalti.test/PIDX-1"}
            )
        if path == "/lookup/":
            return httpx.Response(
                200,
                json={
                    "pidx": body["pidx"],
                    "status": self.lookup_status,
                    "transaction_id": "TXN-9",
                    "total_amount": 240000,
                },
            )
        return httpx.Response(200, json={"status": "Refunded"})

    def paths(self):
        return [path for path, _ in self.calls]


@pytest.fixture()
def khalti():
    return FakeKhalti()


@pytest.fixture()
def payment_service(order_repository, catalog_repository, notifier, khalti):
    gateway = KhaltiGateway(http_client=httpx.Client(transport=httpx.MockTransport(khalti)))
    return PaymentService(order_repository, catalog_repository, gateway, notifier)


@pytest.fixture()
def order(customer, variant, place_order):
    return place_order(customer, variant, quantity=2)


@pytest.fixture()
def paid_order(order, payment_service):
    payment_service.initiate_khalti_payment(order.id, order.customer_id)
    payment_service.verify_khalti_payment("PIDX-1")
    return Order.objects.get(id=order.id)


class TestInitiate:
    def test_stores_pidx_on_order(self, order, payment_service, khalti):
        result = payment_service.initiate_khalti_payment(order.id, order.customer_id)

        assert result["payment_url"].endswith("PIDX-1")
        order.refresh_from_db()
        assert order.transaction_id == "PIDX-1"
        assert khalti.calls[0][1]["amount"] == 240000

    def test_other_customer_is_denied(self, order, other_customer, payment_service, khalti):
        with pytest.raises(OrderAccessDenied):
            payment_service.initiate_khalti_payment(order.id, other_customer.id)

        assert khalti.calls == []

    def test_paid_order_is_rejected(self, paid_order, payment_service):
        with pytest.raises(OrderAlreadyPaid):
            payment_service.initiate_khalti_payment(paid_order.id, paid_order.customer_id)


class TestVerify:
    def test_marks_paid_and_confirms(self, order, payment_service, notifier):
        payment_service.initiate_khalti_payment(order.id, order.customer_id)

        result = payment_service.verify_khalti_payment("PIDX-1")

        assert result == {
            "order_id": str(order.id),
            "transaction_id": "TXN-9",
            "status": "Completed",
            "total_amount": 240000,
        }
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PAID
        assert order.amount_paid == Decimal("2400.00")
        assert order.status == OrderStatus.CONFIRMED
        assert order.status_history.last().actor == "khalti"
        assert notifier.kinds[-1] == NotificationKind.ORDER_CONFIRMATION

    def test_incomplete_payment_is_rejected(self, order, payment_service, khalti):
        payment_service.initiate_khalti_payment(order.id, order.customer_id)
        khalti.lookup_status = "Pending"

        with pytest.raises(PaymentNotCompleted, match="Pending"):
            payment_service.verify_khalti_payment("PIDX-1")

        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PENDING

    def test_second_verification_is_rejected(self, paid_order, payment_service):
        with pytest.raises(OrderAlreadyPaid):
            payment_service.verify_khalti_payment("PIDX-1")


class TestRefund:
    def test_partial_refund(self, paid_order, payment_service, notifier):
        order = payment_service.refund_payment(paid_order.id, "admin", Decimal("400"), "Damaged")

        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED
        assert order.amount_refunded == Decimal("400.00")
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_details["refunds"][0]["reason"] == "Damaged"
        kind, _, _, context = notifier.sent[-1]
        assert kind == NotificationKind.REFUND
        assert context == {"refund_amount": Decimal("400")}

    def test_full_refund_moves_order_to_refunded(self, paid_order, payment_service, khalti):
        order = payment_service.refund_payment(paid_order.id, "admin", Decimal("2400"))

        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.REFUNDED
        assert khalti.calls[-1] == ("/refund/", {"pidx": "PIDX-1", "amount": 240000, "reason": ""})

    def test_refunds_accumulate_to_full(self, paid_order, payment_service):
        payment_service.refund_payment(paid_order.id, "admin", Decimal("400"))
        order = payment_service.refund_payment(paid_order.id, "admin", Decimal("2000"))

        assert order.payment_status == PaymentStatus.REFUNDED
        assert len(order.payment_details["refunds"]) == 2

    def test_amount_above_remaining_never_reaches_gateway(
        self, paid_order, payment_service, khalti
    ):
        calls = len(khalti.calls)

        with pytest.raises(InvalidRefundAmount):
            payment_service.refund_payment(paid_order.id, "admin", Decimal("2400.01"))

        assert len(khalti.calls) == calls

    def test_unpaid_order_is_not_refundable(self, order, payment_service):
        with pytest.raises(PaymentNotRefundable):
            payment_service.refund_payment(order.id, "admin", Decimal("100"))
