from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
from django.core import mail

from modules.notifications.dispatcher import NotificationDispatcher, normalize_phone
from modules.notifications.exceptions import NotificationDeliveryFailed
from modules.notifications.interfaces import NotificationKind
from modules.notifications.templates import render

pytestmark = pytest.mark.unit


@pytest.fixture()
def order(customer, variant, place_order):
    return place_order(customer, variant, quantity=2)


class TestTemplates:
    def test_order_confirmation_lists_items_and_totals(self, order, customer):
        message = render(NotificationKind.ORDER_CONFIRMATION, order, customer)

        assert message.subject == f"Order Confirmation - {order.short_order_id}"
        assert "KURTA-M-RED" in message.body
        assert "Total: Rs. 2400.00" in message.body
        assert "Dear Sita Sharma," in message.body

    def test_status_update_mentions_both_statuses(self, order, customer):
        message = render(
            NotificationKind.ORDER_STATUS,
            order,
            customer,
            new_status="shipped",
            previous_status="processing",
        )

        assert message.subject == f"Order Status Updated - {order.short_order_id}"
        assert "Previous status: processing" in message.body
        assert "New status: shipped" in message.body

    def test_refund_amount(self, order, customer):
        message = render(NotificationKind.REFUND, order, customer, refund_amount=Decimal("400"))

        assert message.subject == f"Refund Processed - Order {order.short_order_id}"
        assert "Refund amount: Rs. 400" in message.body

    def test_unknown_kind(self, order, customer):
        with pytest.raises(ValueError):
            render("birthday", order, customer)


class TestNotificationDispatcher:
    def test_sends_email(self, order, customer):
        NotificationDispatcher().send(NotificationKind.ORDER_CONFIRMATION, order, customer)

        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["sita@example.com"]
        assert mail.outbox[0].subject.startswith("Order Confirmation")

    def test_sms_when_provider_configured(self, order, customer, settings):
        settings.SMS_API_URL = "https://sms.test/send"
        settings.SMS_API_KEY = "sms-key"
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        dispatcher = NotificationDispatcher(
            http_client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        dispatcher.send(NotificationKind.ORDER_CONFIRMATION, order, customer)

        assert seen["auth"] == "Bearer sms-key"
        assert seen["body"]["to"] == "+9779812345678"
        assert seen["body"]["from"] == "SHOP"
        assert order.short_order_id in seen["body"]["message"]

    def test_sms_failure_is_raised(self, order, customer, settings):
        settings.SMS_API_URL = "https://sms.test/send"

        def handler(request):
            return httpx.Response(503)

        dispatcher = NotificationDispatcher(
            http_client=httpx.Client(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(NotificationDeliveryFailed, match="503"):
            dispatcher.send(NotificationKind.ORDER_STATUS, order, customer)

    def test_no_sms_without_phone(self, order, customer, settings):
        settings.SMS_API_URL = "https://sms.test/send"
        customer.phone = ""

        def handler(request):
            raise AssertionError("SMS must not be sent")

        dispatcher = NotificationDispatcher(
            http_client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        dispatcher.send(NotificationKind.ORDER_STATUS, order, customer)

        assert len(mail.outbox) == 1


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("9812345678", "+9779812345678"),
            ("+9779812345678", "+9779812345678"),
            (" 981 234 5678 ", "+9779812345678"),
        ],
    )
    def test_adds_country_code(self, raw, expected):
        assert normalize_phone(raw) == expected
