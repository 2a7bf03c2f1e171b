"""Integration tests for the Order API endpoints."""

from decimal import Decimal

import pytest

from modules.catalog.models import Variant
from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.models import Order

pytestmark = pytest.mark.integration

BASE_URL = "/api/v1/orders/"


@pytest.fixture()
def order(customer, variant, place_order):
    return place_order(customer, variant, quantity=2)


@pytest.fixture()
def delivered_order(order, deliver):
    return deliver(order)


class TestCreateOrder:
    def test_creates_order_from_cart(
        self, customer_client, customer, variant, add_to_cart, shipping_address
    ):
        add_to_cart(customer, variant, 2)

        response = customer_client.post(
            BASE_URL,
            {"payment_method": PaymentMethod.KHALTI, "shipping_address": shipping_address},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == OrderStatus.PENDING
        assert data["total_amount"] == "2400.00"
        assert data["short_order_id"].startswith("ORD-")
        assert data["items"][0]["variant_sku"] == "KURTA-M-RED"
        assert data["status_history"][0]["new_status"] == OrderStatus.PENDING
        variant.refresh_from_db()
        assert variant.stock == 3

    def test_empty_cart(self, customer_client, customer, shipping_address):
        response = customer_client.post(
            BASE_URL,
            {"payment_method": PaymentMethod.COD, "shipping_address": shipping_address},
            format="json",
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "empty_cart"

    def test_customer_cannot_override_business_rules(
        self, customer_client, customer, variant, add_to_cart, shipping_address
    ):
        add_to_cart(customer, variant, 1)

        response = customer_client.post(
            BASE_URL,
            {
                "payment_method": PaymentMethod.COD,
                "shipping_address": shipping_address,
                "business_rules": {"cod_limit": "100000"},
            },
            format="json",
        )

        assert response.status_code == 403
        assert Order.objects.count() == 0

    def test_user_without_customer_profile(self, api_client, django_user_model, shipping_address):
        user = django_user_model.objects.create_user(
            username="ghost", email="ghost@example.com", password="testpass123"
        )
        api_client.force_authenticate(user=user)

        response = api_client.post(
            BASE_URL,
            {"payment_method": PaymentMethod.COD, "shipping_address": shipping_address},
            format="json",
        )

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "customer_not_found"

    def test_unauthenticated(self, api_client):
        response = api_client.post(BASE_URL, {}, format="json")
        assert response.status_code == 401


class TestListAndRetrieve:
    def test_customer_sees_only_own_orders(
        self, customer_client, order, other_customer, variant_large, place_order
    ):
        place_order(other_customer, variant_large)

        response = customer_client.get(BASE_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["id"] == str(order.id)

    def test_admin_sees_all_orders(
        self, admin_client, order, other_customer, variant_large, place_order
    ):
        place_order(other_customer, variant_large)

        response = admin_client.get(BASE_URL)

        assert response.json()["count"] == 2

    def test_filter_by_status(self, admin_client, order, other_customer, variant_large, place_order):
        other = place_order(other_customer, variant_large)
        Order.objects.filter(id=other.id).update(status=OrderStatus.CONFIRMED)

        response = admin_client.get(BASE_URL, {"status": OrderStatus.CONFIRMED})

        assert response.json()["count"] == 1
        assert response.json()["results"][0]["id"] == str(other.id)

    def test_retrieve_own_order(self, customer_client, order):
        response = customer_client.get(f"{BASE_URL}{order.id}/")

        assert response.status_code == 200
        data = response.json()
        assert data["order_summary"]["total_items"] == 2
        assert data["business_rules"]["allow_exchange"] is True

    def test_retrieve_other_customers_order_is_not_found(
        self, customer_client, other_customer, variant_large, place_order
    ):
        other = place_order(other_customer, variant_large)

        response = customer_client.get(f"{BASE_URL}{other.id}/")

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "order_not_found"


class TestStatusUpdate:
    def test_admin_moves_order_forward(self, admin_client, admin_user, order):
        response = admin_client.patch(
            f"{BASE_URL}{order.id}/", {"status": OrderStatus.CONFIRMED}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CONFIRMED
        assert data["status_history"][-1]["actor"] == str(admin_user.pk)

    def test_customer_cannot_skip_states(self, customer_client, order):
        response = customer_client.patch(
            f"{BASE_URL}{order.id}/", {"status": OrderStatus.DELIVERED}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "invalid_status_transition"

    def test_unknown_status(self, admin_client, order):
        response = admin_client.patch(f"{BASE_URL}{order.id}/", {"status": "lost"}, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"

    def test_customer_cancels_and_stock_is_released(self, customer_client, order, variant):
        response = customer_client.post(
            f"{BASE_URL}{order.id}/cancel/", {"reason": "Changed my mind"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CANCELLED
        assert data["workflow"]["reason"] == "Changed my mind"
        variant.refresh_from_db()
        assert variant.stock == 5


class TestStatusFlow:
    def test_admin_gets_status_flow(self, admin_client):
        response = admin_client.get(f"{BASE_URL}status-flow/")

        assert response.status_code == 200
        data = response.json()
        assert data["status_flow"][OrderStatus.PENDING]["allowed_transitions"] == [
            OrderStatus.CONFIRMED,
            OrderStatus.CANCELLED,
        ]

    def test_customer_is_forbidden(self, customer_client):
        response = customer_client.get(f"{BASE_URL}status-flow/")
        assert response.status_code == 403


class TestExchangeEndpoints:
    def _request_payload(self, order, new_variant):
        item = order.items.get()
        return {
            "exchange_type": "size",
            "exchange_reason": "Too small",
            "exchange_items": [
                {
                    "original_item_id": str(item.id),
                    "new_product_id": str(new_variant.product_id),
                    "new_variant_id": str(new_variant.id),
                    "new_quantity": 2,
                }
            ],
        }

    def test_full_exchange_flow(self, customer_client, admin_client, delivered_order, variant_large):
        url = f"{BASE_URL}{delivered_order.id}/exchange/"

        response = customer_client.post(
            url, self._request_payload(delivered_order, variant_large), format="json"
        )
        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.EXCHANGE_REQUESTED

        response = admin_client.post(f"{url}approve/", {"admin_notes": "OK"}, format="json")
        assert response.status_code == 200
        approval = response.json()
        assert approval["original_order"]["status"] == OrderStatus.EXCHANGE_APPROVED
        assert approval["exchange_order"]["short_order_id"].startswith("EXCH-")
        assert Decimal(approval["customer_payment_required"]) == Decimal("600.00")

        response = admin_client.post(f"{url}complete/", format="json")
        assert response.status_code == 200
        completion = response.json()
        assert completion["original_order"]["status"] == OrderStatus.EXCHANGED
        assert completion["exchange_order"]["status"] == OrderStatus.CONFIRMED

    def test_customer_cannot_approve(self, customer_client, delivered_order):
        response = customer_client.post(
            f"{BASE_URL}{delivered_order.id}/exchange/approve/", {}, format="json"
        )
        assert response.status_code == 403

    def test_reject(self, customer_client, admin_client, delivered_order, variant_large):
        url = f"{BASE_URL}{delivered_order.id}/exchange/"
        customer_client.post(
            url, self._request_payload(delivered_order, variant_large), format="json"
        )

        response = admin_client.post(
            f"{url}reject/", {"admin_notes": "Worn item"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.DELIVERED
        assert data["workflow"]["exchange_status"] == "rejected"

    def test_empty_exchange_items(self, customer_client, delivered_order):
        response = customer_client.post(
            f"{BASE_URL}{delivered_order.id}/exchange/",
            {"exchange_type": "size", "exchange_reason": "Too small", "exchange_items": []},
            format="json",
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"].startswith("exchange_items")

    def test_exchange_on_undelivered_order(self, customer_client, order, variant_large):
        response = customer_client.post(
            f"{BASE_URL}{order.id}/exchange/",
            self._request_payload(order, variant_large),
            format="json",
        )

        assert response.status_code == 400
        assert Variant.objects.get(id=variant_large.id).stock == 5


class TestConfirmCOD:
    def test_agent_confirms_cash(self, admin_client, admin_user, customer, variant, place_order):
        order = place_order(customer, variant, payment_method=PaymentMethod.COD)

        response = admin_client.post(
            f"{BASE_URL}{order.id}/cod/confirm/",
            {"amount_received": "1400.00", "delivery_notes": "Paid in cash"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["payment_status"] == "paid"
        assert data["status"] == OrderStatus.CONFIRMED
        assert data["cod_details"]["delivery_agent_id"] == str(admin_user.pk)

    def test_khalti_order_is_rejected(self, admin_client, order):
        response = admin_client.post(
            f"{BASE_URL}{order.id}/cod/confirm/", {"amount_received": "2400.00"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "not_cod_order"

    def test_customer_is_forbidden(self, customer_client, order):
        response = customer_client.post(
            f"{BASE_URL}{order.id}/cod/confirm/", {"amount_received": "2400.00"}, format="json"
        )
        assert response.status_code == 403


class TestOrderStats:
    def test_admin_gets_dashboard_figures(
        self, admin_client, order, other_customer, variant_large, place_order
    ):
        place_order(other_customer, variant_large, payment_method=PaymentMethod.COD)

        response = admin_client.get(f"{BASE_URL}stats/")

        assert response.status_code == 200
        data = response.json()
        assert data["overview"]["total_orders"] == 2
        assert data["overview"]["cod_orders"] == 1
        assert Decimal(str(data["overview"]["total_revenue"])) == Decimal("4100.00")
        assert data["daily_stats"][0]["count"] == 2

    def test_filtered_by_customer(
        self, admin_client, order, customer, other_customer, variant_large, place_order
    ):
        place_order(other_customer, variant_large)

        response = admin_client.get(f"{BASE_URL}stats/", {"customer": str(customer.id)})

        assert response.json()["overview"]["total_orders"] == 1

    def test_inverted_date_range(self, admin_client):
        response = admin_client.get(
            f"{BASE_URL}stats/", {"start_date": "2026-02-01", "end_date": "2026-01-01"}
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "end_date"

    def test_customer_is_forbidden(self, customer_client):
        response = customer_client.get(f"{BASE_URL}stats/")
        assert response.status_code == 403
