"""Integration tests for standardized error responses."""

import pytest

from modules.orders.constants import PaymentMethod

pytestmark = pytest.mark.integration


def assert_standard_shape(data):
    assert set(data) == {"type", "errors"}
    assert isinstance(data["errors"], list)
    assert data["errors"]
    for error in data["errors"]:
        assert set(error) == {"code", "detail", "attr"}


class TestStandardizedErrors:
    def test_auth_error_has_standard_format(self, api_client):
        response = api_client.get("/api/v1/orders/")

        assert response.status_code == 401
        data = response.json()
        assert_standard_shape(data)
        assert data["type"] == "client_error"

    def test_parse_error_has_standard_format(self, customer_client):
        response = customer_client.post(
            "/api/v1/orders/", data="{", content_type="application/json"
        )

        assert response.status_code == 400
        assert_standard_shape(response.json())

    def test_field_errors_carry_attr(self, customer_client):
        response = customer_client.post(
            "/api/v1/orders/",
            {"payment_method": "bitcoin", "shipping_address": {"city": "Pokhara"}},
            format="json",
        )

        assert response.status_code == 400
        data = response.json()
        assert_standard_shape(data)
        assert data["type"] == "validation_error"
        attrs = {error["attr"] for error in data["errors"]}
        assert "payment_method" in attrs
        assert "shipping_address.full_name" in attrs

    def test_domain_error_has_standard_format(
        self, customer_client, customer, premium_variant, add_to_cart, shipping_address
    ):
        add_to_cart(customer, premium_variant, 2)

        response = customer_client.post(
            "/api/v1/orders/",
            {"payment_method": PaymentMethod.COD, "shipping_address": shipping_address},
            format="json",
        )

        assert response.status_code == 400
        data = response.json()
        assert_standard_shape(data)
        assert data["type"] == "validation_error"
        assert data["errors"][0]["code"] == "cod_limit_exceeded"
        assert data["errors"][0]["attr"] is None

    def test_not_found_has_standard_format(self, admin_client):
        response = admin_client.get("/api/v1/orders/00000000-0000-0000-0000-000000000000/")

        assert response.status_code == 404
        data = response.json()
        assert_standard_shape(data)
        assert data["errors"][0]["code"] == "order_not_found"
