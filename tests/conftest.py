from decimal import Decimal

import pytest

from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.carts.models import Cart, CartItem
from modules.carts.repositories.django_repository import CartDjangoRepository
from modules.catalog.models import Product, Variant, VariantSize
from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.customers.models import Customer
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import CreateOrderDTO
from modules.orders.pricing import PricingConfig
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

User = get_user_model()

SHIPPING_ADDRESS = {
    "full_name": "Sita Sharma",
    "phone": "9812345678",
    "street_address": "Jhamsikhel Road 12",
    "city": "Lalitpur",
    "state": "Bagmati",
    "postal_code": "44700",
}


class FakeNotifier:
    """Records every notification instead of sending it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    def send(self, kind, order, customer, **context):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((kind, order.id, customer.id, context))

    @property
    def kinds(self):
        return [kind for kind, *_ in self.sent]


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer():
    return Customer.objects.create(
        first_name="Sita",
        last_name="Sharma",
        email="sita@example.com",
        phone="9812345678",
    )


@pytest.fixture()
def other_customer():
    return Customer.objects.create(
        first_name="Ram",
        last_name="Thapa",
        email="ram@example.com",
    )


@pytest.fixture()
def product():
    return Product.objects.create(name="Dhaka Kurta", brand="Nepwears")


@pytest.fixture()
def variant(product):
    """Price 1500 on sale for 1200, stock 5."""
    return Variant.objects.create(
        product=product,
        sku="KURTA-M-RED",
        size=VariantSize.M,
        color="red",
        price=Decimal("1500.00"),
        sale_price=Decimal("1200.00"),
        stock=5,
    )


@pytest.fixture()
def variant_large(product):
    """Same product, size L, full price 1500, stock 5."""
    return Variant.objects.create(
        product=product,
        sku="KURTA-L-RED",
        size=VariantSize.L,
        color="red",
        price=Decimal("1500.00"),
        stock=5,
    )


@pytest.fixture()
def premium_variant(product):
    return Variant.objects.create(
        product=product,
        sku="KURTA-XL-SILK",
        size=VariantSize.XL,
        color="gold",
        price=Decimal("3000.00"),
        stock=10,
    )


@pytest.fixture()
def add_to_cart():
    def _add(customer, variant, quantity=1):
        cart, _ = Cart.objects.get_or_create(customer=customer)
        return CartItem.objects.create(
            cart=cart,
            product=variant.product,
            variant=variant,
            quantity=quantity,
        )

    return _add


@pytest.fixture()
def shipping_address():
    return dict(SHIPPING_ADDRESS)


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def pricing_config():
    return PricingConfig()


@pytest.fixture()
def order_repository():
    return OrderDjangoRepository()


@pytest.fixture()
def catalog_repository():
    return CatalogDjangoRepository()


@pytest.fixture()
def order_service(order_repository, catalog_repository, notifier, pricing_config):
    return OrderService(
        order_repository=order_repository,
        customer_repository=CustomerDjangoRepository(),
        catalog_repository=catalog_repository,
        cart_repository=CartDjangoRepository(),
        notifier=notifier,
        pricing_config=pricing_config,
    )


@pytest.fixture()
def place_order(order_service, add_to_cart, shipping_address):
    """Put *variant* in the cart and check out."""

    def _place(customer, variant, quantity=1, payment_method=PaymentMethod.KHALTI, **extra):
        add_to_cart(customer, variant, quantity)
        dto = CreateOrderDTO(
            payment_method=payment_method, shipping_address=shipping_address, **extra
        )
        return order_service.create_order(customer.id, dto)

    return _place


@pytest.fixture()
def deliver(order_service):
    """Force an order to delivered as an admin."""

    def _deliver(order):
        return order_service.update_order_status(
            order.id, "admin", OrderStatus.DELIVERED, is_admin=True
        )

    return _deliver


# ---------------------------------------------------------------------------
# API users
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_user(customer):
    return User.objects.create_user(
        username="sita", email=customer.email, password="testpass123"
    )


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="admin", email="admin@example.com", password="testpass123", is_staff=True
    )


@pytest.fixture()
def customer_client(customer_user):
    client = APIClient()
    client.force_authenticate(user=customer_user)
    return client


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
