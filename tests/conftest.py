"""Shared fixtures: users, products and orders built through the real services."""

from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.cache import cache

from core.config import get_site_config
from orders.services import OrderLine, create_order, mark_delivered
from orders.settlement import recognize_payment
from products.models import Product, ProductVariant

# 117.50 listed (VAT-inclusive) == 100.00 base at the default 17.5% inclusive levies
LISTED_PRICE_CENTS = 11750
LISTED_BASE_CENTS = 10000


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def buyer(django_user_model):
    return django_user_model.objects.create_user(username="buyer", email="buyer@example.com", password="pw")


@pytest.fixture()
def seller(django_user_model):
    return django_user_model.objects.create_user(username="seller", email="seller@example.com", password="pw")


@pytest.fixture()
def other_seller(django_user_model):
    return django_user_model.objects.create_user(username="seller2", email="seller2@example.com", password="pw")


@pytest.fixture()
def site_config(db):
    return get_site_config(use_cache=False)


@pytest.fixture()
def set_commission(site_config):
    def _set(percent: str) -> None:
        site_config.marketplace_sales_percent = Decimal(percent)
        site_config.save()

    return _set


@pytest.fixture()
def make_product(db):
    def _make(seller, *, price_cents: int = LISTED_PRICE_CENTS, stock: int = 10, name: str = "Planter") -> Product:
        return Product.objects.create(seller=seller, name=name, price_cents=price_cents, stock=stock)

    return _make


@pytest.fixture()
def variant_product(make_product, seller):
    product = make_product(seller, name="T-Shirt", stock=0)
    ProductVariant.objects.create(product=product, sku="tee-s", name="Small", stock=10)
    ProductVariant.objects.create(product=product, sku="TEE-M", name="Medium", stock=3, price_cents=12925)
    return product


@pytest.fixture()
def place_order(buyer):
    def _place(*lines, shipping=None, payment_method="card", who=None):
        order_lines = [line if isinstance(line, OrderLine) else OrderLine(product=line[0], quantity=line[1]) for line in lines]
        return create_order(
            buyer=who or buyer,
            lines=order_lines,
            payment_method=payment_method,
            shipping_by_seller=shipping,
        )

    return _place


@pytest.fixture()
def pay():
    def _pay(order, reference: str = ""):
        return recognize_payment(
            order.pk,
            amount_cents=order.total_cents,
            reference=reference or f"PAY-{order.pk}",
        )

    return _pay


@pytest.fixture()
def settled_order(make_product, seller, place_order, pay):
    """Single-seller order: base 100.00, shipping 10.00, 10% commission, paid and delivered."""
    product = make_product(seller)
    order = place_order((product, 1), shipping={seller.pk: 1000})
    pay(order)
    mark_delivered(order=order)
    order.refresh_from_db()
    return order
