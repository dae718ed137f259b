# orders/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.actors import Actor, resolve_actor
from core.config import get_default_currency, get_marketplace_commission_rate
from notifications.models import Notification
from notifications.services import notify_user
from products.models import Product, ProductVariant, normalize_sku
from products.stock import StockLine, validate_stock_availability

from .models import Order, OrderEvent, OrderItem, SellerOrder
from .pricing import calculate_order_tax_breakdown, current_tax_rates
from .settlement import SettlementResult, cancel_recognized_payment, credit_sellers_on_delivery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    product: Product
    quantity: int = 1
    sku: str = ""


def _as_order_line(item: Any) -> OrderLine:
    if isinstance(item, OrderLine):
        return item
    if isinstance(item, Mapping):
        return OrderLine(product=item["product"], quantity=int(item.get("quantity", 1)), sku=item.get("sku") or "")
    return OrderLine(
        product=getattr(item, "product"),
        quantity=int(getattr(item, "quantity", 1)),
        sku=getattr(item, "sku", "") or "",
    )


def _unit_price_cents(line: OrderLine) -> int:
    sku = normalize_sku(line.sku)
    if sku:
        variant = ProductVariant.objects.filter(product_id=line.product.pk, sku=sku).first()
        if variant is not None:
            return variant.effective_price_cents
    return int(line.product.price_cents)


@transaction.atomic
def create_order(
    *,
    buyer,
    lines: Iterable[Any],
    payment_method: str = Order.PaymentMethod.CARD,
    shipping_by_seller: Optional[Mapping[Any, int]] = None,
    currency: Optional[str] = None,
) -> Order:
    """
    Create an Order with one SellerOrder per seller.

    Rules:
      - Stock is checked (not reserved) for every line up front
      - Each sub-order snapshots the platform commission rate
      - Line totals are VAT-inclusive; the tax split is stored per sub-order
      - COVID levy and shipping are charged on top of the line totals
    """
    order_lines = [_as_order_line(item) for item in lines]
    if not order_lines:
        raise ValidationError("An order needs at least one line.")

    check = validate_stock_availability(
        [StockLine(product_id=line.product.pk, sku=normalize_sku(line.sku), quantity=line.quantity) for line in order_lines]
    )
    if not check.valid:
        raise ValidationError([e["message"] for e in check.errors])

    shipping_by_seller = dict(shipping_by_seller or {})
    rates = current_tax_rates()
    commission_rate = get_marketplace_commission_rate().quantize(Decimal("0.0001"))

    groups: dict[Any, list[OrderLine]] = {}
    for line in order_lines:
        groups.setdefault(line.product.seller_id, []).append(line)

    order = Order.objects.create(
        buyer=buyer,
        payment_method=payment_method,
        currency=(currency or get_default_currency()).lower(),
    )

    for seller_id, seller_lines in groups.items():
        prices = [(_unit_price_cents(line), line.quantity) for line in seller_lines]
        breakdown = calculate_order_tax_breakdown(prices, rates=rates)

        so = SellerOrder.objects.create(
            order=order,
            seller_id=seller_id,
            subtotal_cents=breakdown.subtotal_cents,
            base_price_cents=breakdown.base_cents,
            vat_cents=breakdown.vat_cents,
            nhil_cents=breakdown.nhil_cents,
            getfund_cents=breakdown.getfund_cents,
            covid_levy_cents=breakdown.covid_levy_cents,
            shipping_cents=max(0, int(shipping_by_seller.get(seller_id, 0) or 0)),
            commission_rate_snapshot=commission_rate,
        )

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    seller_order=so,
                    product=line.product,
                    sku=normalize_sku(line.sku),
                    quantity=line.quantity,
                    unit_price_cents=unit_price,
                    line_base_cents=part.base_cents,
                )
                for line, (unit_price, _), part in zip(seller_lines, prices, breakdown.lines)
            ]
        )

    seller_orders = list(order.seller_orders.all())
    order.subtotal_cents = sum(so.subtotal_cents for so in seller_orders)
    order.covid_levy_cents = sum(so.covid_levy_cents for so in seller_orders)
    order.shipping_cents = sum(so.shipping_cents for so in seller_orders)
    order.total_cents = order.subtotal_cents + order.covid_levy_cents + order.shipping_cents
    order.total_qty = sum(line.quantity for line in order_lines)
    order.save(
        update_fields=["subtotal_cents", "covid_levy_cents", "shipping_cents", "total_cents", "total_qty", "updated_at"]
    )

    order.add_event(OrderEvent.Type.CREATED, f"{len(seller_orders)} seller(s), {order.total_qty} unit(s)")
    logger.info("Created order=%s sellers=%s total=%s", order.pk, len(seller_orders), order.total_cents)
    return order


@transaction.atomic
def mark_delivered(*, order: Order, actor: Optional[Actor] = None) -> SettlementResult:
    """Flag the order delivered, then settle it with its sellers."""
    actor = resolve_actor(actor)
    locked = Order.objects.select_for_update().get(pk=order.pk)

    if locked.status in (Order.Status.CANCELLED, Order.Status.REFUNDED):
        raise ValidationError(f"Cannot deliver an order that is {locked.status}.")

    if locked.status != Order.Status.DELIVERED:
        locked.status = Order.Status.DELIVERED
        locked.delivered_at = timezone.now()
        locked.save(update_fields=["status", "delivered_at", "updated_at"])
        locked.add_event(OrderEvent.Type.DELIVERED, f"Marked delivered by {actor.actor_type}")
        notify_user(
            user_id=locked.buyer_id,
            kind=Notification.Kind.ORDER,
            title=f"Order {locked.number} delivered",
            payload={"order_id": str(locked.pk)},
        )

    result = credit_sellers_on_delivery(locked.pk, actor=actor)
    order.refresh_from_db()
    return result


def cancel_order(*, order: Order, reason: str = "", actor: Optional[Actor] = None) -> SettlementResult:
    if order.status == Order.Status.DELIVERED:
        raise ValidationError("Delivered orders are refunded, not cancelled.")
    result = cancel_recognized_payment(order.pk, reason=reason, actor=actor)
    order.refresh_from_db()
    return result
