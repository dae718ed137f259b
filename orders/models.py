# orders/models.py

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from core.idempotency import require_transition

logger = logging.getLogger(__name__)


class SettlementState(models.TextChoices):
    PENDING_PAYMENT = "pending_payment", "Pending payment"
    PAYMENT_RECOGNIZED = "payment_recognized", "Payment recognized"
    SETTLED = "delivered_and_settled", "Delivered and settled"
    PARTIALLY_REVERSED = "partially_reversed", "Partially reversed"
    FULLY_REVERSED = "fully_reversed", "Fully reversed"
    CANCELLED = "cancelled", "Cancelled"


SETTLEMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    SettlementState.PENDING_PAYMENT: (
        SettlementState.PAYMENT_RECOGNIZED,
        SettlementState.SETTLED,
        SettlementState.CANCELLED,
    ),
    SettlementState.PAYMENT_RECOGNIZED: (SettlementState.SETTLED, SettlementState.CANCELLED),
    SettlementState.SETTLED: (SettlementState.PARTIALLY_REVERSED, SettlementState.FULLY_REVERSED),
    SettlementState.PARTIALLY_REVERSED: (SettlementState.PARTIALLY_REVERSED, SettlementState.FULLY_REVERSED),
    SettlementState.FULLY_REVERSED: (),
    SettlementState.CANCELLED: (),
}

CREDITED_STATES = frozenset(
    {SettlementState.SETTLED, SettlementState.PARTIALLY_REVERSED, SettlementState.FULLY_REVERSED}
)
REVERSIBLE_STATES = frozenset({SettlementState.SETTLED, SettlementState.PARTIALLY_REVERSED})


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment", "Pending payment"
        PROCESSING = "processing", "Processing"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"
        REFUNDED = "refunded", "Refunded"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentMethod(models.TextChoices):
        CARD = "card", "Card / mobile money (gateway)"
        WALLET = "wallet", "Buyer wallet"
        BANK_TRANSFER = "bank_transfer", "Bank transfer"
        PAYMENT_ON_DELIVERY = "payment_on_delivery", "Payment on delivery"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PENDING_PAYMENT)
    payment_status = models.CharField(max_length=24, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices, default=PaymentMethod.CARD)

    # Financial dimension; replaces separate credited/revenue booleans.
    settlement_state = models.CharField(
        max_length=32,
        choices=SettlementState.choices,
        default=SettlementState.PENDING_PAYMENT,
        db_index=True,
    )

    currency = models.CharField(max_length=8, default="ghs")

    # Sum of VAT-inclusive line totals
    subtotal_cents = models.PositiveIntegerField(default=0)
    covid_levy_cents = models.PositiveIntegerField(default=0)
    shipping_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)
    total_qty = models.PositiveIntegerField(default=0)

    # Gateway reference of the payment that paid this order
    payment_reference = models.CharField(max_length=128, null=True, blank=True, unique=True)

    revenue_recognized_at = models.DateTimeField(null=True, blank=True)
    revenue_recognized_cents = models.PositiveIntegerField(default=0)

    inventory_reduced_at = models.DateTimeField(null=True, blank=True)

    paid_at = models.DateTimeField(null=True, blank=True, db_index=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "-created_at"], name="orders_status_created_idx"),
            models.Index(fields=["buyer", "-created_at"], name="orders_buyer_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Order {self.pk} ({self.status}/{self.settlement_state})"

    # ------------------------------------------------------------
    # Derived idempotency markers
    # ------------------------------------------------------------
    @property
    def seller_credited(self) -> bool:
        return self.settlement_state in CREDITED_STATES

    @property
    def revenue_added(self) -> bool:
        return self.revenue_recognized_at is not None

    @property
    def inventory_reduced(self) -> bool:
        return self.inventory_reduced_at is not None

    @property
    def number(self) -> str:
        return str(self.pk).split("-")[0].upper()

    def clean(self) -> None:
        super().clean()
        if self.settlement_state in CREDITED_STATES and not self.inventory_reduced:
            raise ValidationError("A settled order must have its inventory reduced.")

    # ------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------
    def can_transition_to(self, target: str) -> bool:
        return target in SETTLEMENT_TRANSITIONS.get(self.settlement_state, ())

    def transition_settlement(self, target: str) -> None:
        """Move the financial state; caller saves. Raises IllegalSettlementTransition."""
        require_transition(current=self.settlement_state, target=target, transitions=SETTLEMENT_TRANSITIONS)
        if target in CREDITED_STATES and not self.inventory_reduced:
            raise ValidationError("Cannot settle an order whose inventory has not been reduced.")
        self.settlement_state = target

    def add_event(self, type_: str, message: str = "") -> Optional["OrderEvent"]:
        """Timeline entry. Written in a savepoint; a failure is logged, never raised."""
        try:
            with transaction.atomic():
                return OrderEvent.objects.create(order=self, type=type_, message=message or "")
        except Exception:
            logger.exception("Failed to record order event order=%s type=%s", self.pk, type_)
            return None


class SellerOrder(models.Model):
    """One seller's slice of an order (sub-order)."""

    class PayoutStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        HOLD = "hold", "Hold"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="seller_orders")

    # Nullable: a seller account removed after purchase is skipped at settlement.
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="seller_orders",
    )

    # VAT-inclusive item total and its decomposition
    subtotal_cents = models.PositiveIntegerField(default=0)
    base_price_cents = models.PositiveIntegerField(default=0, help_text="VAT-exclusive item total.")
    vat_cents = models.PositiveIntegerField(default=0)
    nhil_cents = models.PositiveIntegerField(default=0)
    getfund_cents = models.PositiveIntegerField(default=0)
    covid_levy_cents = models.PositiveIntegerField(default=0)
    shipping_cents = models.PositiveIntegerField(default=0)

    commission_rate_snapshot = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Commission rate (0.1000 = 10%) captured at order creation. Empty = platform default.",
    )

    payout_status = models.CharField(max_length=16, choices=PayoutStatus.choices, default=PayoutStatus.PENDING)

    # Earnings parked in the seller's pending balance at payment time
    pending_credited_cents = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["order", "seller"], name="orders_sellerorder_unique_seller"),
        ]
        indexes = [
            models.Index(fields=["seller", "payout_status"], name="orders_so_seller_payout_idx"),
        ]

    def __str__(self) -> str:
        return f"SellerOrder {self.pk} seller={self.seller_id} ({self.payout_status})"

    @property
    def gross_cents(self) -> int:
        return int(self.base_price_cents) + int(self.shipping_cents)

    @property
    def total_cents(self) -> int:
        return int(self.subtotal_cents) + int(self.covid_levy_cents) + int(self.shipping_cents)

    @property
    def commission_rate(self) -> Optional[Decimal]:
        return self.commission_rate_snapshot

    def all_items_refunded(self) -> bool:
        items = list(self.items.all())
        return bool(items) and all(i.is_fully_refunded for i in items)


class OrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    seller_order = models.ForeignKey(SellerOrder, on_delete=models.CASCADE, related_name="items")

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    sku = models.CharField(max_length=64, blank=True, default="")

    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.PositiveIntegerField(default=0, help_text="VAT-inclusive unit price snapshot.")
    line_base_cents = models.PositiveIntegerField(default=0, help_text="VAT-exclusive line total.")

    refunded_quantity = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["seller_order", "created_at"], name="orders_item_so_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} × {self.product_id} {self.sku}".strip()

    @property
    def line_total_cents(self) -> int:
        return int(self.quantity) * int(self.unit_price_cents)

    @property
    def refundable_quantity(self) -> int:
        return max(0, int(self.quantity) - int(self.refunded_quantity))

    @property
    def is_fully_refunded(self) -> bool:
        return self.refundable_quantity == 0


class OrderEvent(models.Model):
    class Type(models.TextChoices):
        CREATED = "created", "Created"
        PAID = "paid", "Paid"
        STOCK_REDUCED = "stock_reduced", "Stock reduced"
        DELIVERED = "delivered", "Delivered"
        SELLERS_CREDITED = "sellers_credited", "Sellers credited"
        REFUNDED = "refunded", "Refunded"
        CANCELLED = "cancelled", "Cancelled"
        WARNING = "warning", "Warning"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="events")
    type = models.CharField(max_length=64, choices=Type.choices)
    message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=["order", "-created_at"], name="orders_event_order_idx")]

    def __str__(self) -> str:
        return f"{self.type} ({self.created_at:%Y-%m-%d %H:%M})"
