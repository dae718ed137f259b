# orders/settlement.py
"""
Settlement engine.

Each public function handles one order-lifecycle event and applies all of
its balance, ledger, stock and platform-stats changes in one transaction:

  recognize_payment            payment confirmed (webhook, poll, admin)
  credit_sellers_on_delivery   order delivered -> sellers credited once
  revert_sellers_on_refund     whole order reversed after settlement
  refund_order                 buyer refunded to wallet + whole-order reversal
  revert_sellers_for_items     some line items refunded/returned
  cancel_recognized_payment    cancelled before delivery

Locks are taken in a fixed order (order row, seller balances by seller id,
stock rows, platform stats) so concurrent settlements of different orders
cannot deadlock. Replays of an event are detected through the order's
settlement_state and unique ledger references; they return the prior result
with duplicate=True instead of applying anything twice.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from core.activity import log_activity
from core.actors import Actor, resolve_actor
from core.exceptions import OrderNotFound
from dashboards.stats import (
    add_daily_revenue,
    add_revenue,
    deduct_revenue,
    locked_platform_stats,
    save_stats,
)
from notifications.models import Notification
from notifications.services import notify_user
from payments.ledger import (
    credit_seller_balance,
    credit_seller_pending,
    debit_seller_balance_clamped,
    lock_seller_balance,
    release_seller_pending,
)
from payments.models import SellerBalanceEntry, SettlementTransaction, WalletEntry
from payments.wallet import credit_buyer_wallet, debit_buyer_wallet
from products.stock import OrderStockResult, reduce_order_stock, restore_order_stock

from .models import (
    CREDITED_STATES,
    REVERSIBLE_STATES,
    Order,
    OrderEvent,
    OrderItem,
    SellerOrder,
    SettlementState,
)
from .pricing import effective_commission_rate, item_earnings_share_cents, seller_earnings_for_sub_order

logger = logging.getLogger(__name__)


# ============================================================
# References
# ============================================================
def earning_reference(order_id: Any, seller_order_id: Any) -> str:
    return f"ORDER-EARNING:{order_id}:{seller_order_id}"


def pending_reference(order_id: Any, seller_order_id: Any) -> str:
    return f"ORDER-PENDING:{order_id}:{seller_order_id}"


def pending_release_reference(order_id: Any, seller_order_id: Any) -> str:
    return f"ORDER-PENDING-RELEASE:{order_id}:{seller_order_id}"


def order_refund_reference(order_id: Any, seller_order_id: Any) -> str:
    return f"REFUND:{order_id}:{seller_order_id}"


def item_refund_reference(key: str, seller_order_id: Any) -> str:
    return f"REFUND-ITEMS:{key}:{seller_order_id}"


def order_debit_reference(order_id: Any) -> str:
    return f"ORDER-DEBIT:{order_id}"


def order_cancel_refund_reference(order_id: Any) -> str:
    return f"ORDER-CANCEL-REFUND:{order_id}"


def order_wallet_refund_reference(order_id: Any) -> str:
    return f"ORDER-REFUND:{order_id}"


def _money(cents: int) -> str:
    return f"{int(cents) / 100:,.2f}"


# ============================================================
# Results
# ============================================================
@dataclass(frozen=True)
class SellerCredit:
    seller_id: Any
    seller_order_id: Any
    amount_cents: int
    transaction_id: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "seller_id": self.seller_id,
            "seller_order_id": str(self.seller_order_id),
            "amount_cents": self.amount_cents,
            "transaction_id": str(self.transaction_id) if self.transaction_id is not None else None,
        }


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    message: str = ""
    updates: tuple[SellerCredit, ...] = ()
    skipped: tuple[str, ...] = ()
    duplicate: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "updates": [u.as_dict() for u in self.updates],
            "skipped": list(self.skipped),
            "duplicate": self.duplicate,
        }


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    message: str = ""
    duplicate: bool = False
    revenue_cents: int = 0
    pending_credits: tuple[SellerCredit, ...] = ()
    stock: Optional[OrderStockResult] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "duplicate": self.duplicate,
            "revenue_cents": self.revenue_cents,
            "pending_credits": [c.as_dict() for c in self.pending_credits],
            "stock": self.stock.as_dict() if self.stock else None,
        }


@dataclass(frozen=True)
class SellerReversal:
    seller_id: Any
    seller_order_id: Any
    owed_cents: int
    debited_cents: int
    shortfall_cents: int
    transaction_id: Any
    original_transaction_id: Any
    ledger_entry_id: Any = None
    duplicate: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "seller_id": self.seller_id,
            "seller_order_id": str(self.seller_order_id),
            "owed_cents": self.owed_cents,
            "debited_cents": self.debited_cents,
            "shortfall_cents": self.shortfall_cents,
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "original_transaction_id": str(self.original_transaction_id) if self.original_transaction_id else None,
            "ledger_entry_id": self.ledger_entry_id,
            "duplicate": self.duplicate,
        }


@dataclass(frozen=True)
class ReversalResult:
    success: bool
    message: str = ""
    reversals: tuple[SellerReversal, ...] = ()
    duplicate: bool = False

    @property
    def total_owed_cents(self) -> int:
        return sum(r.owed_cents for r in self.reversals)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "reversals": [r.as_dict() for r in self.reversals],
            "duplicate": self.duplicate,
        }


@dataclass(frozen=True)
class OrderRefundResult:
    success: bool
    message: str = ""
    refunded_cents: int = 0
    wallet_entry_id: Any = None
    reversal: Optional[ReversalResult] = None
    duplicate: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "refunded_cents": self.refunded_cents,
            "wallet_entry_id": self.wallet_entry_id,
            "reversal": self.reversal.as_dict() if self.reversal else None,
            "duplicate": self.duplicate,
        }


@dataclass(frozen=True)
class RefundLine:
    order_item_id: Any
    quantity: int


def normalize_refund_line(item: Any) -> RefundLine:
    """Accepts RefundLine, (order_item_id, qty), a mapping, an OrderItem or a refund item row."""
    if isinstance(item, RefundLine):
        return item
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return RefundLine(order_item_id=getattr(item[0], "pk", item[0]), quantity=int(item[1]))
    if isinstance(item, Mapping):
        oid = item.get("order_item_id") or item.get("order_item") or item.get("id")
        return RefundLine(order_item_id=getattr(oid, "pk", oid), quantity=int(item.get("quantity") or 0))
    if isinstance(item, OrderItem):
        return RefundLine(order_item_id=item.pk, quantity=item.refundable_quantity)
    return RefundLine(order_item_id=getattr(item, "order_item_id"), quantity=int(getattr(item, "quantity", 0) or 0))


# ============================================================
# Helpers
# ============================================================
def _pk(order_or_id: Any) -> Any:
    return getattr(order_or_id, "pk", order_or_id)


def _lock_order(order_id: Any) -> Order:
    try:
        order = Order.objects.select_for_update().filter(pk=order_id).first()
    except (ValueError, ValidationError):
        order = None
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _seller_orders(order: Order) -> list[SellerOrder]:
    return list(SellerOrder.objects.select_for_update().filter(order=order).order_by(F("seller_id").asc(nulls_last=True), "id"))


def _credit_from_tx(tx: SettlementTransaction) -> SellerCredit:
    return SellerCredit(
        seller_id=tx.seller_id,
        seller_order_id=tx.seller_order_id,
        amount_cents=int(tx.amount_cents),
        transaction_id=tx.pk,
    )


def _prior_credits(order: Order) -> tuple[SellerCredit, ...]:
    txs = SettlementTransaction.objects.filter(order=order, direction=SettlementTransaction.Direction.CREDIT).order_by(
        "seller_id"
    )
    return tuple(_credit_from_tx(tx) for tx in txs)


def _debit_for(credit: SettlementTransaction) -> Optional[SettlementTransaction]:
    return SettlementTransaction.objects.filter(
        seller_id=credit.seller_id,
        seller_order_id=credit.seller_order_id,
        direction=SettlementTransaction.Direction.DEBIT,
    ).first()


def _remaining_credit_cents(credit: SettlementTransaction) -> int:
    debit = _debit_for(credit)
    return max(0, int(credit.amount_cents) - (int(debit.amount_cents) if debit else 0))


def _prior_reversals(order: Order) -> tuple[SellerReversal, ...]:
    txs = SettlementTransaction.objects.filter(order=order, direction=SettlementTransaction.Direction.DEBIT).order_by(
        "seller_id"
    )
    out = []
    for tx in txs:
        meta = tx.metadata or {}
        out.append(
            SellerReversal(
                seller_id=tx.seller_id,
                seller_order_id=tx.seller_order_id,
                owed_cents=int(tx.amount_cents),
                debited_cents=int(meta.get("debited_cents", 0)),
                shortfall_cents=int(meta.get("shortfall_cents", 0)),
                transaction_id=tx.pk,
                original_transaction_id=tx.original_transaction_id,
                duplicate=True,
            )
        )
    return tuple(out)


def _reversal_from_entry(entry: SellerBalanceEntry) -> SellerReversal:
    meta = entry.metadata or {}
    debit = SettlementTransaction.objects.filter(
        seller_id=entry.seller_id,
        seller_order_id=entry.seller_order_id,
        direction=SettlementTransaction.Direction.DEBIT,
    ).first()
    return SellerReversal(
        seller_id=entry.seller_id,
        seller_order_id=entry.seller_order_id,
        owed_cents=int(meta.get("owed_cents", -entry.amount_cents)),
        debited_cents=-int(entry.amount_cents),
        shortfall_cents=int(meta.get("shortfall_cents", 0)),
        transaction_id=debit.pk if debit else None,
        original_transaction_id=debit.original_transaction_id if debit else None,
        ledger_entry_id=entry.pk,
        duplicate=True,
    )


def _record_reversed_payouts(amount_cents: int) -> None:
    if amount_cents <= 0:
        return
    stats = locked_platform_stats()
    old, new = deduct_revenue(stats, amount_cents)
    stats.total_reversed_payouts_cents = int(stats.total_reversed_payouts_cents) + int(amount_cents)
    save_stats(stats)
    logger.info("Platform revenue reduced by reversed payouts %s: %s -> %s", amount_cents, old, new)


def _reverse_seller_amount(
    *,
    order: Order,
    seller_order: SellerOrder,
    credit: SettlementTransaction,
    owed_cents: int,
    reference: str,
    reason: str,
    actor: Actor,
    refund_request=None,
) -> SellerReversal:
    balance = lock_seller_balance(credit.seller_id)
    before = int(balance.balance_cents)

    debit = debit_seller_balance_clamped(
        balance,
        owed_cents,
        reference=reference,
        actor=actor,
        order=order,
        seller_order=seller_order,
        refund_request=refund_request,
        description=reason or "Refund reversal",
        metadata={"original_transaction_id": str(credit.pk)},
    )
    if debit.duplicate:
        return _reversal_from_entry(debit.entry)

    tx, created = SettlementTransaction.objects.select_for_update().get_or_create(
        seller_id=credit.seller_id,
        seller_order=seller_order,
        direction=SettlementTransaction.Direction.DEBIT,
        defaults={
            "order": order,
            "amount_cents": debit.owed_cents,
            "original_transaction": credit,
            "description": reason or "Refund reversal",
            "metadata": {
                "debited_cents": debit.debited_cents,
                "shortfall_cents": debit.shortfall_cents,
                "references": [reference],
            },
            **actor.as_fields(),
        },
    )
    if not created:
        meta = dict(tx.metadata or {})
        meta["debited_cents"] = int(meta.get("debited_cents", 0)) + debit.debited_cents
        meta["shortfall_cents"] = int(meta.get("shortfall_cents", 0)) + debit.shortfall_cents
        meta["references"] = list(meta.get("references", [])) + [reference]
        tx.amount_cents = int(tx.amount_cents) + debit.owed_cents
        tx.metadata = meta
        tx.save(update_fields=["amount_cents", "metadata", "updated_at"])

    logger.info(
        "Reversed seller=%s so=%s owed=%s debited=%s shortfall=%s balance %s -> %s",
        credit.seller_id,
        seller_order.pk,
        debit.owed_cents,
        debit.debited_cents,
        debit.shortfall_cents,
        before,
        balance.balance_cents,
    )
    return SellerReversal(
        seller_id=credit.seller_id,
        seller_order_id=seller_order.pk,
        owed_cents=debit.owed_cents,
        debited_cents=debit.debited_cents,
        shortfall_cents=debit.shortfall_cents,
        transaction_id=tx.pk,
        original_transaction_id=credit.pk,
        ledger_entry_id=debit.entry.pk,
    )


def _notify_reversals(order: Order, reversals: Iterable[SellerReversal]) -> None:
    for r in reversals:
        if r.duplicate or r.owed_cents <= 0:
            continue
        notify_user(
            user_id=r.seller_id,
            kind=Notification.Kind.REFUND,
            title=f"Refund deducted for order {order.number}",
            body=f"{_money(r.debited_cents)} was deducted from your balance.",
            payload=r.as_dict(),
        )


# ============================================================
# Payment recognition
# ============================================================
@transaction.atomic
def recognize_payment(
    order_id: Any,
    *,
    amount_cents: int,
    reference: str,
    actor: Optional[Actor] = None,
) -> PaymentResult:
    """
    Record that an order has been paid.

    Called by the gateway webhook, the client-side verification poll and
    admin confirmation alike; the gateway reference makes them converge on
    a single application. Recognizes platform revenue, parks each seller's
    earnings in their pending balance and reduces stock. Wallet orders
    debit the buyer wallet here (InsufficientFunds aborts everything).
    """
    actor = resolve_actor(actor)
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("A payment reference is required.")

    order = _lock_order(_pk(order_id))

    if order.payment_reference == reference:
        return PaymentResult(
            success=True,
            duplicate=True,
            message="Payment already recognized.",
            revenue_cents=int(order.revenue_recognized_cents),
        )
    if order.payment_reference:
        return PaymentResult(success=False, message="Order was already paid under a different reference.")
    if order.settlement_state == SettlementState.CANCELLED:
        return PaymentResult(success=False, message="Order has been cancelled.")
    if Order.objects.filter(payment_reference=reference).exclude(pk=order.pk).exists():
        raise ValidationError(f"Payment reference {reference} is already attached to another order.")
    if int(amount_cents) != int(order.total_cents):
        raise ValidationError(f"Payment amount {amount_cents} does not match order total {order.total_cents}.")

    now = timezone.now()

    if order.settlement_state in CREDITED_STATES:
        # Paid on delivery after settlement already recognized the revenue.
        order.payment_reference = reference
        order.paid_at = now
        order.payment_status = Order.PaymentStatus.PAID
        order.save(update_fields=["payment_reference", "paid_at", "payment_status", "updated_at"])
        order.add_event(OrderEvent.Type.PAID, f"Payment {reference} recorded after settlement")
        return PaymentResult(success=True, message="Payment recorded.", revenue_cents=0)

    if order.payment_method == Order.PaymentMethod.WALLET:
        debit_buyer_wallet(
            user_id=order.buyer_id,
            amount_cents=order.total_cents,
            type=WalletEntry.Type.DEBIT_ORDER,
            description=f"Payment for order {order.number}",
            reference=order_debit_reference(order.pk),
            order_id=order.pk,
            actor=actor,
        )

    order.payment_reference = reference
    order.paid_at = now
    order.payment_status = Order.PaymentStatus.PAID
    if order.status == Order.Status.PENDING_PAYMENT:
        order.status = Order.Status.PROCESSING

    pending: list[SellerCredit] = []
    for so in _seller_orders(order):
        if so.seller_id is None:
            logger.warning("Seller missing for sub-order %s of order %s; no pending credit", so.pk, order.pk)
            continue
        earnings = seller_earnings_for_sub_order(so)
        if earnings.earnings_cents <= 0:
            continue
        balance = lock_seller_balance(so.seller_id)
        entry, _ = credit_seller_pending(
            balance,
            earnings.earnings_cents,
            reference=pending_reference(order.pk, so.pk),
            actor=actor,
            order=order,
            seller_order=so,
            description=f"Pending earnings for order {order.number}",
        )
        so.pending_credited_cents = int(entry.amount_cents)
        so.save(update_fields=["pending_credited_cents", "updated_at"])
        pending.append(SellerCredit(so.seller_id, so.pk, int(entry.amount_cents), entry.pk))

    stock = reduce_order_stock(order)

    stats = locked_platform_stats()
    old, new = add_revenue(stats, order.total_cents)
    save_stats(stats)
    add_daily_revenue(amount_cents=order.total_cents, orders=1)
    order.revenue_recognized_at = now
    order.revenue_recognized_cents = order.total_cents

    order.transition_settlement(SettlementState.PAYMENT_RECOGNIZED)
    order.save(
        update_fields=[
            "payment_reference",
            "paid_at",
            "payment_status",
            "status",
            "revenue_recognized_at",
            "revenue_recognized_cents",
            "inventory_reduced_at",
            "settlement_state",
            "updated_at",
        ]
    )
    logger.info("Payment recognized order=%s ref=%s revenue %s -> %s", order.pk, reference, old, new)

    order.add_event(OrderEvent.Type.PAID, f"Payment {reference} ({_money(order.total_cents)}) recognized")
    if not stock.duplicate:
        order.add_event(OrderEvent.Type.STOCK_REDUCED, stock.message)
    log_activity(
        action="payment_recognized",
        actor=actor,
        description=f"Payment {reference} recognized for order {order.number}",
        object_ref=order.pk,
        metadata={"amount_cents": order.total_cents, "method": order.payment_method},
    )
    notify_user(
        user_id=order.buyer_id,
        kind=Notification.Kind.PAYMENT,
        title=f"Payment received for order {order.number}",
        body=f"We received {_money(order.total_cents)}.",
        payload={"order_id": str(order.pk)},
    )

    return PaymentResult(
        success=True,
        message="Payment recognized.",
        revenue_cents=order.total_cents,
        pending_credits=tuple(pending),
        stock=stock,
    )


# ============================================================
# Delivery settlement
# ============================================================
@transaction.atomic
def credit_sellers_on_delivery(order_id: Any, *, actor: Optional[Actor] = None) -> SettlementResult:
    """
    Credit every seller of a delivered order exactly once.

    Preconditions not met (not delivered, cancelled) return success=False.
    A repeat call returns the original credits with duplicate=True. A
    sub-order whose seller no longer exists is logged and skipped; any
    other error rolls back every seller's credit.
    """
    actor = resolve_actor(actor)
    order = _lock_order(_pk(order_id))

    if order.seller_credited:
        return SettlementResult(
            success=True,
            duplicate=True,
            message="Sellers already credited for this order.",
            updates=_prior_credits(order),
        )
    if order.settlement_state == SettlementState.CANCELLED:
        return SettlementResult(success=False, message="Order has been cancelled.")
    if order.status != Order.Status.DELIVERED:
        return SettlementResult(success=False, message="Order must be delivered before sellers are credited.")

    now = timezone.now()
    updates: list[SellerCredit] = []
    skipped: list[str] = []
    total_payouts = 0

    seller_orders = _seller_orders(order)
    if not seller_orders:
        logger.warning("Order %s has no sub-orders to settle", order.pk)

    for so in seller_orders:
        if so.seller_id is None:
            logger.warning("Seller missing for sub-order %s of order %s; skipping", so.pk, order.pk)
            skipped.append(str(so.pk))
            continue

        earnings = seller_earnings_for_sub_order(so)
        if earnings.earnings_cents <= 0:
            logger.warning("Sub-order %s has no earnings to credit; skipping", so.pk)
            skipped.append(str(so.pk))
            continue

        existing = SettlementTransaction.objects.filter(
            seller_id=so.seller_id,
            seller_order=so,
            direction=SettlementTransaction.Direction.CREDIT,
        ).first()
        if existing is not None:
            logger.warning("Credit already exists for seller=%s so=%s; skipping", so.seller_id, so.pk)
            skipped.append(str(so.pk))
            continue

        balance = lock_seller_balance(so.seller_id)
        old_balance = int(balance.balance_cents)

        if so.pending_credited_cents:
            release_seller_pending(
                balance,
                so.pending_credited_cents,
                reference=pending_release_reference(order.pk, so.pk),
                actor=actor,
                order=order,
                seller_order=so,
                description=f"Pending earnings settled for order {order.number}",
            )
            so.pending_credited_cents = 0

        entry, _ = credit_seller_balance(
            balance,
            earnings.earnings_cents,
            reference=earning_reference(order.pk, so.pk),
            actor=actor,
            order=order,
            seller_order=so,
            description=f"Earnings for order {order.number}",
            metadata=earnings.as_dict(),
        )

        tx = SettlementTransaction.objects.create(
            seller_id=so.seller_id,
            order=order,
            seller_order=so,
            direction=SettlementTransaction.Direction.CREDIT,
            amount_cents=earnings.earnings_cents,
            description=f"Earnings for order {order.number}",
            metadata={**earnings.as_dict(), "ledger_entry_id": entry.pk},
            **actor.as_fields(),
        )

        so.payout_status = SellerOrder.PayoutStatus.PAID
        so.save(update_fields=["payout_status", "pending_credited_cents", "updated_at"])

        total_payouts += earnings.earnings_cents
        updates.append(_credit_from_tx(tx))
        logger.info(
            "Credited seller=%s %s for order=%s balance %s -> %s",
            so.seller_id,
            earnings.earnings_cents,
            order.pk,
            old_balance,
            balance.balance_cents,
        )

    stock = None
    if not order.inventory_reduced:
        logger.warning("Inventory not reduced before delivery for order=%s; reducing now", order.pk)
        stock = reduce_order_stock(order)

    stats = locked_platform_stats()
    recognized_now = not order.revenue_added
    if recognized_now:
        add_revenue(stats, order.total_cents)
        order.revenue_recognized_at = now
        order.revenue_recognized_cents = order.total_cents
    old, new = deduct_revenue(stats, total_payouts)
    stats.total_delivered_orders = int(stats.total_delivered_orders) + 1
    stats.total_products_sold = int(stats.total_products_sold) + int(order.total_qty)
    save_stats(stats)
    if recognized_now:
        add_daily_revenue(amount_cents=order.total_cents, orders=1)
    logger.info("Platform revenue after payouts for order=%s: %s -> %s", order.pk, old, new)

    order.transition_settlement(SettlementState.SETTLED)
    order.settled_at = now
    order.save(
        update_fields=[
            "settlement_state",
            "settled_at",
            "revenue_recognized_at",
            "revenue_recognized_cents",
            "inventory_reduced_at",
            "updated_at",
        ]
    )

    if stock is not None and not stock.duplicate:
        order.add_event(OrderEvent.Type.STOCK_REDUCED, stock.message)
    order.add_event(
        OrderEvent.Type.SELLERS_CREDITED,
        f"Credited {len(updates)} seller(s) {_money(total_payouts)}; skipped {len(skipped)}",
    )
    log_activity(
        action="sellers_credited",
        actor=actor,
        description=f"Sellers credited for order {order.number}",
        object_ref=order.pk,
        metadata={"updates": [u.as_dict() for u in updates], "skipped": skipped},
    )
    for u in updates:
        notify_user(
            user_id=u.seller_id,
            kind=Notification.Kind.EARNING,
            title=f"Earnings credited for order {order.number}",
            body=f"{_money(u.amount_cents)} was added to your balance.",
            payload=u.as_dict(),
        )

    return SettlementResult(
        success=True,
        message=f"Credited {len(updates)} seller(s).",
        updates=tuple(updates),
        skipped=tuple(skipped),
    )


# ============================================================
# Reversals
# ============================================================
@transaction.atomic
def revert_sellers_on_refund(
    order_id: Any,
    *,
    reason: str = "",
    actor: Optional[Actor] = None,
    refund_request=None,
) -> ReversalResult:
    """
    Take back every seller credit of a fully refunded order.

    Each seller is debited what is still outstanding on their credit. A
    balance that cannot cover it goes to zero and the rest is tracked in
    negative_cents. All sub-orders go on payout hold.

    Only the seller side moves here and payment_status is left alone;
    refund_order also returns the buyer's money.
    """
    actor = resolve_actor(actor)
    order = _lock_order(_pk(order_id))

    if order.settlement_state == SettlementState.FULLY_REVERSED:
        return ReversalResult(
            success=True,
            duplicate=True,
            message="Order already fully reversed.",
            reversals=_prior_reversals(order),
        )
    if order.settlement_state not in REVERSIBLE_STATES:
        return ReversalResult(success=False, message="Order has not been settled; nothing to reverse.")

    reason = reason or f"Refund of order {order.number}"
    reversals: list[SellerReversal] = []

    credits = list(
        SettlementTransaction.objects.select_related("seller_order")
        .filter(order=order, direction=SettlementTransaction.Direction.CREDIT)
        .order_by("seller_id")
    )
    if not credits:
        logger.warning("No seller credits found for order=%s; nothing to reverse", order.pk)

    for credit in credits:
        remaining = _remaining_credit_cents(credit)
        if remaining <= 0:
            continue
        reversals.append(
            _reverse_seller_amount(
                order=order,
                seller_order=credit.seller_order,
                credit=credit,
                owed_cents=remaining,
                reference=order_refund_reference(order.pk, credit.seller_order_id),
                reason=reason,
                actor=actor,
                refund_request=refund_request,
            )
        )

    SellerOrder.objects.filter(order=order).update(payout_status=SellerOrder.PayoutStatus.HOLD, updated_at=timezone.now())
    OrderItem.objects.filter(seller_order__order=order).update(refunded_quantity=F("quantity"))

    _record_reversed_payouts(sum(r.owed_cents for r in reversals))

    order.transition_settlement(SettlementState.FULLY_REVERSED)
    order.status = Order.Status.REFUNDED
    order.refunded_at = timezone.now()
    order.save(update_fields=["settlement_state", "status", "refunded_at", "updated_at"])

    order.add_event(OrderEvent.Type.REFUNDED, f"Order reversed: {reason}")
    log_activity(
        action="order_reversed",
        actor=actor,
        description=reason,
        object_ref=order.pk,
        metadata={"reversals": [r.as_dict() for r in reversals]},
    )
    _notify_reversals(order, reversals)

    return ReversalResult(
        success=True,
        message=f"Reversed {len(reversals)} seller credit(s).",
        reversals=tuple(reversals),
    )


@transaction.atomic
def refund_order(
    order_id: Any,
    *,
    amount_cents: Optional[int] = None,
    reason: str = "",
    actor: Optional[Actor] = None,
) -> OrderRefundResult:
    """
    Refund a settled order in full.

    The buyer wallet is credited (by default with whatever of the order
    total has not been refunded through refund requests yet) and every
    seller credit is reversed, in one transaction. Replays are detected by
    the wallet reference.
    """
    actor = resolve_actor(actor)
    order = _lock_order(_pk(order_id))
    reference = order_wallet_refund_reference(order.pk)

    prior = WalletEntry.objects.filter(reference=reference).first()
    if prior is not None:
        return OrderRefundResult(
            success=True,
            duplicate=True,
            message="Order already refunded.",
            refunded_cents=int(prior.amount_cents),
            wallet_entry_id=prior.pk,
            reversal=ReversalResult(success=True, duplicate=True, reversals=_prior_reversals(order)),
        )
    if order.settlement_state not in REVERSIBLE_STATES:
        return OrderRefundResult(success=False, message="Only settled orders can be refunded.")

    already = (
        WalletEntry.objects.filter(order=order, type=WalletEntry.Type.CREDIT_REFUND).aggregate(
            total=Sum("amount_cents")
        )["total"]
        or 0
    )
    refundable = max(0, int(order.total_cents) - int(already))
    amount = refundable if amount_cents is None else int(amount_cents)
    if amount <= 0 or amount > refundable:
        raise ValidationError(f"Refund amount must be between 1 and {refundable} cents.")

    reason = reason or f"Refund of order {order.number}"
    reversal = revert_sellers_on_refund(order.pk, reason=reason, actor=actor)

    wallet = credit_buyer_wallet(
        user_id=order.buyer_id,
        amount_cents=amount,
        type=WalletEntry.Type.CREDIT_REFUND,
        description=reason,
        reference=reference,
        metadata={"reversed_cents": reversal.total_owed_cents},
        order_id=order.pk,
        actor=actor,
    )

    order.refresh_from_db()
    order.payment_status = Order.PaymentStatus.REFUNDED
    order.save(update_fields=["payment_status", "updated_at"])
    logger.info("Order %s refunded %s to buyer=%s wallet", order.pk, amount, order.buyer_id)

    order.add_event(OrderEvent.Type.REFUNDED, f"{_money(amount)} refunded to buyer wallet")
    notify_user(
        user_id=order.buyer_id,
        kind=Notification.Kind.REFUND,
        title=f"Refund for order {order.number}",
        body=f"{_money(amount)} was added to your wallet.",
        payload={"order_id": str(order.pk), "amount_cents": amount},
    )

    return OrderRefundResult(
        success=True,
        message=f"Refunded {_money(amount)}.",
        refunded_cents=amount,
        wallet_entry_id=wallet.transaction.pk,
        reversal=reversal,
    )


def _merge_lines(lines: Iterable[RefundLine]) -> list[RefundLine]:
    merged: dict[str, int] = {}
    for line in lines:
        if int(line.quantity) <= 0:
            raise ValidationError(f"Refund quantity must be positive for item {line.order_item_id}.")
        key = str(line.order_item_id)
        merged[key] = merged.get(key, 0) + int(line.quantity)
    return [RefundLine(order_item_id=k, quantity=q) for k, q in merged.items()]


@transaction.atomic
def revert_sellers_for_items(
    order_id: Any,
    lines: Iterable[Any],
    *,
    reason: str = "",
    actor: Optional[Actor] = None,
    reference: Optional[str] = None,
    refund_request=None,
) -> ReversalResult:
    """
    Reverse seller earnings for specific refunded line items.

    Lines are grouped by sub-order; each seller is debited the earnings
    share of the refunded units, capped at what is still outstanding on
    their credit. When every unit of a sub-order has been refunded the whole
    outstanding credit (shipping included) is reversed and the sub-order is
    put on payout hold.

    `reference` identifies this refund event (e.g. the refund request id);
    replays with the same reference return the prior reversals. Without it
    every call is a new refund event.
    """
    actor = resolve_actor(actor)
    order = _lock_order(_pk(order_id))

    if order.settlement_state == SettlementState.FULLY_REVERSED:
        return ReversalResult(
            success=True,
            duplicate=True,
            message="Order already fully reversed.",
            reversals=_prior_reversals(order),
        )
    if order.settlement_state not in REVERSIBLE_STATES:
        return ReversalResult(success=False, message="Order has not been settled; nothing to reverse.")

    refund_lines = _merge_lines(normalize_refund_line(line) for line in lines)
    if not refund_lines:
        raise ValidationError("No refund line items supplied.")

    items = {
        str(i.pk): i
        for i in OrderItem.objects.select_for_update()
        .select_related("seller_order")
        .filter(pk__in=[line.order_item_id for line in refund_lines], seller_order__order=order)
    }
    missing = [str(line.order_item_id) for line in refund_lines if str(line.order_item_id) not in items]
    if missing:
        raise ValidationError(f"Order items do not belong to order {order.pk}: {', '.join(missing)}")

    key = (reference or "").strip() or f"AUTO-{uuid.uuid4().hex}"
    reason = reason or f"Partial refund of order {order.number}"

    groups: dict[Any, list[tuple[OrderItem, int]]] = {}
    for line in refund_lines:
        item = items[str(line.order_item_id)]
        groups.setdefault(item.seller_order_id, []).append((item, line.quantity))

    seller_orders = {so.pk: so for so in _seller_orders(order) if so.pk in groups}
    ordered = sorted(groups, key=lambda so_id: (seller_orders[so_id].seller_id is None, seller_orders[so_id].seller_id or 0))

    reversals: list[SellerReversal] = []
    applied = False

    for so_id in ordered:
        so = seller_orders[so_id]
        pairs = groups[so_id]
        ref = item_refund_reference(key, so.pk)

        prior = SellerBalanceEntry.objects.filter(reference=ref).first()
        if prior is not None:
            reversals.append(_reversal_from_entry(prior))
            continue

        for item, qty in pairs:
            if qty > item.refundable_quantity:
                raise ValidationError(
                    f"Cannot refund {qty} of item {item.pk}; only {item.refundable_quantity} refundable."
                )

        rate = effective_commission_rate(so.commission_rate_snapshot)
        owed = sum(
            item_earnings_share_cents(
                line_base_cents=item.line_base_cents,
                quantity=item.quantity,
                refund_quantity=qty,
                commission_rate=rate,
            )
            for item, qty in pairs
        )

        for item, qty in pairs:
            item.refunded_quantity = int(item.refunded_quantity) + int(qty)
            item.save(update_fields=["refunded_quantity"])
        applied = True

        fully_refunded = so.all_items_refunded()
        if fully_refunded and so.payout_status != SellerOrder.PayoutStatus.HOLD:
            so.payout_status = SellerOrder.PayoutStatus.HOLD
            so.save(update_fields=["payout_status", "updated_at"])

        credit = None
        if so.seller_id is not None:
            credit = SettlementTransaction.objects.filter(
                seller_id=so.seller_id,
                seller_order=so,
                direction=SettlementTransaction.Direction.CREDIT,
            ).first()
        if credit is None:
            logger.warning("No seller credit for sub-order %s of order %s; nothing to reverse", so.pk, order.pk)
            continue

        remaining = _remaining_credit_cents(credit)
        if fully_refunded:
            owed = remaining
        owed = max(0, min(int(owed), remaining))

        reversals.append(
            _reverse_seller_amount(
                order=order,
                seller_order=so,
                credit=credit,
                owed_cents=owed,
                reference=ref,
                reason=reason,
                actor=actor,
                refund_request=refund_request,
            )
        )

    if not applied:
        return ReversalResult(
            success=True,
            duplicate=True,
            message="Refund items already reversed.",
            reversals=tuple(reversals),
        )

    new_reversals = [r for r in reversals if not r.duplicate]
    _record_reversed_payouts(sum(r.owed_cents for r in new_reversals))

    all_refunded = not OrderItem.objects.filter(
        seller_order__order=order, refunded_quantity__lt=F("quantity")
    ).exists()
    update_fields = ["settlement_state", "payment_status", "updated_at"]
    if all_refunded:
        order.transition_settlement(SettlementState.FULLY_REVERSED)
        order.payment_status = Order.PaymentStatus.REFUNDED
        order.status = Order.Status.REFUNDED
        order.refunded_at = timezone.now()
        update_fields += ["status", "refunded_at"]
    else:
        order.transition_settlement(SettlementState.PARTIALLY_REVERSED)
        order.payment_status = Order.PaymentStatus.PARTIALLY_REFUNDED
    order.save(update_fields=update_fields)

    order.add_event(OrderEvent.Type.REFUNDED, f"Items reversed: {reason}")
    log_activity(
        action="items_reversed",
        actor=actor,
        description=reason,
        object_ref=order.pk,
        metadata={
            "reference": key,
            "lines": [{"order_item_id": str(line.order_item_id), "quantity": line.quantity} for line in refund_lines],
            "reversals": [r.as_dict() for r in new_reversals],
        },
    )
    _notify_reversals(order, new_reversals)

    return ReversalResult(
        success=True,
        message=f"Reversed {len(new_reversals)} seller credit(s).",
        reversals=tuple(reversals),
    )


# ============================================================
# Cancellation before delivery
# ============================================================
@transaction.atomic
def cancel_recognized_payment(order_id: Any, *, reason: str = "", actor: Optional[Actor] = None) -> SettlementResult:
    """
    Cancel an order that has not been delivered.

    Releases pending seller earnings, takes back recognized revenue, puts
    stock back and, for wallet payments, refunds the buyer wallet.
    """
    actor = resolve_actor(actor)
    order = _lock_order(_pk(order_id))

    if order.settlement_state == SettlementState.CANCELLED:
        return SettlementResult(success=True, duplicate=True, message="Order already cancelled.")
    if not order.can_transition_to(SettlementState.CANCELLED):
        return SettlementResult(success=False, message="Order has been settled; refund it instead of cancelling.")

    reason = reason or f"Order {order.number} cancelled"
    released: list[SellerCredit] = []

    for so in _seller_orders(order):
        if so.seller_id is not None and so.pending_credited_cents:
            balance = lock_seller_balance(so.seller_id)
            entry, amount = release_seller_pending(
                balance,
                so.pending_credited_cents,
                reference=pending_release_reference(order.pk, so.pk),
                actor=actor,
                order=order,
                seller_order=so,
                description=reason,
            )
            released.append(SellerCredit(so.seller_id, so.pk, amount, entry.pk if entry else None))
        so.pending_credited_cents = 0
        so.payout_status = SellerOrder.PayoutStatus.HOLD
        so.save(update_fields=["pending_credited_cents", "payout_status", "updated_at"])

    if order.revenue_recognized_cents:
        stats = locked_platform_stats()
        deduct_revenue(stats, order.revenue_recognized_cents)
        save_stats(stats)
        add_daily_revenue(
            amount_cents=-int(order.revenue_recognized_cents),
            orders=0,
            day=timezone.localdate(order.revenue_recognized_at) if order.revenue_recognized_at else None,
        )
        order.revenue_recognized_cents = 0

    if order.inventory_reduced:
        restore_order_stock(order)

    if order.payment_method == Order.PaymentMethod.WALLET and order.payment_status == Order.PaymentStatus.PAID:
        credit_buyer_wallet(
            user_id=order.buyer_id,
            amount_cents=order.total_cents,
            type=WalletEntry.Type.CREDIT_REFUND,
            description=f"Refund for cancelled order {order.number}",
            reference=order_cancel_refund_reference(order.pk),
            order_id=order.pk,
            actor=actor,
        )

    order.transition_settlement(SettlementState.CANCELLED)
    order.status = Order.Status.CANCELLED
    order.payment_status = Order.PaymentStatus.CANCELLED
    order.cancelled_at = timezone.now()
    order.save(
        update_fields=[
            "settlement_state",
            "status",
            "payment_status",
            "cancelled_at",
            "revenue_recognized_cents",
            "inventory_reduced_at",
            "updated_at",
        ]
    )

    order.add_event(OrderEvent.Type.CANCELLED, reason)
    log_activity(
        action="order_cancelled",
        actor=actor,
        description=reason,
        object_ref=order.pk,
        metadata={"released": [r.as_dict() for r in released]},
    )
    notify_user(
        user_id=order.buyer_id,
        kind=Notification.Kind.ORDER,
        title=f"Order {order.number} cancelled",
        body=reason,
        payload={"order_id": str(order.pk)},
    )

    return SettlementResult(success=True, message="Order cancelled.", updates=tuple(released))


# ============================================================
# Read-only
# ============================================================
@dataclass(frozen=True)
class SubOrderEarnings:
    seller_order_id: Any
    seller_id: Any
    base_price_cents: int
    shipping_cents: int
    vat_cents: int
    nhil_cents: int
    getfund_cents: int
    covid_levy_cents: int
    commission_rate: Decimal
    platform_fee_cents: int
    earnings_cents: int
    payout_status: str
    credited_cents: int
    reversed_cents: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "seller_order_id": str(self.seller_order_id),
            "seller_id": self.seller_id,
            "base_price_cents": self.base_price_cents,
            "shipping_cents": self.shipping_cents,
            "vat_cents": self.vat_cents,
            "nhil_cents": self.nhil_cents,
            "getfund_cents": self.getfund_cents,
            "covid_levy_cents": self.covid_levy_cents,
            "commission_rate": str(self.commission_rate),
            "platform_fee_cents": self.platform_fee_cents,
            "earnings_cents": self.earnings_cents,
            "payout_status": self.payout_status,
            "credited_cents": self.credited_cents,
            "reversed_cents": self.reversed_cents,
        }


def get_seller_earnings_for_order(order_id: Any) -> list[SubOrderEarnings]:
    order = Order.objects.filter(pk=_pk(order_id)).first()
    if order is None:
        raise OrderNotFound(_pk(order_id))

    txs = {
        (tx.seller_order_id, tx.direction): int(tx.amount_cents)
        for tx in SettlementTransaction.objects.filter(order=order)
    }
    out = []
    for so in order.seller_orders.order_by("created_at", "id"):
        earnings = seller_earnings_for_sub_order(so)
        out.append(
            SubOrderEarnings(
                seller_order_id=so.pk,
                seller_id=so.seller_id,
                base_price_cents=int(so.base_price_cents),
                shipping_cents=int(so.shipping_cents),
                vat_cents=int(so.vat_cents),
                nhil_cents=int(so.nhil_cents),
                getfund_cents=int(so.getfund_cents),
                covid_levy_cents=int(so.covid_levy_cents),
                commission_rate=earnings.commission_rate,
                platform_fee_cents=earnings.platform_fee_cents,
                earnings_cents=earnings.earnings_cents,
                payout_status=so.payout_status,
                credited_cents=txs.get((so.pk, SettlementTransaction.Direction.CREDIT), 0),
                reversed_cents=txs.get((so.pk, SettlementTransaction.Direction.DEBIT), 0),
            )
        )
    return out
