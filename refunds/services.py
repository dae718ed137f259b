# refunds/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.activity import log_activity
from core.actors import Actor, resolve_actor
from notifications.models import Notification
from notifications.services import notify_user
from orders.models import REVERSIBLE_STATES, Order, OrderEvent, OrderItem
from orders.settlement import RefundLine, ReversalResult, normalize_refund_line, revert_sellers_for_items
from payments.models import WalletEntry
from payments.wallet import WalletResult, credit_buyer_wallet

from .models import RefundItem, RefundRequest

logger = logging.getLogger(__name__)


def refund_wallet_reference(rr: RefundRequest) -> str:
    return f"REFUND-APPROVED:{rr.pk}"


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_request: RefundRequest
    message: str = ""
    wallet: Optional[WalletResult] = None
    reversal: Optional[ReversalResult] = None
    duplicate: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "refund_request_id": str(self.refund_request.pk),
            "status": self.refund_request.status,
            "message": self.message,
            "wallet": self.wallet.as_dict() if self.wallet else None,
            "reversal": self.reversal.as_dict() if self.reversal else None,
            "duplicate": self.duplicate,
        }


def _lock_request(rr: RefundRequest) -> RefundRequest:
    return RefundRequest.objects.select_for_update().select_related("order").get(pk=rr.pk)


def _open_quantity(item: OrderItem) -> int:
    """Units already claimed by refund requests still awaiting a decision."""
    agg = RefundItem.objects.filter(
        order_item=item,
        status__in=[RefundItem.Status.REQUESTED, RefundItem.Status.SELLER_REVIEW],
    ).aggregate(total=Sum("quantity"))
    return int(agg["total"] or 0)


@transaction.atomic
def create_refund_request(
    *,
    order: Order,
    buyer,
    lines: Iterable[Any],
    reason: str = RefundRequest.Reason.OTHER,
    notes: str = "",
) -> RefundRequest:
    """
    Open a refund request for some units of a settled order.

    Each line is priced at its VAT-inclusive unit price. Units already
    refunded, or claimed by another open request, cannot be requested again.
    """
    if order.buyer_id != getattr(buyer, "pk", buyer):
        raise PermissionDenied("Only the buyer can request a refund for this order.")
    if order.settlement_state not in REVERSIBLE_STATES:
        raise ValidationError("Refunds are available only for delivered and settled orders.")

    merged: dict[str, RefundLine] = {}
    for raw in lines:
        line = normalize_refund_line(raw)
        key = str(line.order_item_id)
        qty = int(line.quantity) + (merged[key].quantity if key in merged else 0)
        merged[key] = RefundLine(order_item_id=line.order_item_id, quantity=qty)
    if not merged:
        raise ValidationError("Select at least one item to refund.")

    items = {
        str(i.pk): i
        for i in OrderItem.objects.select_related("seller_order").filter(
            pk__in=[line.order_item_id for line in merged.values()], seller_order__order=order
        )
    }

    rows: list[tuple[OrderItem, int]] = []
    for key, line in merged.items():
        item = items.get(key)
        if item is None:
            raise ValidationError(f"Order item {key} does not belong to this order.")
        if line.quantity <= 0:
            raise ValidationError("Refund quantity must be positive.")
        available = item.refundable_quantity - _open_quantity(item)
        if line.quantity > available:
            raise ValidationError(f"Only {max(0, available)} unit(s) of item {item.pk} can be refunded.")
        rows.append((item, line.quantity))

    rr = RefundRequest.objects.create(
        order=order,
        buyer_id=order.buyer_id,
        reason=reason,
        notes=(notes or "").strip(),
    )
    RefundItem.objects.bulk_create(
        [
            RefundItem(
                refund_request=rr,
                order_item=item,
                seller_id=item.seller_order.seller_id,
                quantity=qty,
                unit_price_cents=item.unit_price_cents,
                amount_cents=int(item.unit_price_cents) * int(qty),
            )
            for item, qty in rows
        ]
    )
    rr.total_refund_cents = sum(int(item.unit_price_cents) * int(qty) for item, qty in rows)
    rr.save(update_fields=["total_refund_cents", "updated_at"])

    order.add_event(OrderEvent.Type.WARNING, f"Refund requested rr={rr.pk} items={len(rows)}")
    log_activity(
        action="refund_requested",
        actor=Actor.user(order.buyer_id),
        description=f"Refund requested for order {order.number}",
        object_ref=rr.pk,
        metadata={"total_refund_cents": rr.total_refund_cents},
    )
    for seller_id in {item.seller_order.seller_id for item, _ in rows if item.seller_order.seller_id}:
        notify_user(
            user_id=seller_id,
            kind=Notification.Kind.REFUND,
            title=f"Refund requested on order {order.number}",
            payload={"refund_request_id": str(rr.pk)},
        )
    return rr


@transaction.atomic
def seller_review(*, refund_request: RefundRequest, seller, approve: bool, note: str = "") -> RefundRequest:
    """
    A seller accepts (return received / claim valid) or rejects their own items.

    Once every item has been reviewed the request moves to seller_review, or
    to rejected when every seller rejected.
    """
    rr = _lock_request(refund_request)
    if rr.is_decided:
        raise ValidationError("This refund request has already been decided.")

    seller_id = getattr(seller, "pk", seller)
    own = list(rr.items.select_for_update().filter(seller_id=seller_id, status=RefundItem.Status.REQUESTED))
    if not own:
        if not rr.items.filter(seller_id=seller_id).exists():
            raise PermissionDenied("You have no items on this refund request.")
        raise ValidationError("Your items on this request have already been reviewed.")

    now = timezone.now()
    for item in own:
        item.status = RefundItem.Status.SELLER_REVIEW if approve else RefundItem.Status.REJECTED
        item.seller_note = (note or "").strip()
        item.seller_reviewed_at = now
        item.save(update_fields=["status", "seller_note", "seller_reviewed_at"])

    statuses = set(rr.items.values_list("status", flat=True))
    if RefundItem.Status.REQUESTED not in statuses:
        if statuses == {RefundItem.Status.REJECTED}:
            rr.status = RefundRequest.Status.REJECTED
            rr.processed_by = Actor.seller(seller_id)
            rr.processed_at = now
            rr.decision_note = (note or "").strip()
        else:
            rr.status = RefundRequest.Status.SELLER_REVIEW
        rr.save(update_fields=["status", "processed_by_type", "processed_by_id", "processed_at", "decision_note", "updated_at"])

    rr.order.add_event(
        OrderEvent.Type.WARNING,
        f"Refund {'accepted' if approve else 'rejected'} by seller={seller_id} rr={rr.pk}",
    )
    log_activity(
        action="refund_seller_review",
        actor=Actor.seller(seller_id),
        description=f"Seller {'accepted' if approve else 'rejected'} {len(own)} item(s)",
        object_ref=rr.pk,
        metadata={"approve": approve, "note": note or ""},
    )
    return rr


@transaction.atomic
def approve_refund(
    *,
    refund_request: RefundRequest,
    actor: Optional[Actor] = None,
    final_refund_cents: Optional[int] = None,
    note: str = "",
) -> RefundResult:
    """
    Approve a refund request: credit the buyer wallet and take the refunded
    items' earnings back from their sellers, in one transaction.

    Items a seller rejected stay rejected and are neither paid nor reversed.
    final_refund_cents lets the admin pay less than the requested amount.
    """
    actor = resolve_actor(actor)
    rr = _lock_request(refund_request)

    if rr.status == RefundRequest.Status.APPROVED:
        return RefundResult(success=True, duplicate=True, refund_request=rr, message="Refund already approved.")
    if rr.status == RefundRequest.Status.REJECTED:
        return RefundResult(success=False, refund_request=rr, message="Refund request was rejected.")

    items = list(rr.items.select_for_update().exclude(status=RefundItem.Status.REJECTED).order_by("created_at", "id"))
    if not items:
        return RefundResult(success=False, refund_request=rr, message="No refundable items on this request.")

    approved_total = sum(int(i.amount_cents) for i in items)
    amount = approved_total if final_refund_cents is None else int(final_refund_cents)
    if amount < 0 or amount > approved_total:
        raise ValidationError(f"Final refund must be between 0 and {approved_total}.")

    reversal = revert_sellers_for_items(
        rr.order_id,
        [RefundLine(order_item_id=i.order_item_id, quantity=i.quantity) for i in items],
        reason=f"Refund request {rr.pk}",
        actor=actor,
        reference=str(rr.pk),
        refund_request=rr,
    )
    if not reversal.success:
        return RefundResult(success=False, refund_request=rr, message=reversal.message, reversal=reversal)
    if reversal.duplicate:
        return RefundResult(
            success=False,
            refund_request=rr,
            message="These items were already refunded.",
            reversal=reversal,
        )

    wallet = None
    if amount > 0:
        wallet = credit_buyer_wallet(
            user_id=rr.buyer_id,
            amount_cents=amount,
            type=WalletEntry.Type.CREDIT_REFUND,
            description=f"Refund for order {rr.order.number}",
            reference=refund_wallet_reference(rr),
            metadata={"items": [str(i.order_item_id) for i in items]},
            order_id=rr.order_id,
            refund_request_id=rr.pk,
            actor=actor,
        )

    now = timezone.now()
    RefundItem.objects.filter(pk__in=[i.pk for i in items]).update(status=RefundItem.Status.APPROVED)
    rr.status = RefundRequest.Status.APPROVED
    rr.final_refund_cents = amount
    rr.processed_by = actor
    rr.processed_at = now
    rr.decision_note = (note or "").strip()
    rr.save(
        update_fields=[
            "status",
            "final_refund_cents",
            "processed_by_type",
            "processed_by_id",
            "processed_at",
            "decision_note",
            "updated_at",
        ]
    )

    log_activity(
        action="refund_approved",
        actor=actor,
        description=f"Refund {rr.pk} approved for {amount}",
        object_ref=rr.pk,
        metadata={"final_refund_cents": amount, "reversals": [r.as_dict() for r in reversal.reversals]},
    )
    notify_user(
        user_id=rr.buyer_id,
        kind=Notification.Kind.WALLET,
        title=f"Refund approved for order {rr.order.number}",
        body=f"{amount / 100:,.2f} was added to your wallet." if amount else "",
        payload={"refund_request_id": str(rr.pk), "amount_cents": amount},
    )
    logger.info("Refund approved rr=%s amount=%s sellers=%s", rr.pk, amount, len(reversal.reversals))

    return RefundResult(success=True, refund_request=rr, message="Refund approved.", wallet=wallet, reversal=reversal)


@transaction.atomic
def reject_refund(*, refund_request: RefundRequest, actor: Optional[Actor] = None, note: str = "") -> RefundResult:
    actor = resolve_actor(actor)
    rr = _lock_request(refund_request)

    if rr.status == RefundRequest.Status.REJECTED:
        return RefundResult(success=True, duplicate=True, refund_request=rr, message="Refund already rejected.")
    if rr.status == RefundRequest.Status.APPROVED:
        return RefundResult(success=False, refund_request=rr, message="Refund request was already approved.")

    rr.items.exclude(status=RefundItem.Status.REJECTED).update(status=RefundItem.Status.REJECTED)
    rr.status = RefundRequest.Status.REJECTED
    rr.processed_by = actor
    rr.processed_at = timezone.now()
    rr.decision_note = (note or "").strip()
    rr.save(update_fields=["status", "processed_by_type", "processed_by_id", "processed_at", "decision_note", "updated_at"])

    rr.order.add_event(OrderEvent.Type.WARNING, f"Refund rejected rr={rr.pk}")
    log_activity(action="refund_rejected", actor=actor, description=note or "", object_ref=rr.pk)
    notify_user(
        user_id=rr.buyer_id,
        kind=Notification.Kind.REFUND,
        title=f"Refund request for order {rr.order.number} rejected",
        body=rr.decision_note,
        payload={"refund_request_id": str(rr.pk)},
    )
    return RefundResult(success=True, refund_request=rr, message="Refund rejected.")
