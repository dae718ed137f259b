# payments/ledger.py
"""
Seller ledger writes.

Every change to a SellerBalance bucket goes through _apply_entry, which
writes the ledger row first (unique reference, savepoint) and only then
moves the aggregate. A replayed reference leaves the aggregate untouched.
Callers must hold the SellerBalance row lock (lock_seller_balance).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from django.core.exceptions import ValidationError

from core.actors import Actor, resolve_actor
from core.idempotency import create_once

from .models import SellerBalance, SellerBalanceEntry

logger = logging.getLogger(__name__)

_BUCKET_FIELDS = {
    SellerBalanceEntry.Bucket.BALANCE: "balance_cents",
    SellerBalanceEntry.Bucket.PENDING: "pending_cents",
}


def lock_seller_balance(seller_id: Any) -> SellerBalance:
    """Row-locked SellerBalance, created on first use."""
    balance, created = SellerBalance.objects.select_for_update().get_or_create(seller_id=seller_id)
    if created:
        logger.info("Created seller balance seller=%s", seller_id)
    return balance


def _apply_entry(
    balance: SellerBalance,
    *,
    bucket: str,
    reason: str,
    amount_cents: int,
    reference: Optional[str] = None,
    actor: Optional[Actor] = None,
    order=None,
    seller_order=None,
    refund_request=None,
    description: str = "",
    metadata: Optional[Mapping[str, Any]] = None,
) -> tuple[SellerBalanceEntry, bool]:
    field_name = _BUCKET_FIELDS[bucket]

    if reference:
        existing = SellerBalanceEntry.objects.filter(reference=reference).first()
        if existing is not None:
            logger.info("Ledger reference %s already applied; skipping", reference)
            return existing, False

    before = int(getattr(balance, field_name))
    after = before + int(amount_cents)
    if after < 0:
        raise ValidationError(f"Ledger change would drive seller {bucket} negative ({before} + {amount_cents}).")

    entry, created = create_once(
        SellerBalanceEntry,
        reference=reference,
        seller_id=balance.seller_id,
        bucket=bucket,
        reason=reason,
        amount_cents=int(amount_cents),
        balance_before_cents=before,
        balance_after_cents=after,
        order=order,
        seller_order=seller_order,
        refund_request=refund_request,
        description=description or "",
        metadata=dict(metadata or {}),
        **resolve_actor(actor).as_fields(),
    )
    if not created:
        return entry, False

    setattr(balance, field_name, after)
    balance.save(update_fields=[field_name, "updated_at"])
    return entry, True


def credit_seller_balance(balance: SellerBalance, amount_cents: int, **kwargs) -> tuple[SellerBalanceEntry, bool]:
    if int(amount_cents) <= 0:
        raise ValidationError("Credit amount must be positive.")
    kwargs.setdefault("reason", SellerBalanceEntry.Reason.ORDER_EARNING)
    return _apply_entry(balance, bucket=SellerBalanceEntry.Bucket.BALANCE, amount_cents=int(amount_cents), **kwargs)


def credit_seller_pending(balance: SellerBalance, amount_cents: int, **kwargs) -> tuple[SellerBalanceEntry, bool]:
    if int(amount_cents) <= 0:
        raise ValidationError("Pending credit amount must be positive.")
    return _apply_entry(
        balance,
        bucket=SellerBalanceEntry.Bucket.PENDING,
        reason=SellerBalanceEntry.Reason.PENDING_EARNING,
        amount_cents=int(amount_cents),
        **kwargs,
    )


def release_seller_pending(balance: SellerBalance, amount_cents: int, **kwargs) -> tuple[Optional[SellerBalanceEntry], int]:
    """Take up to amount_cents out of pending (never below 0). Returns (entry, released)."""
    released = min(max(0, int(amount_cents)), int(balance.pending_cents))
    if released <= 0:
        return None, 0
    entry, created = _apply_entry(
        balance,
        bucket=SellerBalanceEntry.Bucket.PENDING,
        reason=SellerBalanceEntry.Reason.PENDING_RELEASE,
        amount_cents=-released,
        **kwargs,
    )
    return entry, (released if created else -int(entry.amount_cents))


@dataclass(frozen=True)
class ClampedDebit:
    entry: SellerBalanceEntry
    owed_cents: int
    debited_cents: int
    shortfall_cents: int
    duplicate: bool = False


def debit_seller_balance_clamped(balance: SellerBalance, owed_cents: int, **kwargs) -> ClampedDebit:
    """
    Take owed_cents back from a seller without ever going below zero.

    Whatever the balance cannot cover is added to negative_cents. The ledger
    row records the amount actually removed; owed and shortfall go in metadata.
    """
    owed = max(0, int(owed_cents))
    debited = min(owed, max(0, int(balance.balance_cents)))
    shortfall = owed - debited

    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata.update({"owed_cents": owed, "debited_cents": debited, "shortfall_cents": shortfall})
    kwargs.setdefault("reason", SellerBalanceEntry.Reason.REFUND_REVERSAL)

    entry, created = _apply_entry(
        balance,
        bucket=SellerBalanceEntry.Bucket.BALANCE,
        amount_cents=-debited,
        metadata=metadata,
        **kwargs,
    )
    if not created:
        meta = entry.metadata or {}
        return ClampedDebit(
            entry=entry,
            owed_cents=int(meta.get("owed_cents", -entry.amount_cents)),
            debited_cents=-int(entry.amount_cents),
            shortfall_cents=int(meta.get("shortfall_cents", 0)),
            duplicate=True,
        )

    if shortfall > 0:
        balance.negative_cents = int(balance.negative_cents) + shortfall
        balance.save(update_fields=["negative_cents", "updated_at"])
        logger.warning(
            "Seller %s balance insufficient for reversal: owed=%s debited=%s shortfall=%s",
            balance.seller_id,
            owed,
            debited,
            shortfall,
        )

    return ClampedDebit(entry=entry, owed_cents=owed, debited_cents=debited, shortfall_cents=shortfall)


def ledger_chain_problems(entries: Iterable[Any], *, current_cents: int) -> list[str]:
    """
    Check one aggregate's ledger, oldest first.

    Each entry must satisfy after == before + amount, each entry's before must
    equal the previous entry's after, and the last after must equal the
    aggregate's current value.
    """
    problems: list[str] = []
    previous_after: Optional[int] = None
    for entry in entries:
        before = int(entry.balance_before_cents)
        after = int(entry.balance_after_cents)
        if after != before + int(entry.amount_cents):
            problems.append(f"entry {entry.pk}: {before} + {entry.amount_cents} != {after}")
        if previous_after is not None and before != previous_after:
            problems.append(f"entry {entry.pk}: before {before} != previous after {previous_after}")
        previous_after = after

    if previous_after is not None and previous_after != int(current_cents):
        problems.append(f"last after {previous_after} != current {current_cents}")
    return problems
