# payments/wallet.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from django.core.exceptions import ValidationError
from django.db import transaction

from core.actors import Actor, resolve_actor
from core.config import get_default_currency
from core.exceptions import InsufficientFunds, WalletNotFound
from core.idempotency import create_once

from .models import BuyerWallet, WalletEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletResult:
    transaction: WalletEntry
    wallet: BuyerWallet
    duplicate: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction.pk,
            "type": self.transaction.type,
            "amount_cents": self.transaction.amount_cents,
            "balance_before_cents": self.transaction.balance_before_cents,
            "balance_after_cents": self.transaction.balance_after_cents,
            "reference": self.transaction.reference,
            "wallet_balance_cents": self.wallet.balance_cents,
            "duplicate": self.duplicate,
        }


def _clean_reference(reference: Optional[str]) -> Optional[str]:
    reference = (reference or "").strip()
    return reference or None


def _replay(entry: WalletEntry, *, user_id: Any) -> WalletResult:
    if str(entry.user_id) != str(user_id):
        raise ValidationError(f"Reference {entry.reference} belongs to another wallet.")
    logger.info("Wallet reference %s already applied; returning stored entry %s", entry.reference, entry.pk)
    return WalletResult(transaction=entry, wallet=BuyerWallet.objects.get(pk=entry.wallet_id), duplicate=True)


def _lock_wallet(user_id: Any, *, create: bool) -> BuyerWallet:
    qs = BuyerWallet.objects.select_for_update()
    if create:
        wallet, _ = qs.get_or_create(user_id=user_id, defaults={"currency": get_default_currency()})
        return wallet
    wallet = qs.filter(user_id=user_id).first()
    if wallet is None:
        raise WalletNotFound(user_id)
    return wallet


def _write_entry(
    wallet: BuyerWallet,
    *,
    amount_cents: int,
    type: str,
    description: str,
    reference: Optional[str],
    metadata: Optional[Mapping[str, Any]],
    order_id: Any,
    refund_request_id: Any,
    actor: Optional[Actor],
) -> WalletResult:
    before = int(wallet.balance_cents)
    after = before + int(amount_cents)

    entry, created = create_once(
        WalletEntry,
        reference=reference,
        wallet=wallet,
        user_id=wallet.user_id,
        type=type,
        amount_cents=int(amount_cents),
        balance_before_cents=before,
        balance_after_cents=after,
        order_id=order_id,
        refund_request_id=refund_request_id,
        description=(description or "")[:255],
        metadata=dict(metadata or {}),
        **resolve_actor(actor).as_fields(),
    )
    if not created:
        return _replay(entry, user_id=wallet.user_id)

    wallet.balance_cents = after
    wallet.save(update_fields=["balance_cents", "updated_at"])
    logger.info(
        "Wallet %s %s %s: %s -> %s ref=%s",
        wallet.user_id,
        type,
        amount_cents,
        before,
        after,
        reference or "-",
    )
    return WalletResult(transaction=entry, wallet=wallet)


@transaction.atomic
def credit_buyer_wallet(
    *,
    user_id: Any,
    amount_cents: int,
    type: str = WalletEntry.Type.CREDIT_TOPUP,
    description: str = "",
    reference: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    order_id: Any = None,
    refund_request_id: Any = None,
    actor: Optional[Actor] = None,
) -> WalletResult:
    """
    Add funds to a buyer wallet (created on first credit).

    Idempotent by reference: a repeat returns the stored entry with
    duplicate=True and leaves the balance alone.
    """
    amount_cents = int(amount_cents)
    if amount_cents <= 0:
        raise ValidationError("Credit amount must be positive.")

    reference = _clean_reference(reference)
    if reference:
        existing = WalletEntry.objects.filter(reference=reference).first()
        if existing is not None:
            return _replay(existing, user_id=user_id)

    wallet = _lock_wallet(user_id, create=True)
    return _write_entry(
        wallet,
        amount_cents=amount_cents,
        type=type,
        description=description,
        reference=reference,
        metadata=metadata,
        order_id=order_id,
        refund_request_id=refund_request_id,
        actor=actor,
    )


@transaction.atomic
def debit_buyer_wallet(
    *,
    user_id: Any,
    amount_cents: int,
    type: str = WalletEntry.Type.DEBIT_ORDER,
    description: str = "",
    reference: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    order_id: Any = None,
    refund_request_id: Any = None,
    actor: Optional[Actor] = None,
) -> WalletResult:
    """
    Take funds from a buyer wallet.

    Raises WalletNotFound, or InsufficientFunds when the balance does not
    cover the amount. Buyer wallets never go negative.
    """
    amount_cents = int(amount_cents)
    if amount_cents <= 0:
        raise ValidationError("Debit amount must be positive.")

    reference = _clean_reference(reference)
    if reference:
        existing = WalletEntry.objects.filter(reference=reference).first()
        if existing is not None:
            return _replay(existing, user_id=user_id)

    wallet = _lock_wallet(user_id, create=False)
    if amount_cents > int(wallet.balance_cents):
        raise InsufficientFunds(available_cents=wallet.balance_cents, requested_cents=amount_cents)

    return _write_entry(
        wallet,
        amount_cents=-amount_cents,
        type=type,
        description=description,
        reference=reference,
        metadata=metadata,
        order_id=order_id,
        refund_request_id=refund_request_id,
        actor=actor,
    )


def get_wallet_balance_cents(*, user_id: Any) -> int:
    return int(BuyerWallet.objects.filter(user_id=user_id).values_list("balance_cents", flat=True).first() or 0)
