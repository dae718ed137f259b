# payments/services.py

from __future__ import annotations

from typing import Any

from django.db.models import Sum

from .ledger import ledger_chain_problems
from .models import SellerBalance, SellerBalanceEntry, SettlementTransaction


def ensure_seller_balance(*, seller) -> SellerBalance:
    balance, _ = SellerBalance.objects.get_or_create(seller=seller)
    return balance


def get_withdrawable_cents(*, seller) -> int:
    balance = SellerBalance.objects.filter(seller=seller).first()
    if balance is None:
        return 0
    return max(0, int(balance.balance_cents) - int(balance.locked_cents))


def get_seller_balance_summary(*, seller) -> dict[str, Any]:
    balance = SellerBalance.objects.filter(seller=seller).first()
    if balance is None:
        return {
            "balance_cents": 0,
            "locked_cents": 0,
            "pending_cents": 0,
            "negative_cents": 0,
            "withdrawable_cents": 0,
        }
    return {
        "balance_cents": int(balance.balance_cents),
        "locked_cents": int(balance.locked_cents),
        "pending_cents": int(balance.pending_cents),
        "negative_cents": int(balance.negative_cents),
        "withdrawable_cents": max(0, int(balance.balance_cents) - int(balance.locked_cents)),
    }


def get_seller_ledger_total_cents(*, seller, bucket: str = SellerBalanceEntry.Bucket.BALANCE) -> int:
    """Signed sum of ledger entries for one bucket; equals the aggregate when the ledger is complete."""
    agg = SellerBalanceEntry.objects.filter(seller=seller, bucket=bucket).aggregate(total=Sum("amount_cents"))
    return int(agg["total"] or 0)


def get_seller_settled_total_cents(*, seller) -> int:
    """Credits minus debits across all settlement transactions for a seller."""
    rows = SettlementTransaction.objects.filter(seller=seller).values("direction").annotate(total=Sum("amount_cents"))
    totals = {r["direction"]: int(r["total"] or 0) for r in rows}
    return totals.get(SettlementTransaction.Direction.CREDIT, 0) - totals.get(SettlementTransaction.Direction.DEBIT, 0)


def verify_seller_ledger(*, seller) -> list[str]:
    """Ledger-vs-aggregate consistency problems for a seller (empty list when clean)."""
    balance = SellerBalance.objects.filter(seller=seller).first()
    problems: list[str] = []
    for bucket, current in (
        (SellerBalanceEntry.Bucket.BALANCE, balance.balance_cents if balance else 0),
        (SellerBalanceEntry.Bucket.PENDING, balance.pending_cents if balance else 0),
    ):
        entries = SellerBalanceEntry.objects.filter(seller=seller, bucket=bucket).order_by("id")
        problems.extend(f"{bucket}: {p}" for p in ledger_chain_problems(entries, current_cents=current))
    return problems
