# payments/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from core.models import ActorStamped


class SellerBalance(models.Model):
    """
    Current balances for one seller (mutable aggregate).

    balance_cents      earned and settled
    locked_cents       held for in-flight payout requests
    pending_cents      earned on paid orders that are not delivered yet
    negative_cents     deficit left over when a reversal exceeded balance
    withdrawable_cents max(0, balance - locked), kept in sync on every save
    """

    seller = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="seller_balance",
    )

    balance_cents = models.BigIntegerField(default=0)
    locked_cents = models.BigIntegerField(default=0)
    pending_cents = models.BigIntegerField(default=0)
    negative_cents = models.BigIntegerField(default=0)
    withdrawable_cents = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(balance_cents__gte=0), name="payments_sb_balance_gte_0"),
            models.CheckConstraint(condition=Q(locked_cents__gte=0), name="payments_sb_locked_gte_0"),
            models.CheckConstraint(condition=Q(pending_cents__gte=0), name="payments_sb_pending_gte_0"),
            models.CheckConstraint(condition=Q(negative_cents__gte=0), name="payments_sb_negative_gte_0"),
        ]

    def __str__(self) -> str:
        return f"SellerBalance<{self.seller_id}> {self.balance_cents}"

    def recompute_withdrawable(self) -> int:
        self.withdrawable_cents = max(0, int(self.balance_cents) - int(self.locked_cents))
        return self.withdrawable_cents

    def save(self, *args, **kwargs) -> None:
        self.recompute_withdrawable()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "withdrawable_cents" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["withdrawable_cents"]
        super().save(*args, **kwargs)


class SellerBalanceEntry(ActorStamped):
    """
    Append-only ledger for seller balances.

    One row per change to one bucket (balance or pending) of a seller's
    SellerBalance. amount_cents is signed; the database rejects rows where
    balance_after != balance_before + amount. id orders entries chronologically.
    """

    class Bucket(models.TextChoices):
        BALANCE = "balance", "Balance"
        PENDING = "pending", "Pending"

    class Reason(models.TextChoices):
        ORDER_EARNING = "order_earning", "Order earning (delivered)"
        PENDING_EARNING = "pending_earning", "Pending earning (paid, not delivered)"
        PENDING_RELEASE = "pending_release", "Pending released"
        REFUND_REVERSAL = "refund_reversal", "Refund reversal"
        ADJUSTMENT = "adjustment", "Manual adjustment"

    id = models.BigAutoField(primary_key=True)

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="balance_entries",
    )

    bucket = models.CharField(max_length=16, choices=Bucket.choices, default=Bucket.BALANCE)
    reason = models.CharField(max_length=32, choices=Reason.choices)

    amount_cents = models.BigIntegerField(help_text="Signed cents applied to the bucket.")
    balance_before_cents = models.BigIntegerField()
    balance_after_cents = models.BigIntegerField()

    reference = models.CharField(max_length=191, null=True, blank=True, unique=True)

    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="seller_balance_entries",
    )
    seller_order = models.ForeignKey(
        "orders.SellerOrder",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="balance_entries",
    )
    refund_request = models.ForeignKey(
        "refunds.RefundRequest",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="seller_balance_entries",
    )

    description = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("id",)
        indexes = [
            models.Index(fields=["seller", "bucket", "id"], name="payments_sbe_seller_idx"),
            models.Index(fields=["reason", "-created_at"], name="payments_sbe_reason_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance_after_cents=F("balance_before_cents") + F("amount_cents")),
                name="payments_sbe_after_eq_before_plus_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.seller_id}: {self.amount_cents} ({self.bucket}/{self.reason})"


class SettlementTransaction(ActorStamped):
    """
    Seller-facing settlement record: at most one credit and one debit per
    (seller, sub-order). Partial reversals accumulate on the single debit row.
    """

    class Direction(models.TextChoices):
        CREDIT = "credit", "Credit"
        DEBIT = "debit", "Debit"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlement_transactions",
    )
    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="settlement_transactions")
    seller_order = models.ForeignKey(
        "orders.SellerOrder",
        on_delete=models.PROTECT,
        related_name="settlement_transactions",
    )

    direction = models.CharField(max_length=8, choices=Direction.choices)
    amount_cents = models.BigIntegerField(help_text="Amount owed in this direction (always positive).")

    original_transaction = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversals",
    )

    description = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["seller", "seller_order", "direction"],
                name="payments_settlement_unique_direction",
            ),
            models.CheckConstraint(condition=Q(amount_cents__gte=0), name="payments_settlement_amount_gte_0"),
        ]
        indexes = [
            models.Index(fields=["order", "direction"], name="payments_st_order_dir_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.direction} {self.amount_cents} seller={self.seller_id} so={self.seller_order_id}"


class BuyerWallet(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance_cents = models.BigIntegerField(default=0)
    currency = models.CharField(max_length=8, default="ghs")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(balance_cents__gte=0), name="payments_wallet_balance_gte_0"),
        ]

    def __str__(self) -> str:
        return f"Wallet<{self.user_id}> {self.balance_cents}"


class WalletEntry(ActorStamped):
    """Append-only buyer wallet history. At most one row per reference."""

    class Type(models.TextChoices):
        CREDIT_TOPUP = "credit_topup", "Top-up"
        CREDIT_REFUND = "credit_refund", "Refund"
        CREDIT_ADJUSTMENT = "credit_adjustment", "Credit adjustment"
        DEBIT_ORDER = "debit_order", "Order payment"
        DEBIT_ADJUSTMENT = "debit_adjustment", "Debit adjustment"

    id = models.BigAutoField(primary_key=True)

    wallet = models.ForeignKey(BuyerWallet, on_delete=models.CASCADE, related_name="entries")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet_entries",
    )

    type = models.CharField(max_length=24, choices=Type.choices)
    amount_cents = models.BigIntegerField(help_text="Signed cents.")
    balance_before_cents = models.BigIntegerField()
    balance_after_cents = models.BigIntegerField()

    reference = models.CharField(max_length=191, null=True, blank=True, unique=True)

    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="wallet_entries",
    )
    refund_request = models.ForeignKey(
        "refunds.RefundRequest",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="wallet_entries",
    )

    description = models.CharField(max_length=255, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("id",)
        indexes = [
            models.Index(fields=["wallet", "id"], name="payments_we_wallet_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance_after_cents=F("balance_before_cents") + F("amount_cents")),
                name="payments_we_after_eq_before_plus_amount",
            ),
            models.CheckConstraint(condition=Q(balance_after_cents__gte=0), name="payments_we_after_gte_0"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}: {self.amount_cents} ({self.type})"
