# payments/admin.py

from __future__ import annotations

from django.contrib import admin

from .models import BuyerWallet, SellerBalance, SellerBalanceEntry, SettlementTransaction, WalletEntry


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    """Ledgers are append-only; the admin only inspects them."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(SellerBalance)
class SellerBalanceAdmin(admin.ModelAdmin):
    list_display = (
        "seller",
        "balance_display",
        "pending_cents",
        "locked_cents",
        "negative_cents",
        "withdrawable_cents",
        "updated_at",
    )
    search_fields = ("seller__username", "seller__email")
    readonly_fields = (
        "balance_cents",
        "pending_cents",
        "negative_cents",
        "withdrawable_cents",
        "created_at",
        "updated_at",
    )

    def balance_display(self, obj):
        return f"{obj.balance_cents / 100:,.2f}"

    balance_display.short_description = "Balance"


@admin.register(SellerBalanceEntry)
class SellerBalanceEntryAdmin(ReadOnlyLedgerAdmin):
    list_display = (
        "id",
        "created_at",
        "seller",
        "bucket",
        "reason",
        "amount_cents",
        "balance_before_cents",
        "balance_after_cents",
        "reference",
        "actor_type",
        "actor_id",
    )
    list_filter = ("bucket", "reason", "actor_type")
    search_fields = ("seller__username", "seller__email", "reference", "order__id")
    ordering = ("-id",)


@admin.register(SettlementTransaction)
class SettlementTransactionAdmin(ReadOnlyLedgerAdmin):
    list_display = ("created_at", "seller", "order", "seller_order", "direction", "amount_cents", "original_transaction")
    list_filter = ("direction",)
    search_fields = ("seller__username", "order__id")
    ordering = ("-created_at",)


@admin.register(BuyerWallet)
class BuyerWalletAdmin(admin.ModelAdmin):
    list_display = ("user", "balance_cents", "currency", "updated_at")
    search_fields = ("user__username", "user__email")
    readonly_fields = ("balance_cents", "created_at", "updated_at")


@admin.register(WalletEntry)
class WalletEntryAdmin(ReadOnlyLedgerAdmin):
    list_display = (
        "id",
        "created_at",
        "user",
        "type",
        "amount_cents",
        "balance_before_cents",
        "balance_after_cents",
        "reference",
    )
    list_filter = ("type",)
    search_fields = ("user__username", "user__email", "reference")
    ordering = ("-id",)
