# orders/admin.py

from __future__ import annotations

from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.urls import reverse
from django.utils.html import format_html

from core.actors import Actor
from core.exceptions import SettlementError

from .models import Order, OrderEvent, OrderItem, SellerOrder, SettlementState
from .services import mark_delivered
from .settlement import credit_sellers_on_delivery, refund_order


# =========================
# Helpers
# =========================
def cents_to_money(cents: int | None, currency: str = "ghs") -> str:
    if cents is None:
        cents = 0
    try:
        amount = int(cents) / 100.0
    except (TypeError, ValueError):
        amount = 0.0
    return f"{(currency or 'ghs').upper()} {amount:,.2f}"


# =========================
# Admin Filters
# =========================
class PaidStateFilter(admin.SimpleListFilter):
    title = "paid state"
    parameter_name = "paid_state"

    def lookups(self, request, model_admin):
        return (("paid", "Paid"), ("unpaid", "Unpaid"))

    def queryset(self, request, queryset):
        val = self.value()
        if val == "paid":
            return queryset.filter(paid_at__isnull=False)
        if val == "unpaid":
            return queryset.filter(paid_at__isnull=True)
        return queryset


class StockStateFilter(admin.SimpleListFilter):
    title = "inventory"
    parameter_name = "inventory"

    def lookups(self, request, model_admin):
        return (("reduced", "Reduced"), ("pending", "Not reduced"))

    def queryset(self, request, queryset):
        val = self.value()
        if val == "reduced":
            return queryset.filter(inventory_reduced_at__isnull=False)
        if val == "pending":
            return queryset.filter(inventory_reduced_at__isnull=True)
        return queryset


# =========================
# Inlines
# =========================
class SellerOrderInline(admin.TabularInline):
    model = SellerOrder
    extra = 0
    can_delete = False
    fields = (
        "id",
        "seller",
        "subtotal_cents",
        "base_price_cents",
        "vat_cents",
        "nhil_cents",
        "getfund_cents",
        "covid_levy_cents",
        "shipping_cents",
        "commission_rate_snapshot",
        "pending_credited_cents",
        "payout_status",
    )
    readonly_fields = fields
    show_change_link = True


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ("id", "product", "sku", "quantity", "refunded_quantity", "unit_price_cents", "line_base_cents")
    readonly_fields = fields


class OrderEventInline(admin.TabularInline):
    model = OrderEvent
    extra = 0
    can_delete = False
    fields = ("created_at", "type", "message")
    readonly_fields = ("created_at", "type", "message")
    ordering = ("-created_at",)


# =========================
# Order Admin
# =========================
@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    inlines = [SellerOrderInline, OrderEventInline]
    list_select_related = ("buyer",)

    list_display = (
        "id",
        "status",
        "settlement_state",
        "payment_method",
        "buyer",
        "total_money",
        "total_qty",
        "paid_at",
        "settled_at",
        "created_at",
    )
    list_filter = (
        "status",
        "settlement_state",
        "payment_method",
        "payment_status",
        PaidStateFilter,
        StockStateFilter,
        "created_at",
    )
    search_fields = ("id", "payment_reference", "buyer__username", "buyer__email")
    raw_id_fields = ("buyer",)

    readonly_fields = (
        "id",
        "settlement_state",
        "payment_reference",
        "subtotal_cents",
        "covid_levy_cents",
        "shipping_cents",
        "total_cents",
        "total_qty",
        "revenue_recognized_at",
        "revenue_recognized_cents",
        "inventory_reduced_at",
        "paid_at",
        "delivered_at",
        "settled_at",
        "cancelled_at",
        "refunded_at",
        "created_at",
        "updated_at",
    )

    fieldsets = (
        ("Identity", {"fields": ("id", "buyer", "status", "payment_status", "payment_method", "currency")}),
        ("Settlement", {"fields": ("settlement_state", "payment_reference", "revenue_recognized_cents")}),
        (
            "Totals (cents)",
            {"fields": ("subtotal_cents", "covid_levy_cents", "shipping_cents", "total_cents", "total_qty")},
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "revenue_recognized_at",
                    "inventory_reduced_at",
                    "paid_at",
                    "delivered_at",
                    "settled_at",
                    "cancelled_at",
                    "refunded_at",
                    "created_at",
                    "updated_at",
                )
            },
        ),
    )

    actions = ["mark_delivered_and_settle", "retry_seller_settlement", "refund_whole_order"]

    @admin.display(description="Total")
    def total_money(self, obj: Order) -> str:
        return cents_to_money(obj.total_cents, obj.currency)

    # ---------------------
    # admin actions
    # ---------------------
    def _run(self, request, queryset, fn, label: str) -> None:
        ok = 0
        skipped = 0
        for order in queryset:
            try:
                result = fn(order)
            except (SettlementError, ValidationError) as e:
                skipped += 1
                messages.error(request, f"{label} {order.number}: {e}")
                continue
            if result.success:
                ok += 1
            else:
                skipped += 1
                messages.info(request, f"{label} {order.number}: {result.message}")

        self.message_user(
            request,
            f"{label}: ok={ok}, skipped={skipped}.",
            level=messages.SUCCESS if ok else messages.WARNING,
        )

    @admin.action(description="Mark delivered and credit sellers")
    def mark_delivered_and_settle(self, request, queryset):
        actor = Actor.admin(request.user)
        self._run(request, queryset, lambda o: mark_delivered(order=o, actor=actor), "Deliver")

    @admin.action(description="Retry seller settlement (delivered orders only)")
    def retry_seller_settlement(self, request, queryset):
        actor = Actor.admin(request.user)
        self._run(request, queryset, lambda o: credit_sellers_on_delivery(o.pk, actor=actor), "Settle")

    @admin.action(description="Refund whole order (buyer wallet credited, seller credits reversed)")
    def refund_whole_order(self, request, queryset):
        actor = Actor.admin(request.user)
        eligible = queryset.filter(
            settlement_state__in=[SettlementState.SETTLED, SettlementState.PARTIALLY_REVERSED]
        )
        self._run(
            request,
            eligible,
            lambda o: refund_order(o.pk, reason="Admin refund", actor=actor),
            "Refund",
        )


@admin.register(SellerOrder)
class SellerOrderAdmin(admin.ModelAdmin):
    list_display = ("id", "order_link", "seller", "base_price_cents", "shipping_cents", "payout_status", "created_at")
    list_filter = ("payout_status", "created_at")
    search_fields = ("id", "order__id", "seller__username")
    inlines = [OrderItemInline]
    readonly_fields = ("order", "commission_rate_snapshot", "pending_credited_cents", "created_at", "updated_at")

    @admin.display(description="Order")
    def order_link(self, obj: SellerOrder) -> str:
        url = reverse("admin:orders_order_change", args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, obj.order_id)


@admin.register(OrderEvent)
class OrderEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "order", "type", "message")
    list_filter = ("type", "created_at")
    search_fields = ("order__id", "message")
    ordering = ("-created_at",)
