# refunds/admin.py

from __future__ import annotations

from django.contrib import admin, messages
from django.urls import reverse
from django.utils.html import format_html

from core.actors import Actor

from .models import RefundItem, RefundRequest


class RefundItemInline(admin.TabularInline):
    model = RefundItem
    extra = 0
    can_delete = False
    fields = ("order_item", "seller", "quantity", "unit_price_cents", "amount_cents", "status", "seller_note")
    readonly_fields = fields


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "status",
        "reason",
        "order_link",
        "buyer",
        "total_refund_display",
        "final_refund_cents",
        "created_at",
    )
    list_filter = ("status", "reason", "created_at")
    search_fields = ("id", "order__id", "buyer__username", "buyer__email")
    ordering = ("-created_at",)
    inlines = [RefundItemInline]
    actions = ("admin_approve_refund", "admin_reject_refund")

    readonly_fields = (
        "id",
        "order",
        "buyer",
        "reason",
        "notes",
        "status",
        "total_refund_cents",
        "final_refund_cents",
        "processed_by_type",
        "processed_by_id",
        "processed_at",
        "decision_note",
        "created_at",
        "updated_at",
    )

    fieldsets = (
        ("Identity", {"fields": ("id", "status", "reason", "created_at", "updated_at")}),
        ("Parties", {"fields": ("order", "buyer")}),
        ("Buyer request", {"fields": ("notes",)}),
        ("Amounts", {"fields": ("total_refund_cents", "final_refund_cents")}),
        ("Decision", {"fields": ("processed_by_type", "processed_by_id", "processed_at", "decision_note")}),
    )

    @admin.display(description="Order")
    def order_link(self, obj: RefundRequest) -> str:
        url = reverse("admin:orders_order_change", args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, obj.order_id)

    @admin.display(description="Requested")
    def total_refund_display(self, obj: RefundRequest) -> str:
        return f"{int(obj.total_refund_cents or 0) / 100:,.2f}"

    def _decide(self, request, queryset, fn, label: str) -> None:
        from django.core.exceptions import ValidationError

        ok = 0
        skipped = 0
        for rr in queryset.select_related("order"):
            try:
                result = fn(rr)
            except ValidationError as e:
                skipped += 1
                messages.error(request, f"Refund {rr.pk}: {'; '.join(e.messages)}")
                continue
            if result.success and not result.duplicate:
                ok += 1
            else:
                skipped += 1
                if not result.success:
                    messages.info(request, f"Refund {rr.pk}: {result.message}")

        if ok:
            messages.success(request, f"{label} {ok} refund(s).")
        if skipped:
            messages.info(request, f"Skipped {skipped} refund(s).")

    @admin.action(description="Approve selected refunds (credit buyer wallet, reverse sellers)")
    def admin_approve_refund(self, request, queryset):
        from .services import approve_refund  # local import

        actor = Actor.admin(request.user)
        self._decide(request, queryset, lambda rr: approve_refund(refund_request=rr, actor=actor), "Approved")

    @admin.action(description="Reject selected refunds")
    def admin_reject_refund(self, request, queryset):
        from .services import reject_refund  # local import

        actor = Actor.admin(request.user)
        self._decide(request, queryset, lambda rr: reject_refund(refund_request=rr, actor=actor), "Rejected")
