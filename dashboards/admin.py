# dashboards/admin.py
from __future__ import annotations

from django.contrib import admin

from .models import DailyRevenue, PlatformStats


@admin.register(PlatformStats)
class PlatformStatsAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "total_revenue_cents",
        "total_delivered_orders",
        "total_products_sold",
        "total_reversed_payouts_cents",
        "last_updated",
    )
    readonly_fields = list_display

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(DailyRevenue)
class DailyRevenueAdmin(admin.ModelAdmin):
    list_display = ("date", "revenue_cents", "orders")
    ordering = ("-date",)
    readonly_fields = ("date", "revenue_cents", "orders")
