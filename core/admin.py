# core/admin.py
from __future__ import annotations

from django.contrib import admin

from .models import ActivityLog, SiteConfig


@admin.register(SiteConfig)
class SiteConfigAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "marketplace_sales_percent",
        "vat_percent",
        "nhil_percent",
        "getfund_percent",
        "covid_levy_percent",
        "default_currency",
        "updated_at",
    )
    readonly_fields = ("created_at", "updated_at")
    fieldsets = (
        ("Commission", {"fields": ("marketplace_sales_percent",)}),
        ("Taxes", {"fields": ("vat_percent", "nhil_percent", "getfund_percent", "covid_levy_percent")}),
        ("Currency", {"fields": ("default_currency",)}),
        ("Meta", {"fields": ("created_at", "updated_at")}),
    )

    def has_add_permission(self, request) -> bool:
        # singleton
        return not SiteConfig.objects.exists()


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "actor_type", "actor_id", "object_ref")
    list_filter = ("action", "actor_type")
    search_fields = ("action", "description", "object_ref", "actor_id")
    ordering = ("-created_at",)
    readonly_fields = [f.name for f in ActivityLog._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False
