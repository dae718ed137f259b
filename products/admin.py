# products/admin.py
from __future__ import annotations

from django.contrib import admin

from .models import Product, ProductVariant


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "seller", "price_cents", "stock", "status", "updated_at")
    list_filter = ("status",)
    search_fields = ("name", "seller__username", "variants__sku")
    inlines = [ProductVariantInline]
    ordering = ("-created_at",)
