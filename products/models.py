# products/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q


def normalize_sku(value) -> str:
    return str(value or "").strip().upper()


class Product(models.Model):
    """
    A listing owned by one seller.

    Simple products keep stock on the product row. Products with variants
    keep stock per variant SKU and the product-level counter is unused.
    """

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        ACTIVE = "active", "Active"
        OUT_OF_STOCK = "out_of_stock", "Out of stock"

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="products",
        help_text="The user who owns this listing (seller).",
    )

    name = models.CharField(max_length=160)

    # VAT-inclusive listed price
    price_cents = models.PositiveIntegerField(default=0)

    stock = models.PositiveIntegerField(default=0, help_text="Stock for products without variants.")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "status"], name="products_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name="products_product_stock_gte_0"),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def has_variants(self) -> bool:
        return self.variants.exists()


class ProductVariant(models.Model):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="variants")

    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=120, blank=True, default="")

    # Overrides the product price when set
    price_cents = models.PositiveIntegerField(null=True, blank=True)

    stock = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["product", "sku"]
        constraints = [
            models.UniqueConstraint(fields=["product", "sku"], name="products_variant_unique_sku"),
            models.CheckConstraint(condition=Q(stock__gte=0), name="products_variant_stock_gte_0"),
        ]

    def __str__(self) -> str:
        return f"{self.product_id}:{self.sku}"

    @property
    def effective_price_cents(self) -> int:
        if self.price_cents is not None:
            return int(self.price_cents)
        return int(self.product.price_cents)

    def save(self, *args, **kwargs) -> None:
        self.sku = normalize_sku(self.sku)
        super().save(*args, **kwargs)
