# products/migrations/0001_initial.py
from __future__ import annotations

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160)),
                ("price_cents", models.PositiveIntegerField(default=0)),
                ("stock", models.PositiveIntegerField(default=0, help_text="Stock for products without variants.")),
                ("status", models.CharField(choices=[("draft", "Draft"), ("active", "Active"), ("out_of_stock", "Out of stock")], default="active", max_length=16)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("seller", models.ForeignKey(help_text="The user who owns this listing (seller).", on_delete=django.db.models.deletion.CASCADE, related_name="products", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["seller", "status"], name="products_seller_status_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("stock__gte", 0)), name="products_product_stock_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductVariant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=64)),
                ("name", models.CharField(blank=True, default="", max_length=120)),
                ("price_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("stock", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="variants", to="products.product")),
            ],
            options={
                "ordering": ["product", "sku"],
                "constraints": [
                    models.UniqueConstraint(fields=("product", "sku"), name="products_variant_unique_sku"),
                    models.CheckConstraint(condition=models.Q(("stock__gte", 0)), name="products_variant_stock_gte_0"),
                ],
            },
        ),
    ]
