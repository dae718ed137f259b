# orders/migrations/0001_initial.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


SETTLEMENT_CHOICES = [
    ("pending_payment", "Pending payment"),
    ("payment_recognized", "Payment recognized"),
    ("delivered_and_settled", "Delivered and settled"),
    ("partially_reversed", "Partially reversed"),
    ("fully_reversed", "Fully reversed"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("products", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("pending_payment", "Pending payment"), ("processing", "Processing"), ("delivered", "Delivered"), ("cancelled", "Cancelled"), ("refunded", "Refunded")], default="pending_payment", max_length=24)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("partially_refunded", "Partially refunded"), ("refunded", "Refunded"), ("cancelled", "Cancelled")], default="pending", max_length=24)),
                ("payment_method", models.CharField(choices=[("card", "Card / mobile money (gateway)"), ("wallet", "Buyer wallet"), ("bank_transfer", "Bank transfer"), ("payment_on_delivery", "Payment on delivery")], default="card", max_length=24)),
                ("settlement_state", models.CharField(choices=SETTLEMENT_CHOICES, db_index=True, default="pending_payment", max_length=32)),
                ("currency", models.CharField(default="ghs", max_length=8)),
                ("subtotal_cents", models.PositiveIntegerField(default=0)),
                ("covid_levy_cents", models.PositiveIntegerField(default=0)),
                ("shipping_cents", models.PositiveIntegerField(default=0)),
                ("total_cents", models.PositiveIntegerField(default=0)),
                ("total_qty", models.PositiveIntegerField(default=0)),
                ("payment_reference", models.CharField(blank=True, max_length=128, null=True, unique=True)),
                ("revenue_recognized_at", models.DateTimeField(blank=True, null=True)),
                ("revenue_recognized_cents", models.PositiveIntegerField(default=0)),
                ("inventory_reduced_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "-created_at"], name="orders_status_created_idx"),
                    models.Index(fields=["buyer", "-created_at"], name="orders_buyer_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SellerOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("subtotal_cents", models.PositiveIntegerField(default=0)),
                ("base_price_cents", models.PositiveIntegerField(default=0, help_text="VAT-exclusive item total.")),
                ("vat_cents", models.PositiveIntegerField(default=0)),
                ("nhil_cents", models.PositiveIntegerField(default=0)),
                ("getfund_cents", models.PositiveIntegerField(default=0)),
                ("covid_levy_cents", models.PositiveIntegerField(default=0)),
                ("shipping_cents", models.PositiveIntegerField(default=0)),
                ("commission_rate_snapshot", models.DecimalField(blank=True, decimal_places=4, help_text="Commission rate (0.1000 = 10%) captured at order creation. Empty = platform default.", max_digits=6, null=True)),
                ("payout_status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("hold", "Hold")], default="pending", max_length=16)),
                ("pending_credited_cents", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="seller_orders", to="orders.order")),
                ("seller", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="seller_orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["seller", "payout_status"], name="orders_so_seller_payout_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "seller"), name="orders_sellerorder_unique_seller"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(blank=True, default="", max_length=64)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price_cents", models.PositiveIntegerField(default=0, help_text="VAT-inclusive unit price snapshot.")),
                ("line_base_cents", models.PositiveIntegerField(default=0, help_text="VAT-exclusive line total.")),
                ("refunded_quantity", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="order_items", to="products.product")),
                ("seller_order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.sellerorder")),
            ],
            options={
                "indexes": [models.Index(fields=["seller_order", "created_at"], name="orders_item_so_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="OrderEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("type", models.CharField(choices=[("created", "Created"), ("paid", "Paid"), ("stock_reduced", "Stock reduced"), ("delivered", "Delivered"), ("sellers_credited", "Sellers credited"), ("refunded", "Refunded"), ("cancelled", "Cancelled"), ("warning", "Warning")], max_length=64)),
                ("message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="orders.order")),
            ],
            options={
                "indexes": [models.Index(fields=["order", "-created_at"], name="orders_event_order_idx")],
            },
        ),
    ]
