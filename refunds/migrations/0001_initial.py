# refunds/migrations/0001_initial.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


STATUS_CHOICES = [
    ("requested", "Requested"),
    ("seller_review", "Seller reviewed"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="RefundRequest",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reason", models.CharField(choices=[("damaged", "Item arrived damaged"), ("not_as_described", "Not as described"), ("wrong_item", "Wrong item received"), ("returned", "Returned to seller"), ("other", "Other")], default="other", max_length=32)),
                ("notes", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=STATUS_CHOICES, default="requested", max_length=16)),
                ("total_refund_cents", models.PositiveIntegerField(default=0)),
                ("final_refund_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("processed_by_type", models.CharField(blank=True, choices=[("admin", "Admin"), ("seller", "Seller"), ("user", "User"), ("system", "System")], default="", max_length=16)),
                ("processed_by_id", models.CharField(blank=True, default="", max_length=64)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("decision_note", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_requests_made", to=settings.AUTH_USER_MODEL)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="refund_requests", to="orders.order")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "-created_at"], name="refunds_rr_status_idx"),
                    models.Index(fields=["buyer", "status", "-created_at"], name="refunds_rr_buyer_idx"),
                    models.Index(fields=["order", "-created_at"], name="refunds_rr_order_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price_cents", models.PositiveIntegerField(default=0)),
                ("amount_cents", models.PositiveIntegerField(default=0)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="requested", max_length=16)),
                ("seller_note", models.TextField(blank=True, default="")),
                ("seller_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("order_item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_items", to="orders.orderitem")),
                ("refund_request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="refunds.refundrequest")),
                ("seller", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="refund_items_received", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["seller", "status"], name="refunds_item_seller_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("refund_request", "order_item"), name="refunds_item_unique_line"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 1)), name="refunds_item_quantity_gte_1"),
                ],
            },
        ),
    ]
