# payments/migrations/0001_initial.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


ACTOR_CHOICES = [("admin", "Admin"), ("seller", "Seller"), ("user", "User"), ("system", "System")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        ("refunds", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SellerBalance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("balance_cents", models.BigIntegerField(default=0)),
                ("locked_cents", models.BigIntegerField(default=0)),
                ("pending_cents", models.BigIntegerField(default=0)),
                ("negative_cents", models.BigIntegerField(default=0)),
                ("withdrawable_cents", models.BigIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("seller", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="seller_balance", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance_cents__gte", 0)), name="payments_sb_balance_gte_0"),
                    models.CheckConstraint(condition=models.Q(("locked_cents__gte", 0)), name="payments_sb_locked_gte_0"),
                    models.CheckConstraint(condition=models.Q(("pending_cents__gte", 0)), name="payments_sb_pending_gte_0"),
                    models.CheckConstraint(condition=models.Q(("negative_cents__gte", 0)), name="payments_sb_negative_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SellerBalanceEntry",
            fields=[
                ("actor_type", models.CharField(choices=ACTOR_CHOICES, default="system", max_length=16)),
                ("actor_id", models.CharField(blank=True, default="", max_length=64)),
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("bucket", models.CharField(choices=[("balance", "Balance"), ("pending", "Pending")], default="balance", max_length=16)),
                ("reason", models.CharField(choices=[("order_earning", "Order earning (delivered)"), ("pending_earning", "Pending earning (paid, not delivered)"), ("pending_release", "Pending released"), ("refund_reversal", "Refund reversal"), ("adjustment", "Manual adjustment")], max_length=32)),
                ("amount_cents", models.BigIntegerField(help_text="Signed cents applied to the bucket.")),
                ("balance_before_cents", models.BigIntegerField()),
                ("balance_after_cents", models.BigIntegerField()),
                ("reference", models.CharField(blank=True, max_length=191, null=True, unique=True)),
                ("description", models.TextField(blank=True, default="")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="seller_balance_entries", to="orders.order")),
                ("refund_request", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="seller_balance_entries", to="refunds.refundrequest")),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="balance_entries", to=settings.AUTH_USER_MODEL)),
                ("seller_order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="balance_entries", to="orders.sellerorder")),
            ],
            options={
                "ordering": ("id",),
                "indexes": [
                    models.Index(fields=["seller", "bucket", "id"], name="payments_sbe_seller_idx"),
                    models.Index(fields=["reason", "-created_at"], name="payments_sbe_reason_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance_after_cents", models.F("balance_before_cents") + models.F("amount_cents"))), name="payments_sbe_after_eq_before_plus_amount"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SettlementTransaction",
            fields=[
                ("actor_type", models.CharField(choices=ACTOR_CHOICES, default="system", max_length=16)),
                ("actor_id", models.CharField(blank=True, default="", max_length=64)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("direction", models.CharField(choices=[("credit", "Credit"), ("debit", "Debit")], max_length=8)),
                ("amount_cents", models.BigIntegerField(help_text="Amount owed in this direction (always positive).")),
                ("description", models.TextField(blank=True, default="")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="settlement_transactions", to="orders.order")),
                ("original_transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversals", to="payments.settlementtransaction")),
                ("seller", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="settlement_transactions", to=settings.AUTH_USER_MODEL)),
                ("seller_order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="settlement_transactions", to="orders.sellerorder")),
            ],
            options={
                "indexes": [models.Index(fields=["order", "direction"], name="payments_st_order_dir_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("seller", "seller_order", "direction"), name="payments_settlement_unique_direction"),
                    models.CheckConstraint(condition=models.Q(("amount_cents__gte", 0)), name="payments_settlement_amount_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BuyerWallet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("balance_cents", models.BigIntegerField(default=0)),
                ("currency", models.CharField(default="ghs", max_length=8)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="wallet", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance_cents__gte", 0)), name="payments_wallet_balance_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletEntry",
            fields=[
                ("actor_type", models.CharField(choices=ACTOR_CHOICES, default="system", max_length=16)),
                ("actor_id", models.CharField(blank=True, default="", max_length=64)),
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("type", models.CharField(choices=[("credit_topup", "Top-up"), ("credit_refund", "Refund"), ("credit_adjustment", "Credit adjustment"), ("debit_order", "Order payment"), ("debit_adjustment", "Debit adjustment")], max_length=24)),
                ("amount_cents", models.BigIntegerField(help_text="Signed cents.")),
                ("balance_before_cents", models.BigIntegerField()),
                ("balance_after_cents", models.BigIntegerField()),
                ("reference", models.CharField(blank=True, max_length=191, null=True, unique=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="wallet_entries", to="orders.order")),
                ("refund_request", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="wallet_entries", to="refunds.refundrequest")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="wallet_entries", to=settings.AUTH_USER_MODEL)),
                ("wallet", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="payments.buyerwallet")),
            ],
            options={
                "ordering": ("id",),
                "indexes": [models.Index(fields=["wallet", "id"], name="payments_we_wallet_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance_after_cents", models.F("balance_before_cents") + models.F("amount_cents"))), name="payments_we_after_eq_before_plus_amount"),
                    models.CheckConstraint(condition=models.Q(("balance_after_cents__gte", 0)), name="payments_we_after_gte_0"),
                ],
            },
        ),
    ]
