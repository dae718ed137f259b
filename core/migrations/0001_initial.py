# core/migrations/0001_initial.py
from __future__ import annotations

from decimal import Decimal

from django.db import migrations, models
import django.utils.timezone


ACTOR_CHOICES = [("admin", "Admin"), ("seller", "Seller"), ("user", "User"), ("system", "System")]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SiteConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("marketplace_sales_percent", models.DecimalField(decimal_places=2, default=Decimal("10.00"), help_text="Default commission withheld by the platform (e.g., 10.00 = 10%).", max_digits=6)),
                ("vat_percent", models.DecimalField(decimal_places=2, default=Decimal("12.50"), max_digits=6)),
                ("nhil_percent", models.DecimalField(decimal_places=2, default=Decimal("2.50"), max_digits=6)),
                ("getfund_percent", models.DecimalField(decimal_places=2, default=Decimal("2.50"), max_digits=6)),
                ("covid_levy_percent", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=6)),
                ("default_currency", models.CharField(default="ghs", max_length=8)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Site Config",
                "verbose_name_plural": "Site Config",
            },
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("actor_type", models.CharField(choices=ACTOR_CHOICES, default="system", max_length=16)),
                ("actor_id", models.CharField(blank=True, default="", max_length=64)),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("description", models.TextField(blank=True, default="")),
                ("object_ref", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["actor_type", "actor_id", "-created_at"], name="core_activity_actor_idx"),
                ],
            },
        ),
    ]
