# dashboards/migrations/0001_initial.py
from __future__ import annotations

from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PlatformStats",
            fields=[
                ("id", models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False)),
                ("total_revenue_cents", models.BigIntegerField(default=0)),
                ("total_delivered_orders", models.PositiveIntegerField(default=0)),
                ("total_products_sold", models.PositiveIntegerField(default=0)),
                ("total_reversed_payouts_cents", models.BigIntegerField(default=0)),
                ("last_updated", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "verbose_name": "Platform stats",
                "verbose_name_plural": "Platform stats",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_revenue_cents__gte", 0)), name="dashboards_stats_revenue_gte_0"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DailyRevenue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField(unique=True)),
                ("revenue_cents", models.BigIntegerField(default=0)),
                ("orders", models.PositiveIntegerField(default=0)),
            ],
            options={
                "ordering": ("-date",),
            },
        ),
    ]
