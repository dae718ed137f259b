# dashboards/models.py
from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone


class PlatformStats(models.Model):
    """
    Platform-wide counters (single row, pk=1).

    total_revenue_cents is gross order value recognized minus seller payouts,
    i.e. what the platform keeps (taxes + commission). Only settlement code
    writes here, inside the transaction it accounts for.
    """

    SINGLETON_PK = 1

    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_PK, editable=False)

    total_revenue_cents = models.BigIntegerField(default=0)
    total_delivered_orders = models.PositiveIntegerField(default=0)
    total_products_sold = models.PositiveIntegerField(default=0)
    total_reversed_payouts_cents = models.BigIntegerField(default=0)

    last_updated = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Platform stats"
        verbose_name_plural = "Platform stats"
        constraints = [
            models.CheckConstraint(condition=Q(total_revenue_cents__gte=0), name="dashboards_stats_revenue_gte_0"),
        ]

    def __str__(self) -> str:
        return f"PlatformStats revenue={self.total_revenue_cents}"


class DailyRevenue(models.Model):
    """Rolling per-day revenue window (last 30 days kept)."""

    date = models.DateField(unique=True)
    revenue_cents = models.BigIntegerField(default=0)
    orders = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("-date",)

    def __str__(self) -> str:
        return f"{self.date}: {self.revenue_cents} ({self.orders} orders)"
