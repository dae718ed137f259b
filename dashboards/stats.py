# dashboards/stats.py
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from django.db.models import F
from django.utils import timezone

from .models import DailyRevenue, PlatformStats

logger = logging.getLogger(__name__)

REVENUE_WINDOW_DAYS = 30


def locked_platform_stats() -> PlatformStats:
    """The singleton row, created on first use, locked for the current transaction."""
    stats, _ = PlatformStats.objects.select_for_update().get_or_create(pk=PlatformStats.SINGLETON_PK)
    return stats


def get_platform_stats() -> PlatformStats:
    stats, _ = PlatformStats.objects.get_or_create(pk=PlatformStats.SINGLETON_PK)
    return stats


def add_revenue(stats: PlatformStats, amount_cents: int) -> tuple[int, int]:
    old = int(stats.total_revenue_cents)
    stats.total_revenue_cents = old + max(0, int(amount_cents))
    return old, int(stats.total_revenue_cents)


def deduct_revenue(stats: PlatformStats, amount_cents: int) -> tuple[int, int]:
    """Subtract, clamping at zero. Returns (old, new)."""
    old = int(stats.total_revenue_cents)
    stats.total_revenue_cents = max(0, old - max(0, int(amount_cents)))
    return old, int(stats.total_revenue_cents)


def save_stats(stats: PlatformStats) -> None:
    stats.last_updated = timezone.now()
    stats.save()


def _window_start(today: date) -> date:
    return today - timedelta(days=REVENUE_WINDOW_DAYS - 1)


def add_daily_revenue(*, amount_cents: int, orders: int = 0, day: Optional[date] = None) -> Optional[DailyRevenue]:
    """
    Accumulate into the bucket for `day` (today by default) and drop buckets
    older than the window. A day already outside the window is not written.
    """
    today = timezone.localdate()
    day = day or today
    if day < _window_start(today):
        logger.info("Daily revenue for %s is outside the window; not recorded", day)
        prune_daily_revenue(today=today)
        return None

    row, _ = DailyRevenue.objects.select_for_update().get_or_create(date=day)
    DailyRevenue.objects.filter(pk=row.pk).update(
        revenue_cents=F("revenue_cents") + int(amount_cents),
        orders=F("orders") + max(0, int(orders)),
    )
    prune_daily_revenue(today=today)
    row.refresh_from_db()
    return row


def prune_daily_revenue(*, today: Optional[date] = None) -> int:
    cutoff = _window_start(today or timezone.localdate())
    deleted, _ = DailyRevenue.objects.filter(date__lt=cutoff).delete()
    if deleted:
        logger.info("Pruned %s daily revenue bucket(s) before %s", deleted, cutoff)
    return deleted


def get_daily_revenue_window() -> list[dict[str, Any]]:
    return [
        {"date": r.date.isoformat(), "revenue_cents": int(r.revenue_cents), "orders": int(r.orders)}
        for r in DailyRevenue.objects.order_by("date")
    ]
