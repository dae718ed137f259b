# core/config.py
from __future__ import annotations

from decimal import Decimal

from django.core.cache import cache

from .models import SiteConfig

CACHE_KEY = "core:site_config:v1"
CACHE_TTL_SECONDS = 30  # short TTL so admin changes take effect quickly


def get_site_config(*, use_cache: bool = True) -> SiteConfig:
    """
    Returns the singleton SiteConfig.

    Fresh DB case: auto-creates one row with model defaults.
    """
    if use_cache:
        cached = cache.get(CACHE_KEY)
        if isinstance(cached, SiteConfig):
            return cached

    obj = SiteConfig.objects.order_by("pk").first()
    if obj is None:
        obj = SiteConfig.objects.create()

    cache.set(CACHE_KEY, obj, CACHE_TTL_SECONDS)
    return obj


def invalidate_site_config_cache() -> None:
    cache.delete(CACHE_KEY)


def pct_to_rate(pct) -> Decimal:
    # 12.50 -> 0.125
    try:
        return Decimal(pct or Decimal("0")) / Decimal("100")
    except Exception:
        return Decimal("0")


def get_marketplace_sales_percent() -> Decimal:
    cfg = get_site_config()
    return Decimal(cfg.marketplace_sales_percent or Decimal("0"))


def get_marketplace_commission_rate() -> Decimal:
    return pct_to_rate(get_marketplace_sales_percent())


def get_default_currency() -> str:
    return get_site_config().default_currency or "ghs"
