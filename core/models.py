# core/models.py
from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.db import models
from django.utils import timezone

from .actors import Actor, ActorType


def _clamp_percent(value: Any) -> Decimal:
    try:
        pct = Decimal(value or Decimal("0"))
    except Exception:
        return Decimal("0.00")
    if pct < 0:
        return Decimal("0.00")
    if pct > 100:
        return Decimal("100.00")
    return pct


class SiteConfig(models.Model):
    """
    DB-backed platform settings (singleton).

    Commission and tax rates live here so they can be tuned from the admin.
    Orders snapshot the commission rate at creation time; changing it here
    never alters the settlement of orders already placed.
    """

    # Platform commission: percent of seller gross (base + shipping), e.g. 10.00 -> 10%
    marketplace_sales_percent = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("10.00"),
        help_text="Default commission withheld by the platform (e.g., 10.00 = 10%).",
    )

    # Taxes included in the listed (VAT-inclusive) price
    vat_percent = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("12.50"))
    nhil_percent = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("2.50"))
    getfund_percent = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("2.50"))

    # Charged on top of the base price
    covid_levy_percent = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("1.00"))

    default_currency = models.CharField(max_length=8, default="ghs")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Site Config"
        verbose_name_plural = "Site Config"

    def __str__(self) -> str:
        return "SiteConfig"

    def clean(self) -> None:
        self.marketplace_sales_percent = _clamp_percent(self.marketplace_sales_percent)
        self.vat_percent = _clamp_percent(self.vat_percent)
        self.nhil_percent = _clamp_percent(self.nhil_percent)
        self.getfund_percent = _clamp_percent(self.getfund_percent)
        self.covid_levy_percent = _clamp_percent(self.covid_levy_percent)
        self.default_currency = (self.default_currency or "ghs").strip().lower()

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.clean()
        super().save(*args, **kwargs)

        from .config import invalidate_site_config_cache

        invalidate_site_config_cache()


class ActorStamped(models.Model):
    """Tagged-union actor columns shared by ledger and audit rows."""

    actor_type = models.CharField(max_length=16, choices=ActorType.choices, default=ActorType.SYSTEM)
    actor_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        abstract = True

    @property
    def actor(self) -> Actor:
        return Actor.from_fields(self.actor_type, self.actor_id)

    @actor.setter
    def actor(self, value: Actor) -> None:
        self.actor_type = value.actor_type
        self.actor_id = value.actor_id


class ActivityLog(ActorStamped):
    """Audit trail. Written after commit; never part of a settlement transaction."""

    action = models.CharField(max_length=64, db_index=True)
    description = models.TextField(blank=True, default="")
    object_ref = models.CharField(max_length=64, blank=True, default="", db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["actor_type", "actor_id", "-created_at"], name="core_activity_actor_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} by {self.actor} ({self.created_at:%Y-%m-%d %H:%M})"
