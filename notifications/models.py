# notifications/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone


class Notification(models.Model):
    """In-app notification for buyers and sellers about money and order events."""

    class Kind(models.TextChoices):
        ORDER = "ORDER", "Order"
        PAYMENT = "PAYMENT", "Payment"
        EARNING = "EARNING", "Earning"
        REFUND = "REFUND", "Refund"
        WALLET = "WALLET", "Wallet"
        SYSTEM = "SYSTEM", "System"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        db_index=True,
    )

    kind = models.CharField(max_length=32, choices=Kind.choices, default=Kind.SYSTEM, db_index=True)

    title = models.CharField(max_length=160, default="", blank=True)
    body = models.TextField(default="", blank=True)

    # Arbitrary JSON payload for rendering/debugging
    payload = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["user", "is_read", "created_at"], name="notif_user_read_idx"),
            models.Index(fields=["user", "kind", "created_at"], name="notif_user_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"[{self.kind}] {self.title or 'Notification'} -> {self.user_id}"

    def mark_read(self, *, save: bool = True) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            if save:
                self.save(update_fields=["is_read", "read_at"])
