# refunds/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.actors import Actor, ActorType


class RefundStatus(models.TextChoices):
    REQUESTED = "requested", "Requested"
    SELLER_REVIEW = "seller_review", "Seller reviewed"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class RefundRequest(models.Model):
    """
    Buyer refund/return request for one delivered order.

    Covers one or more line items (RefundItem), each owned by a seller who
    reviews their own items. An admin approves or rejects the request as a
    whole; approval pays the buyer wallet and reverses seller earnings.
    """

    Status = RefundStatus

    class Reason(models.TextChoices):
        DAMAGED = "damaged", "Item arrived damaged"
        NOT_AS_DESCRIBED = "not_as_described", "Not as described"
        WRONG_ITEM = "wrong_item", "Wrong item received"
        RETURNED = "returned", "Returned to seller"
        OTHER = "other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey("orders.Order", on_delete=models.CASCADE, related_name="refund_requests")
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refund_requests_made",
    )

    reason = models.CharField(max_length=32, choices=Reason.choices, default=Reason.OTHER)
    notes = models.TextField(blank=True, default="")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.REQUESTED)

    # Sum of item amounts at request time; final is what the buyer actually got back
    total_refund_cents = models.PositiveIntegerField(default=0)
    final_refund_cents = models.PositiveIntegerField(null=True, blank=True)

    processed_by_type = models.CharField(max_length=16, choices=ActorType.choices, blank=True, default="")
    processed_by_id = models.CharField(max_length=64, blank=True, default="")
    processed_at = models.DateTimeField(null=True, blank=True)
    decision_note = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "-created_at"], name="refunds_rr_status_idx"),
            models.Index(fields=["buyer", "status", "-created_at"], name="refunds_rr_buyer_idx"),
            models.Index(fields=["order", "-created_at"], name="refunds_rr_order_idx"),
        ]

    def __str__(self) -> str:
        return f"RefundRequest<{self.pk}> {self.status}"

    def clean(self) -> None:
        super().clean()
        if self.final_refund_cents is not None and self.final_refund_cents > self.total_refund_cents:
            raise ValidationError("Final refund cannot exceed the requested total.")

    @property
    def is_decided(self) -> bool:
        return self.status in {self.Status.APPROVED, self.Status.REJECTED}

    @property
    def processed_by(self) -> Actor | None:
        if not self.processed_by_type:
            return None
        return Actor.from_fields(self.processed_by_type, self.processed_by_id)

    @processed_by.setter
    def processed_by(self, value: Actor) -> None:
        self.processed_by_type = value.actor_type
        self.processed_by_id = value.actor_id


class RefundItem(models.Model):
    """One refunded line: `quantity` units of an order item, owned by its seller."""

    Status = RefundStatus

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    refund_request = models.ForeignKey(RefundRequest, on_delete=models.CASCADE, related_name="items")
    order_item = models.ForeignKey("orders.OrderItem", on_delete=models.PROTECT, related_name="refund_items")

    # Snapshot; survives product ownership changes
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="refund_items_received",
    )

    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.PositiveIntegerField(default=0)
    amount_cents = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.REQUESTED)
    seller_note = models.TextField(blank=True, default="")
    seller_reviewed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["seller", "status"], name="refunds_item_seller_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["refund_request", "order_item"], name="refunds_item_unique_line"),
            models.CheckConstraint(condition=Q(quantity__gte=1), name="refunds_item_quantity_gte_1"),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} × {self.order_item_id} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in {self.Status.REQUESTED, self.Status.SELLER_REVIEW}
