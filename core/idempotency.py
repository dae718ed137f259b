# core/idempotency.py
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Type, TypeVar

from django.db import IntegrityError, models, transaction

from .exceptions import IllegalSettlementTransition

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=models.Model)


def require_transition(*, current: str, target: str, transitions: Mapping[str, Iterable[str]]) -> None:
    """Raise IllegalSettlementTransition unless current -> target is listed."""
    allowed = set(transitions.get(current, ()))
    if target not in allowed:
        raise IllegalSettlementTransition(current=current, target=target)


def create_once(
    model: Type[M],
    *,
    reference: Optional[str],
    reference_field: str = "reference",
    **fields: Any,
) -> tuple[M, bool]:
    """
    Insert a row keyed by a unique reference.

    Returns (row, created). When another writer already inserted the same
    reference, the IntegrityError is contained in a savepoint and the stored
    row is returned with created=False. Rows without a reference are always
    inserted.
    """
    if not reference:
        return model.objects.create(**fields), True

    try:
        with transaction.atomic():
            obj = model.objects.create(**{reference_field: reference}, **fields)
        return obj, True
    except IntegrityError:
        existing = model.objects.filter(**{reference_field: reference}).first()
        if existing is None:
            # Violated some other constraint.
            raise
        logger.info("Duplicate %s reference=%s; returning stored row", model.__name__, reference)
        return existing, False
