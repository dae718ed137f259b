# notifications/services.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


def create_notification(
    *,
    user_id: Any,
    kind: str,
    title: str,
    body: str = "",
    payload: Optional[Mapping[str, Any]] = None,
) -> Notification:
    n = Notification(
        user_id=user_id,
        kind=kind,
        title=(title or "")[:160],
        body=body or "",
        payload=dict(payload or {}),
    )
    n.full_clean()
    n.save()
    return n


def notify_user(
    *,
    user_id: Any,
    kind: str,
    title: str,
    body: str = "",
    payload: Optional[Mapping[str, Any]] = None,
) -> None:
    """
    Queue an in-app notification for after the current transaction commits.

    Nothing is sent for a transaction that rolls back, and a failure to
    create the notification is logged without reaching the caller.
    """
    if not user_id:
        return

    data = dict(payload or {})

    def _send() -> None:
        try:
            create_notification(user_id=user_id, kind=kind, title=title, body=body, payload=data)
        except Exception:
            logger.exception("Notification failed user=%s kind=%s title=%s", user_id, kind, title)

    transaction.on_commit(_send, robust=True)
