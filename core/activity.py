# core/activity.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from django.db import transaction

from .actors import Actor, resolve_actor
from .models import ActivityLog

logger = logging.getLogger(__name__)


def _write_activity(fields: dict[str, Any]) -> None:
    try:
        ActivityLog.objects.create(**fields)
    except Exception:
        logger.exception("Activity log write failed action=%s", fields.get("action"))


def log_activity(
    *,
    action: str,
    actor: Optional[Actor] = None,
    description: str = "",
    object_ref: Any = "",
    metadata: Optional[Mapping[str, Any]] = None,
) -> None:
    """
    Fire-and-forget audit entry.

    Runs after the surrounding transaction commits (immediately when there is
    none). A rolled-back settlement therefore leaves no audit row, and a
    failing audit write never reaches the caller.
    """
    fields = {
        "action": action[:64],
        "description": description or "",
        "object_ref": str(object_ref or "")[:64],
        "metadata": dict(metadata or {}),
        **resolve_actor(actor).as_fields(),
    }
    transaction.on_commit(lambda: _write_activity(fields), robust=True)
