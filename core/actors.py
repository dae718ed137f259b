# core/actors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from django.db import models


class ActorType(models.TextChoices):
    ADMIN = "admin", "Admin"
    SELLER = "seller", "Seller"
    USER = "user", "User"
    SYSTEM = "system", "System"


@dataclass(frozen=True)
class Actor:
    """
    Who triggered a balance-changing event.

    Persisted as two columns (<prefix>_type, <prefix>_id) instead of a
    generic relation, so ledger rows never point at a polymorphic model.
    """

    actor_type: str = ActorType.SYSTEM
    actor_id: str = ""

    def __post_init__(self) -> None:
        if self.actor_type not in ActorType.values:
            raise ValueError(f"Unknown actor type: {self.actor_type!r}")
        object.__setattr__(self, "actor_id", str(self.actor_id or ""))

    @classmethod
    def admin(cls, user_or_id: Any) -> "Actor":
        return cls(ActorType.ADMIN, _pk(user_or_id))

    @classmethod
    def seller(cls, user_or_id: Any) -> "Actor":
        return cls(ActorType.SELLER, _pk(user_or_id))

    @classmethod
    def user(cls, user_or_id: Any) -> "Actor":
        return cls(ActorType.USER, _pk(user_or_id))

    @classmethod
    def system(cls, name: str = "") -> "Actor":
        return cls(ActorType.SYSTEM, name)

    @classmethod
    def from_fields(cls, actor_type: Optional[str], actor_id: Optional[str]) -> "Actor":
        return cls(actor_type or ActorType.SYSTEM, actor_id or "")

    def as_fields(self, prefix: str = "actor") -> dict[str, str]:
        return {f"{prefix}_type": str(self.actor_type), f"{prefix}_id": self.actor_id}

    def as_dict(self) -> dict[str, str]:
        return {"actor_type": str(self.actor_type), "actor_id": self.actor_id}

    def __str__(self) -> str:
        return f"{self.actor_type}:{self.actor_id}" if self.actor_id else str(self.actor_type)


def _pk(user_or_id: Any) -> str:
    return str(getattr(user_or_id, "pk", user_or_id) or "")


def resolve_actor(actor: Optional[Actor]) -> Actor:
    return actor if actor is not None else Actor.system()
