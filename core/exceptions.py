# core/exceptions.py
from __future__ import annotations

from typing import Any, Iterable, Optional


class SettlementError(Exception):
    """Base class for settlement/stock failures that abort the enclosing transaction."""


# ============================================================
# Resource-not-found
# ============================================================
class ResourceNotFound(SettlementError):
    resource = "resource"

    def __init__(self, identifier: Any, message: str = "") -> None:
        self.identifier = identifier
        super().__init__(message or f"{self.resource.capitalize()} not found: {identifier}")


class OrderNotFound(ResourceNotFound):
    resource = "order"


class ProductNotFound(ResourceNotFound):
    resource = "product"


class WalletNotFound(ResourceNotFound):
    resource = "wallet"


# ============================================================
# Insufficient-resource
# ============================================================
class InsufficientFunds(SettlementError):
    def __init__(self, *, available_cents: int, requested_cents: int) -> None:
        self.available_cents = int(available_cents)
        self.requested_cents = int(requested_cents)
        self.shortfall_cents = max(0, self.requested_cents - self.available_cents)
        super().__init__(
            f"Insufficient balance: available {self.available_cents}, requested {self.requested_cents}"
        )


class StockError(SettlementError):
    code = "stock_error"

    def __init__(self, message: str, *, product_id: Any = None, sku: str = "") -> None:
        self.product_id = product_id
        self.sku = sku or ""
        super().__init__(message)

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self),
            "product_id": str(self.product_id) if self.product_id is not None else None,
            "sku": self.sku,
        }


class InsufficientStock(StockError):
    code = "insufficient_stock"

    def __init__(self, *, product_id: Any, sku: str = "", available: int, requested: int, name: str = "") -> None:
        self.available = int(available)
        self.requested = int(requested)
        label = name or str(product_id)
        if sku:
            label = f"{label} (SKU {sku})"
        super().__init__(
            f"Insufficient stock for {label}. Available: {self.available}, requested: {self.requested}",
            product_id=product_id,
            sku=sku,
        )

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data.update({"available": self.available, "requested": self.requested})
        return data


class UnknownSku(StockError):
    code = "unknown_sku"

    def __init__(self, *, product_id: Any, sku: str, available_skus: Iterable[str] = (), name: str = "") -> None:
        self.available_skus = list(available_skus)
        label = name or str(product_id)
        skus = ", ".join(self.available_skus) or "none"
        super().__init__(
            f"SKU {sku} not found for product {label}. Available SKUs: {skus}",
            product_id=product_id,
            sku=sku,
        )

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data["available_skus"] = list(self.available_skus)
        return data


class StockReductionFailed(SettlementError):
    """One or more items of an order could not be decremented; the whole batch is rolled back."""

    def __init__(self, errors: Iterable[dict[str, Any]], *, order_id: Optional[Any] = None) -> None:
        self.errors = list(errors)
        self.order_id = order_id
        joined = "; ".join(str(e.get("message", "")) for e in self.errors)
        super().__init__(f"Stock reduction failed: {joined}")


# ============================================================
# State machine
# ============================================================
class IllegalSettlementTransition(SettlementError):
    def __init__(self, *, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal settlement transition: {current} -> {target}")
