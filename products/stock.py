# products/stock.py
"""
Inventory adjustments.

Every decrement is a single conditional UPDATE (stock >= quantity) so two
concurrent orders for the same SKU can never both take the last units.
Order-level reduction runs inside the caller's transaction and is guarded
by Order.inventory_reduced_at, so an order's stock moves at most once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from core.exceptions import (
    InsufficientStock,
    OrderNotFound,
    ProductNotFound,
    StockError,
    StockReductionFailed,
    UnknownSku,
)

from .models import Product, ProductVariant, normalize_sku

logger = logging.getLogger(__name__)


# ============================================================
# Line items
# ============================================================
@dataclass(frozen=True)
class StockLine:
    product_id: Any
    sku: str = ""
    quantity: int = 1


def _get(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def normalize_line_item(item: Any) -> StockLine:
    """
    Adapter for the loose shapes callers pass around: a StockLine, a dict,
    an OrderItem, or a cart line carrying a full product/variant object.
    """
    if isinstance(item, StockLine):
        return StockLine(product_id=item.product_id, sku=normalize_sku(item.sku), quantity=int(item.quantity))

    product_id = _get(item, "product_id")
    if product_id is None:
        product = _get(item, "product")
        product_id = getattr(product, "pk", product)

    sku = _get(item, "sku")
    if not sku:
        variant = _get(item, "variant")
        sku = _get(variant, "sku") if variant is not None else ""
    if not isinstance(sku, str):
        # a variant object passed where only its SKU belongs
        sku = _get(sku, "sku") or ""

    try:
        quantity = int(_get(item, "quantity", 1))
    except (TypeError, ValueError):
        quantity = 0

    return StockLine(product_id=product_id, sku=normalize_sku(sku), quantity=quantity)


# ============================================================
# Results
# ============================================================
@dataclass(frozen=True)
class StockReduction:
    product_id: Any
    sku: str
    quantity: int
    remaining_stock: int
    product_status: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "sku": self.sku,
            "quantity": self.quantity,
            "remaining_stock": self.remaining_stock,
            "product_status": self.product_status,
        }


@dataclass(frozen=True)
class OrderStockResult:
    success: bool
    items_processed: int
    results: tuple[StockReduction, ...] = ()
    duplicate: bool = False
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "items_processed": self.items_processed,
            "results": [r.as_dict() for r in self.results],
            "duplicate": self.duplicate,
            "message": self.message,
        }


@dataclass(frozen=True)
class StockCheck:
    valid: bool
    errors: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": [dict(e) for e in self.errors]}


# ============================================================
# Queries
# ============================================================
def _load_product(product_id: Any) -> Product:
    try:
        return Product.objects.get(pk=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise ProductNotFound(product_id)


def get_product_total_stock(product: Product) -> int:
    variants = ProductVariant.objects.filter(product_id=product.pk)
    if variants.exists():
        return int(variants.aggregate(total=Sum("stock"))["total"] or 0)
    return int(Product.objects.filter(pk=product.pk).values_list("stock", flat=True).first() or 0)


def get_variant_stock(*, product_id: Any, sku: str) -> Optional[int]:
    return (
        ProductVariant.objects.filter(product_id=product_id, sku=normalize_sku(sku))
        .values_list("stock", flat=True)
        .first()
    )


def recompute_product_status(product: Product) -> str:
    """out_of_stock when nothing is left, else active. Drafts are left alone."""
    if product.status == Product.Status.DRAFT:
        return product.status

    total = get_product_total_stock(product)
    new_status = Product.Status.OUT_OF_STOCK if total <= 0 else Product.Status.ACTIVE
    if new_status != product.status:
        Product.objects.filter(pk=product.pk).exclude(status=Product.Status.DRAFT).update(
            status=new_status, updated_at=timezone.now()
        )
        product.status = new_status
    return new_status


# ============================================================
# Decrement (compare-and-swap)
# ============================================================
def reduce_stock_for_item(*, product_id: Any, sku: str = "", quantity: int) -> StockReduction:
    """
    Atomically take `quantity` units of one SKU (or of a simple product).

    Raises ValidationError (missing SKU / bad quantity), ProductNotFound,
    UnknownSku or InsufficientStock. Nothing is written on failure.
    """
    quantity = int(quantity or 0)
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive (got {quantity}).")

    product = _load_product(product_id)
    sku = normalize_sku(sku)

    if product.has_variants:
        if not sku:
            raise ValidationError(f"SKU is required for product {product.name} because it has variants.")

        matched = ProductVariant.objects.filter(product_id=product.pk, sku=sku, stock__gte=quantity).update(
            stock=F("stock") - quantity, updated_at=timezone.now()
        )
        if not matched:
            current = get_variant_stock(product_id=product.pk, sku=sku)
            if current is None:
                available = list(ProductVariant.objects.filter(product_id=product.pk).values_list("sku", flat=True))
                raise UnknownSku(product_id=product.pk, sku=sku, available_skus=available, name=product.name)
            raise InsufficientStock(
                product_id=product.pk, sku=sku, available=current, requested=quantity, name=product.name
            )
        remaining = int(get_variant_stock(product_id=product.pk, sku=sku) or 0)
    else:
        matched = Product.objects.filter(pk=product.pk, stock__gte=quantity).update(
            stock=F("stock") - quantity, updated_at=timezone.now()
        )
        if not matched:
            current = Product.objects.filter(pk=product.pk).values_list("stock", flat=True).first()
            if current is None:
                raise ProductNotFound(product.pk)
            raise InsufficientStock(product_id=product.pk, available=current, requested=quantity, name=product.name)
        remaining = int(Product.objects.filter(pk=product.pk).values_list("stock", flat=True).first() or 0)

    status = recompute_product_status(product)
    logger.info(
        "Stock reduced product=%s sku=%s qty=%s remaining=%s status=%s",
        product.pk,
        sku or "-",
        quantity,
        remaining,
        status,
    )
    return StockReduction(
        product_id=product.pk,
        sku=sku,
        quantity=quantity,
        remaining_stock=remaining,
        product_status=status,
    )


def restore_stock_for_item(*, product_id: Any, sku: str = "", quantity: int) -> None:
    quantity = int(quantity or 0)
    if quantity <= 0:
        return

    product = _load_product(product_id)
    sku = normalize_sku(sku)
    if sku and ProductVariant.objects.filter(product_id=product.pk, sku=sku).exists():
        ProductVariant.objects.filter(product_id=product.pk, sku=sku).update(
            stock=F("stock") + quantity, updated_at=timezone.now()
        )
    else:
        Product.objects.filter(pk=product.pk).update(stock=F("stock") + quantity, updated_at=timezone.now())
    recompute_product_status(product)


# ============================================================
# Order-level
# ============================================================
def _stock_issue(exc: Exception, line: StockLine) -> dict[str, Any]:
    if isinstance(exc, StockError):
        return exc.as_dict()
    if isinstance(exc, ProductNotFound):
        return {"code": "product_not_found", "message": str(exc), "product_id": str(line.product_id), "sku": line.sku}
    messages = getattr(exc, "messages", None) or [str(exc)]
    code = "missing_sku" if not line.sku and line.quantity > 0 else "invalid_quantity"
    return {"code": code, "message": "; ".join(messages), "product_id": str(line.product_id), "sku": line.sku}


def _order_lines(order) -> list[StockLine]:
    from orders.models import OrderItem

    items = OrderItem.objects.filter(seller_order__order_id=order.pk).order_by("created_at", "id")
    return [normalize_line_item(item) for item in items]


def reduce_order_stock(order) -> OrderStockResult:
    """
    Decrement stock for every line of an order, exactly once.

    All items are attempted so the error lists every failing line; if any
    fails, StockReductionFailed is raised and the savepoint rolls back the
    decrements already applied.
    """
    from orders.models import Order

    with transaction.atomic():
        locked = Order.objects.select_for_update().filter(pk=order.pk).first()
        if locked is None:
            raise OrderNotFound(order.pk)

        if locked.inventory_reduced_at:
            logger.warning("Inventory already reduced for order=%s; skipping", locked.pk)
            order.inventory_reduced_at = locked.inventory_reduced_at
            return OrderStockResult(
                success=True,
                items_processed=0,
                duplicate=True,
                message="Inventory already reduced for this order.",
            )

        results: list[StockReduction] = []
        errors: list[dict[str, Any]] = []
        for line in _order_lines(locked):
            try:
                results.append(reduce_stock_for_item(product_id=line.product_id, sku=line.sku, quantity=line.quantity))
            except (StockError, ProductNotFound, ValidationError) as exc:
                errors.append(_stock_issue(exc, line))

        if errors:
            logger.warning("Stock reduction failed order=%s errors=%s", locked.pk, errors)
            raise StockReductionFailed(errors, order_id=locked.pk)

        now = timezone.now()
        Order.objects.filter(pk=locked.pk).update(inventory_reduced_at=now, updated_at=now)
        order.inventory_reduced_at = now

    return OrderStockResult(
        success=True,
        items_processed=len(results),
        results=tuple(results),
        message=f"Reduced stock for {len(results)} item(s).",
    )


def restore_order_stock(order) -> int:
    """Put an order's units back (cancellation before delivery). Returns lines restored."""
    from orders.models import Order

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if not locked.inventory_reduced_at:
            return 0

        lines = _order_lines(locked)
        for line in lines:
            restore_stock_for_item(product_id=line.product_id, sku=line.sku, quantity=line.quantity)

        Order.objects.filter(pk=locked.pk).update(inventory_reduced_at=None, updated_at=timezone.now())
        order.inventory_reduced_at = None
    return len(lines)


# ============================================================
# Checkout precheck (read-only)
# ============================================================
def validate_stock_availability(items: Iterable[Any]) -> StockCheck:
    """
    Check every requested line against current stock without writing.

    Collects all problems instead of stopping at the first one. A missing
    SKU on a variant product is reported as a validation problem
    (missing_sku), not as a stock shortage.
    """
    errors: list[dict[str, Any]] = []

    for raw in items:
        line = normalize_line_item(raw)
        base = {"product_id": str(line.product_id), "sku": line.sku, "requested": line.quantity}

        if line.quantity <= 0:
            errors.append({**base, "code": "invalid_quantity", "message": "Quantity must be positive."})
            continue

        product = Product.objects.filter(pk=line.product_id).first() if line.product_id is not None else None
        if product is None:
            errors.append({**base, "code": "product_not_found", "message": f"Product not found: {line.product_id}"})
            continue

        if product.has_variants:
            if not line.sku:
                errors.append(
                    {
                        **base,
                        "code": "missing_sku",
                        "message": f"SKU is required for product {product.name} because it has variants.",
                    }
                )
                continue

            available = get_variant_stock(product_id=product.pk, sku=line.sku)
            if available is None:
                skus = list(ProductVariant.objects.filter(product_id=product.pk).values_list("sku", flat=True))
                errors.append(
                    {
                        **base,
                        "code": "unknown_sku",
                        "message": f"SKU {line.sku} not found for product {product.name}.",
                        "available_skus": skus,
                    }
                )
                continue
        else:
            available = int(product.stock)

        if available < line.quantity:
            errors.append(
                {
                    **base,
                    "code": "insufficient_stock",
                    "message": (
                        f"Insufficient stock for {product.name}. "
                        f"Available: {available}, requested: {line.quantity}"
                    ),
                    "available": int(available),
                }
            )

    return StockCheck(valid=not errors, errors=tuple(errors))
