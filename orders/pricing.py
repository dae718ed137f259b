# orders/pricing.py
"""
Tax decomposition and seller earnings.

Everything here is pure arithmetic on integer cents; the only I/O is reading
the current rates from SiteConfig when the caller does not pass them in.

Listed prices are VAT-inclusive: price = base + VAT + NHIL + GETFund, each
levy a percentage of base. The COVID levy is a percentage of base charged
on top of the listed price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from core.config import get_marketplace_commission_rate, get_site_config, pct_to_rate


def cents_round(d: Decimal) -> int:
    return int(Decimal(d).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp_rate(rate: Decimal) -> Decimal:
    rate = Decimal(rate)
    if rate < 0:
        return Decimal("0")
    if rate > 1:
        return Decimal("1")
    return rate


# ============================================================
# Taxes
# ============================================================
@dataclass(frozen=True)
class TaxRates:
    vat: Decimal = Decimal("0.125")
    nhil: Decimal = Decimal("0.025")
    getfund: Decimal = Decimal("0.025")
    covid: Decimal = Decimal("0.01")

    @property
    def inclusive_rate(self) -> Decimal:
        return self.vat + self.nhil + self.getfund

    @classmethod
    def from_site_config(cls, cfg) -> "TaxRates":
        return cls(
            vat=pct_to_rate(cfg.vat_percent),
            nhil=pct_to_rate(cfg.nhil_percent),
            getfund=pct_to_rate(cfg.getfund_percent),
            covid=pct_to_rate(cfg.covid_levy_percent),
        )


DEFAULT_TAX_RATES = TaxRates()


def current_tax_rates() -> TaxRates:
    return TaxRates.from_site_config(get_site_config())


@dataclass(frozen=True)
class TaxBreakdown:
    price_cents: int
    base_cents: int
    vat_cents: int
    nhil_cents: int
    getfund_cents: int
    covid_levy_cents: int

    @property
    def included_tax_cents(self) -> int:
        return self.vat_cents + self.nhil_cents + self.getfund_cents

    @property
    def total_tax_cents(self) -> int:
        return self.included_tax_cents + self.covid_levy_cents

    def as_dict(self) -> dict[str, int]:
        return {
            "price_cents": self.price_cents,
            "base_cents": self.base_cents,
            "vat_cents": self.vat_cents,
            "nhil_cents": self.nhil_cents,
            "getfund_cents": self.getfund_cents,
            "covid_levy_cents": self.covid_levy_cents,
            "total_tax_cents": self.total_tax_cents,
        }


def calculate_covid_levy(base_cents: int, *, rates: Optional[TaxRates] = None) -> int:
    rates = rates or current_tax_rates()
    return max(0, cents_round(Decimal(int(base_cents)) * rates.covid))


def extract_tax_from_price(price_cents: int, *, rates: Optional[TaxRates] = None) -> TaxBreakdown:
    """
    Split a VAT-inclusive amount into base + VAT + NHIL + GETFund.

    Rounding residue lands on VAT so base + VAT + NHIL + GETFund always
    equals price_cents exactly.
    """
    rates = rates or current_tax_rates()
    price_cents = max(0, int(price_cents))

    base = cents_round(Decimal(price_cents) / (Decimal("1") + rates.inclusive_rate))
    nhil = cents_round(Decimal(base) * rates.nhil)
    getfund = cents_round(Decimal(base) * rates.getfund)
    vat = max(0, price_cents - base - nhil - getfund)

    return TaxBreakdown(
        price_cents=price_cents,
        base_cents=base,
        vat_cents=vat,
        nhil_cents=nhil,
        getfund_cents=getfund,
        covid_levy_cents=calculate_covid_levy(base, rates=rates),
    )


@dataclass(frozen=True)
class CompletePrice:
    breakdown: TaxBreakdown
    total_cents: int

    def as_dict(self) -> dict[str, Any]:
        return {**self.breakdown.as_dict(), "total_cents": self.total_cents}


def calculate_complete_price(price_cents: int, *, rates: Optional[TaxRates] = None) -> CompletePrice:
    """Listed price plus the COVID levy the buyer pays on top."""
    breakdown = extract_tax_from_price(price_cents, rates=rates)
    return CompletePrice(breakdown=breakdown, total_cents=breakdown.price_cents + breakdown.covid_levy_cents)


@dataclass(frozen=True)
class OrderTaxBreakdown:
    subtotal_cents: int
    base_cents: int
    vat_cents: int
    nhil_cents: int
    getfund_cents: int
    covid_levy_cents: int
    lines: tuple[TaxBreakdown, ...] = ()

    @property
    def total_tax_cents(self) -> int:
        return self.vat_cents + self.nhil_cents + self.getfund_cents + self.covid_levy_cents

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.covid_levy_cents

    def as_dict(self) -> dict[str, Any]:
        return {
            "subtotal_cents": self.subtotal_cents,
            "base_cents": self.base_cents,
            "vat_cents": self.vat_cents,
            "nhil_cents": self.nhil_cents,
            "getfund_cents": self.getfund_cents,
            "covid_levy_cents": self.covid_levy_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_cents": self.total_cents,
        }


def calculate_order_tax_breakdown(
    lines: Iterable[tuple[int, int]],
    *,
    rates: Optional[TaxRates] = None,
) -> OrderTaxBreakdown:
    """lines: (unit_price_cents, quantity) pairs. Each line total is decomposed once."""
    rates = rates or current_tax_rates()
    parts = tuple(extract_tax_from_price(int(p) * int(q), rates=rates) for p, q in lines)
    return OrderTaxBreakdown(
        subtotal_cents=sum(b.price_cents for b in parts),
        base_cents=sum(b.base_cents for b in parts),
        vat_cents=sum(b.vat_cents for b in parts),
        nhil_cents=sum(b.nhil_cents for b in parts),
        getfund_cents=sum(b.getfund_cents for b in parts),
        covid_levy_cents=sum(b.covid_levy_cents for b in parts),
        lines=parts,
    )


# ============================================================
# Commission / earnings
# ============================================================
def effective_commission_rate(snapshot: Optional[Decimal]) -> Decimal:
    """The sub-order's snapshotted rate, else the live platform default."""
    if snapshot is not None:
        return _clamp_rate(snapshot)
    return _clamp_rate(get_marketplace_commission_rate())


@dataclass(frozen=True)
class SellerEarnings:
    gross_cents: int
    commission_rate: Decimal
    platform_fee_cents: int
    earnings_cents: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "gross_cents": self.gross_cents,
            "commission_rate": str(self.commission_rate),
            "platform_fee_cents": self.platform_fee_cents,
            "earnings_cents": self.earnings_cents,
        }


def compute_seller_earnings(*, base_price_cents: int, shipping_cents: int, commission_rate: Decimal) -> SellerEarnings:
    """
    earnings = (base + shipping) × (1 − rate), rounded to the cent.

    The platform fee is the remainder, so earnings + fee == gross exactly.
    """
    rate = _clamp_rate(commission_rate)
    gross = max(0, int(base_price_cents)) + max(0, int(shipping_cents))
    earnings = max(0, cents_round(Decimal(gross) * (Decimal("1") - rate)))
    return SellerEarnings(
        gross_cents=gross,
        commission_rate=rate,
        platform_fee_cents=gross - earnings,
        earnings_cents=earnings,
    )


def seller_earnings_for_sub_order(seller_order) -> SellerEarnings:
    return compute_seller_earnings(
        base_price_cents=seller_order.base_price_cents,
        shipping_cents=seller_order.shipping_cents,
        commission_rate=effective_commission_rate(seller_order.commission_rate_snapshot),
    )


def item_earnings_share_cents(*, line_base_cents: int, quantity: int, refund_quantity: int, commission_rate: Decimal) -> int:
    """Seller earnings attributable to `refund_quantity` units of one line (shipping excluded)."""
    quantity = int(quantity)
    if quantity <= 0 or refund_quantity <= 0:
        return 0
    base_share = Decimal(int(line_base_cents)) * Decimal(int(refund_quantity)) / Decimal(quantity)
    return max(0, cents_round(base_share * (Decimal("1") - _clamp_rate(commission_rate))))
