from decimal import Decimal

import pytest

from orders.pricing import (
    DEFAULT_TAX_RATES,
    TaxRates,
    calculate_complete_price,
    calculate_covid_levy,
    calculate_order_tax_breakdown,
    compute_seller_earnings,
    current_tax_rates,
    effective_commission_rate,
    extract_tax_from_price,
    item_earnings_share_cents,
)


class TestExtractTaxFromPrice:
    def test_round_price_splits_exactly(self):
        b = extract_tax_from_price(11750, rates=DEFAULT_TAX_RATES)

        assert b.base_cents == 10000
        assert b.vat_cents == 1250
        assert b.nhil_cents == 250
        assert b.getfund_cents == 250
        assert b.covid_levy_cents == 100
        assert b.included_tax_cents == 1750

    @pytest.mark.parametrize("price", [1, 99, 999, 1234, 5001, 11749, 250_000, 1_000_003])
    def test_components_always_sum_to_price(self, price):
        b = extract_tax_from_price(price, rates=DEFAULT_TAX_RATES)
        assert b.base_cents + b.vat_cents + b.nhil_cents + b.getfund_cents == price
        assert min(b.base_cents, b.vat_cents, b.nhil_cents, b.getfund_cents) >= 0

    def test_negative_price_is_treated_as_zero(self):
        b = extract_tax_from_price(-500, rates=DEFAULT_TAX_RATES)
        assert b.price_cents == 0
        assert b.total_tax_cents == 0

    def test_custom_rates(self):
        rates = TaxRates(vat=Decimal("0.10"), nhil=Decimal("0"), getfund=Decimal("0"), covid=Decimal("0"))
        b = extract_tax_from_price(1100, rates=rates)
        assert (b.base_cents, b.vat_cents, b.covid_levy_cents) == (1000, 100, 0)


class TestCovidLevyAndCompletePrice:
    def test_levy_is_percent_of_base(self):
        assert calculate_covid_levy(10000, rates=DEFAULT_TAX_RATES) == 100
        assert calculate_covid_levy(150, rates=DEFAULT_TAX_RATES) == 2  # 1.5 rounds half up

    def test_complete_price_adds_levy_on_top(self):
        price = calculate_complete_price(11750, rates=DEFAULT_TAX_RATES)
        assert price.total_cents == 11850
        assert price.as_dict()["base_cents"] == 10000


class TestOrderTaxBreakdown:
    def test_lines_are_decomposed_on_their_totals(self):
        b = calculate_order_tax_breakdown([(11750, 2), (999, 1)], rates=DEFAULT_TAX_RATES)

        assert b.subtotal_cents == 23500 + 999
        assert len(b.lines) == 2
        assert b.lines[0].base_cents == 20000
        assert b.base_cents == sum(line.base_cents for line in b.lines)
        assert b.base_cents + b.vat_cents + b.nhil_cents + b.getfund_cents == b.subtotal_cents
        assert b.total_cents == b.subtotal_cents + b.covid_levy_cents

    def test_empty_order(self):
        b = calculate_order_tax_breakdown([], rates=DEFAULT_TAX_RATES)
        assert b.subtotal_cents == 0
        assert b.lines == ()


class TestSellerEarnings:
    def test_base_plus_shipping_less_commission(self):
        e = compute_seller_earnings(base_price_cents=10000, shipping_cents=1000, commission_rate=Decimal("0.1"))
        assert e.gross_cents == 11000
        assert e.earnings_cents == 9900
        assert e.platform_fee_cents == 1100

    @pytest.mark.parametrize(
        "base,shipping,rate",
        [(333, 0, "0.15"), (1, 1, "0.5"), (98765, 432, "0.0725"), (10, 0, "0"), (10, 5, "1")],
    )
    def test_earnings_plus_fee_equals_gross(self, base, shipping, rate):
        e = compute_seller_earnings(base_price_cents=base, shipping_cents=shipping, commission_rate=Decimal(rate))
        assert e.earnings_cents + e.platform_fee_cents == base + shipping

    def test_rate_is_clamped(self):
        e = compute_seller_earnings(base_price_cents=1000, shipping_cents=0, commission_rate=Decimal("1.5"))
        assert e.commission_rate == Decimal("1")
        assert e.earnings_cents == 0

    def test_item_share_excludes_shipping(self):
        share = item_earnings_share_cents(
            line_base_cents=40000, quantity=4, refund_quantity=1, commission_rate=Decimal("0.1")
        )
        assert share == 9000

    def test_item_share_for_nothing(self):
        assert item_earnings_share_cents(line_base_cents=100, quantity=0, refund_quantity=1, commission_rate=0) == 0
        assert item_earnings_share_cents(line_base_cents=100, quantity=2, refund_quantity=0, commission_rate=0) == 0


@pytest.mark.django_db
class TestRatesFromSiteConfig:
    def test_snapshot_wins_over_live_rate(self, set_commission):
        set_commission("20.00")
        assert effective_commission_rate(Decimal("0.05")) == Decimal("0.05")

    def test_live_rate_when_no_snapshot(self, set_commission):
        set_commission("12.50")
        assert effective_commission_rate(None) == Decimal("0.125")

    def test_tax_rates_follow_site_config(self, site_config):
        site_config.vat_percent = Decimal("15.00")
        site_config.covid_levy_percent = Decimal("0")
        site_config.save()

        rates = current_tax_rates()
        assert rates.vat == Decimal("0.15")
        assert rates.covid == Decimal("0")

    def test_out_of_range_percent_is_clamped_on_save(self, site_config):
        site_config.marketplace_sales_percent = Decimal("150")
        site_config.save()
        site_config.refresh_from_db()
        assert site_config.marketplace_sales_percent == Decimal("100")
