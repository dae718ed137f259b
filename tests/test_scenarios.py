"""End-to-end settlement flows and the money/stock properties they must keep."""

import pytest

from core.exceptions import InsufficientStock, StockReductionFailed
from dashboards.stats import get_platform_stats
from orders.models import OrderItem, SettlementState
from orders.services import mark_delivered
from orders.settlement import (
    RefundLine,
    credit_sellers_on_delivery,
    order_refund_reference,
    revert_sellers_for_items,
    revert_sellers_on_refund,
)
from payments.ledger import debit_seller_balance_clamped, lock_seller_balance
from payments.models import SellerBalance, SellerBalanceEntry, SettlementTransaction
from payments.services import get_seller_settled_total_cents, verify_seller_ledger
from payments.wallet import credit_buyer_wallet, get_wallet_balance_cents
from products.models import Product
from products.stock import reduce_stock_for_item

pytestmark = pytest.mark.django_db


class TestSingleSubOrderEarnings:
    def test_single_sub_order_earnings(self, settled_order, seller):
        so = settled_order.seller_orders.get()
        assert (so.base_price_cents, so.shipping_cents) == (10000, 1000)

        balance = SellerBalance.objects.get(seller=seller)
        txs = SettlementTransaction.objects.filter(seller=seller)

        assert balance.balance_cents == 9900
        assert txs.count() == 1
        assert txs.get().amount_cents == 9900

    def test_repeat_settlement_changes_nothing(self, settled_order, seller):
        before = SellerBalance.objects.get(seller=seller).balance_cents

        for _ in range(3):
            assert credit_sellers_on_delivery(settled_order.pk).duplicate

        assert SellerBalance.objects.get(seller=seller).balance_cents == before
        assert SettlementTransaction.objects.filter(seller=seller).count() == 1


class TestDuplicateTopUpWebhook:
    def test_duplicate_top_up_webhook(self, buyer):
        first = credit_buyer_wallet(user_id=buyer.pk, amount_cents=5000, reference="REF-1")
        second = credit_buyer_wallet(user_id=buyer.pk, amount_cents=5000, reference="REF-1")

        assert second.duplicate
        assert second.transaction.pk == first.transaction.pk
        assert second.transaction.balance_after_cents == first.transaction.balance_after_cents
        assert get_wallet_balance_cents(user_id=buyer.pk) == 5000


class TestRefundLargerThanBalance:
    def test_refund_larger_than_balance(self, make_product, seller, place_order, pay, set_commission):
        set_commission("0.00")
        order = place_order((make_product(seller, price_cents=7050), 1))
        pay(order)
        mark_delivered(order=order)
        assert SellerBalance.objects.get(seller=seller).balance_cents == 6000

        # seller withdrew 20.00 in the meantime
        debit_seller_balance_clamped(
            lock_seller_balance(seller.pk),
            2000,
            reference="PAYOUT-1",
            reason=SellerBalanceEntry.Reason.ADJUSTMENT,
        )

        result = revert_sellers_on_refund(order.pk, reason="Returned")

        balance = SellerBalance.objects.get(seller=seller)
        so = order.seller_orders.get()
        entry = SellerBalanceEntry.objects.get(reference=order_refund_reference(order.pk, so.pk))
        assert result.success
        assert balance.balance_cents == 0
        assert balance.negative_cents == 2000
        assert entry.amount_cents == -4000
        assert entry.metadata["owed_cents"] == 6000
        assert verify_seller_ledger(seller=seller) == []


class TestCompetingOrdersForLastUnits:
    def test_second_order_for_the_same_units_fails(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        first = place_order((product, 6))
        second = place_order((product, 6))

        pay(first)
        with pytest.raises(StockReductionFailed) as exc:
            pay(second)

        second.refresh_from_db()
        assert exc.value.errors[0]["code"] == "insufficient_stock"
        assert exc.value.errors[0]["available"] == 4
        assert Product.objects.get(pk=product.pk).stock == 4
        assert second.settlement_state == SettlementState.PENDING_PAYMENT
        assert get_platform_stats().total_revenue_cents == first.total_cents

    def test_at_most_floor_s_over_q_decrements_succeed(self, make_product, seller):
        product = make_product(seller, stock=10)
        ok, failed = 0, 0
        for _ in range(5):
            try:
                reduce_stock_for_item(product_id=product.pk, quantity=3)
                ok += 1
            except InsufficientStock:
                failed += 1

        assert (ok, failed) == (3, 2)
        assert Product.objects.get(pk=product.pk).stock == 1


class TestProperties:
    def test_reversal_restores_pre_credit_balance(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        kept = place_order((product, 1))
        refunded = place_order((product, 3), shipping={seller.pk: 500})
        for order in (kept, refunded):
            pay(order)
            mark_delivered(order=order)
        after_first = SettlementTransaction.objects.get(order=kept).amount_cents

        revert_sellers_on_refund(refunded.pk)

        balance = SellerBalance.objects.get(seller=seller)
        assert balance.balance_cents == after_first
        assert balance.negative_cents == 0
        assert get_seller_settled_total_cents(seller=seller) == after_first

    def test_item_reversals_never_exceed_the_credit(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller, price_cents=333, stock=10), 3), shipping={seller.pk: 7})
        pay(order)
        mark_delivered(order=order)
        item = OrderItem.objects.get(seller_order__order=order)
        credit = SettlementTransaction.objects.get(order=order).amount_cents

        for n in range(3):
            revert_sellers_for_items(order.pk, [RefundLine(item.pk, 1)], reference=f"RET-{n}")

        debit = SettlementTransaction.objects.get(order=order, direction=SettlementTransaction.Direction.DEBIT)
        assert debit.amount_cents == credit
        assert SellerBalance.objects.get(seller=seller).balance_cents == 0
        assert verify_seller_ledger(seller=seller) == []

    def test_ledger_chain_across_the_lifecycle(self, make_product, seller, other_seller, place_order, pay):
        a = make_product(seller, stock=10)
        b = make_product(other_seller, stock=10)
        for qty in (1, 2):
            order = place_order((a, qty), (b, qty), shipping={seller.pk: 250})
            pay(order)
            mark_delivered(order=order)
        revert_sellers_on_refund(order.pk)

        for user in (seller, other_seller):
            balance = SellerBalance.objects.get(seller=user)
            entries = SellerBalanceEntry.objects.filter(seller=user, bucket=SellerBalanceEntry.Bucket.BALANCE)
            assert verify_seller_ledger(seller=user) == []
            assert sum(e.amount_cents for e in entries) == balance.balance_cents
