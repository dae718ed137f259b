from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from core.exceptions import IllegalSettlementTransition, InsufficientFunds, OrderNotFound
from core.models import ActivityLog
from dashboards.models import DailyRevenue
from dashboards.stats import REVENUE_WINDOW_DAYS, get_platform_stats
from notifications.models import Notification
from orders.models import Order, OrderEvent, OrderItem, SellerOrder, SettlementState
from orders.services import cancel_order, mark_delivered
from orders.settlement import (
    RefundLine,
    cancel_recognized_payment,
    credit_sellers_on_delivery,
    get_seller_earnings_for_order,
    order_wallet_refund_reference,
    recognize_payment,
    refund_order,
    revert_sellers_for_items,
    revert_sellers_on_refund,
)
from payments.ledger import debit_seller_balance_clamped, lock_seller_balance
from payments.models import SellerBalance, SellerBalanceEntry, SettlementTransaction, WalletEntry
from payments.services import verify_seller_ledger
from payments.wallet import credit_buyer_wallet, get_wallet_balance_cents
from products.models import Product
from refunds.services import approve_refund, create_refund_request

pytestmark = pytest.mark.django_db


def _balance(user) -> SellerBalance:
    return SellerBalance.objects.get(seller=user)


def _stock(product) -> int:
    return Product.objects.values_list("stock", flat=True).get(pk=product.pk)


def _pending_earning_cents(seller) -> int:
    return SellerBalanceEntry.objects.get(seller=seller, reason=SellerBalanceEntry.Reason.PENDING_EARNING).amount_cents


class TestRecognizePayment:
    def test_paid_order_is_recognized(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        order = place_order((product, 1), shipping={seller.pk: 1000})

        result = pay(order, "PSK-1")

        order.refresh_from_db()
        assert result.success and not result.duplicate
        assert result.revenue_cents == order.total_cents == 12850
        assert order.settlement_state == SettlementState.PAYMENT_RECOGNIZED
        assert order.status == Order.Status.PROCESSING
        assert order.payment_status == Order.PaymentStatus.PAID
        assert order.payment_reference == "PSK-1"
        assert order.revenue_added and order.inventory_reduced
        assert _stock(product) == 9

        assert _balance(seller).pending_cents == 9900
        assert _balance(seller).balance_cents == 0
        assert [c.amount_cents for c in result.pending_credits] == [9900]

        assert get_platform_stats().total_revenue_cents == 12850
        day = DailyRevenue.objects.get()
        assert (day.revenue_cents, day.orders) == (12850, 1)

    def test_webhook_and_poll_converge(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        order = place_order((product, 1))
        pay(order, "PSK-1")

        again = pay(order, "PSK-1")

        assert again.success and again.duplicate
        assert _stock(product) == 9
        assert _balance(seller).pending_cents == SellerBalanceEntry.objects.get().amount_cents
        assert get_platform_stats().total_revenue_cents == order.total_cents

    def test_second_reference_is_refused(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        pay(order, "PSK-1")

        result = pay(order, "PSK-2")

        assert not result.success
        order.refresh_from_db()
        assert order.payment_reference == "PSK-1"

    def test_amount_must_match_total(self, make_product, seller, place_order):
        product = make_product(seller, stock=10)
        order = place_order((product, 1))

        with pytest.raises(ValidationError):
            recognize_payment(order.pk, amount_cents=order.total_cents - 1, reference="PSK-1")

        order.refresh_from_db()
        assert order.settlement_state == SettlementState.PENDING_PAYMENT
        assert _stock(product) == 10

    def test_reference_used_by_another_order(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        first = place_order((product, 1))
        second = place_order((product, 1))
        pay(first, "PSK-1")

        with pytest.raises(ValidationError):
            pay(second, "PSK-1")

    def test_reference_is_required(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        with pytest.raises(ValidationError):
            recognize_payment(order.pk, amount_cents=order.total_cents, reference="  ")

    def test_missing_order(self):
        with pytest.raises(OrderNotFound):
            recognize_payment(987654, amount_cents=1, reference="PSK-1")

    def test_wallet_order_debits_buyer(self, make_product, seller, buyer, place_order, pay):
        credit_buyer_wallet(user_id=buyer.pk, amount_cents=20000, reference="TOPUP-1")
        order = place_order((make_product(seller), 1), payment_method=Order.PaymentMethod.WALLET)

        pay(order)

        assert get_wallet_balance_cents(user_id=buyer.pk) == 20000 - order.total_cents

    def test_short_wallet_aborts_everything(self, make_product, seller, buyer, place_order, pay):
        credit_buyer_wallet(user_id=buyer.pk, amount_cents=1000, reference="TOPUP-1")
        product = make_product(seller, stock=10)
        order = place_order((product, 1), payment_method=Order.PaymentMethod.WALLET)

        with pytest.raises(InsufficientFunds):
            pay(order)

        order.refresh_from_db()
        assert order.settlement_state == SettlementState.PENDING_PAYMENT
        assert order.payment_reference is None
        assert _stock(product) == 10
        assert get_wallet_balance_cents(user_id=buyer.pk) == 1000
        assert not SellerBalanceEntry.objects.exists()

    def test_cancelled_order_is_not_paid(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        cancel_recognized_payment(order.pk)

        result = pay(order)
        assert not result.success


class TestCreditSellersOnDelivery:
    def test_seller_is_credited_from_pending(self, settled_order, seller):
        balance = _balance(seller)
        so = settled_order.seller_orders.get()

        assert settled_order.settlement_state == SettlementState.SETTLED
        assert settled_order.seller_credited
        assert balance.balance_cents == 9900
        assert balance.pending_cents == 0
        assert so.payout_status == SellerOrder.PayoutStatus.PAID
        assert so.pending_credited_cents == 0
        tx = SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.CREDIT)
        assert tx.amount_cents == 9900
        assert verify_seller_ledger(seller=seller) == []

    def test_second_call_is_a_replay(self, settled_order, seller):
        result = credit_sellers_on_delivery(settled_order.pk)

        assert result.success and result.duplicate
        assert [u.amount_cents for u in result.updates] == [9900]
        assert _balance(seller).balance_cents == 9900
        assert SettlementTransaction.objects.count() == 1

    def test_not_delivered(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        pay(order)

        result = credit_sellers_on_delivery(order.pk)

        assert not result.success
        assert not SettlementTransaction.objects.exists()

    def test_cancelled(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        cancel_recognized_payment(order.pk)

        with pytest.raises(ValidationError):
            mark_delivered(order=order)

        Order.objects.filter(pk=order.pk).update(status=Order.Status.DELIVERED)
        assert not credit_sellers_on_delivery(order.pk).success

    def test_platform_stats(self, settled_order):
        stats = get_platform_stats()
        assert stats.total_revenue_cents == 12850 - 9900
        assert stats.total_delivered_orders == 1
        assert stats.total_products_sold == 1

    def test_payment_on_delivery(self, make_product, seller, place_order):
        product = make_product(seller, stock=10)
        order = place_order((product, 2), payment_method=Order.PaymentMethod.PAYMENT_ON_DELIVERY)

        result = mark_delivered(order=order)

        assert result.success
        assert order.settlement_state == SettlementState.SETTLED
        assert order.revenue_recognized_cents == order.total_cents
        assert _stock(product) == 8
        assert _balance(seller).pending_cents == 0
        assert get_platform_stats().total_revenue_cents == order.total_cents - _balance(seller).balance_cents

        paid = recognize_payment(order.pk, amount_cents=order.total_cents, reference="CASH-1")
        order.refresh_from_db()
        assert paid.success and paid.revenue_cents == 0
        assert order.payment_status == Order.PaymentStatus.PAID
        assert order.settlement_state == SettlementState.SETTLED
        assert get_platform_stats().total_revenue_cents == order.total_cents - _balance(seller).balance_cents

    def test_missing_seller_is_skipped(self, make_product, seller, other_seller, place_order):
        a = make_product(seller, stock=5)
        b = make_product(other_seller, stock=5)
        order = place_order((a, 1), (b, 1))
        gone = SellerOrder.objects.get(order=order, seller=other_seller)
        SellerOrder.objects.filter(pk=gone.pk).update(seller=None)

        result = mark_delivered(order=order)

        assert result.success
        assert [u.seller_id for u in result.updates] == [seller.pk]
        assert result.skipped == (str(gone.pk),)
        assert _balance(seller).balance_cents > 0
        assert not SellerBalance.objects.filter(seller=other_seller).exists()
        assert order.settlement_state == SettlementState.SETTLED

    def test_commission_snapshot_survives_rate_change(self, make_product, seller, place_order, pay, set_commission):
        order = place_order((make_product(seller), 1), shipping={seller.pk: 1000})
        set_commission("25.00")
        pay(order)

        mark_delivered(order=order)

        assert _balance(seller).balance_cents == 9900

    def test_credits_plus_fees_equal_gross(self, make_product, seller, other_seller, place_order, pay):
        a = make_product(seller, price_cents=1999, stock=10)
        b = make_product(other_seller, price_cents=777, stock=10)
        order = place_order((a, 3), (b, 7), shipping={seller.pk: 450, other_seller.pk: 333})
        pay(order)
        mark_delivered(order=order)

        rows = get_seller_earnings_for_order(order.pk)
        credited = sum(tx.amount_cents for tx in SettlementTransaction.objects.filter(order=order))
        fees = sum(r.platform_fee_cents for r in rows)
        gross = sum(so.base_price_cents + so.shipping_cents for so in order.seller_orders.all())

        assert credited + fees == gross
        assert all(r.credited_cents == r.earnings_cents for r in rows)

    def test_events_activity_and_notifications(
        self, make_product, seller, buyer, place_order, pay, django_capture_on_commit_callbacks
    ):
        order = place_order((make_product(seller), 1))
        with django_capture_on_commit_callbacks(execute=True):
            pay(order)
            mark_delivered(order=order)

        types = set(order.events.values_list("type", flat=True))
        assert {
            OrderEvent.Type.CREATED,
            OrderEvent.Type.PAID,
            OrderEvent.Type.STOCK_REDUCED,
            OrderEvent.Type.DELIVERED,
            OrderEvent.Type.SELLERS_CREDITED,
        } <= types
        assert set(ActivityLog.objects.values_list("action", flat=True)) == {"payment_recognized", "sellers_credited"}
        assert Notification.objects.filter(user=seller, kind=Notification.Kind.EARNING).count() == 1
        assert Notification.objects.filter(user=buyer, kind=Notification.Kind.PAYMENT).count() == 1

    def test_rolled_back_payment_leaves_no_side_effects(
        self, make_product, seller, buyer, place_order, pay, django_capture_on_commit_callbacks
    ):
        credit_buyer_wallet(user_id=buyer.pk, amount_cents=100, reference="TOPUP-1")
        order = place_order((make_product(seller), 1), payment_method=Order.PaymentMethod.WALLET)

        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(InsufficientFunds):
                pay(order)

        assert not ActivityLog.objects.exists()
        assert not Notification.objects.exists()


class TestSettlementState:
    def test_illegal_transition(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        with pytest.raises(IllegalSettlementTransition) as exc:
            order.transition_settlement(SettlementState.FULLY_REVERSED)
        assert exc.value.current == SettlementState.PENDING_PAYMENT

    def test_cannot_settle_without_stock_reduction(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        with pytest.raises(ValidationError):
            order.transition_settlement(SettlementState.SETTLED)
        assert order.settlement_state == SettlementState.PENDING_PAYMENT

    def test_terminal_states(self, settled_order):
        revert_sellers_on_refund(settled_order.pk)
        settled_order.refresh_from_db()
        assert not settled_order.can_transition_to(SettlementState.PARTIALLY_REVERSED)
        assert not settled_order.can_transition_to(SettlementState.CANCELLED)


class TestRevertSellersOnRefund:
    def test_full_reversal(self, settled_order, seller):
        result = revert_sellers_on_refund(settled_order.pk, reason="Damaged in transit")

        settled_order.refresh_from_db()
        balance = _balance(seller)
        assert result.success
        assert result.total_owed_cents == 9900
        assert balance.balance_cents == 0
        assert balance.negative_cents == 0
        assert settled_order.settlement_state == SettlementState.FULLY_REVERSED
        assert settled_order.status == Order.Status.REFUNDED
        assert settled_order.payment_status == Order.PaymentStatus.PAID
        assert set(settled_order.seller_orders.values_list("payout_status", flat=True)) == {SellerOrder.PayoutStatus.HOLD}
        assert all(i.is_fully_refunded for i in OrderItem.objects.filter(seller_order__order=settled_order))

        credit = SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.CREDIT)
        debit = SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.DEBIT)
        assert debit.amount_cents == 9900
        assert debit.original_transaction_id == credit.pk
        assert get_platform_stats().total_reversed_payouts_cents == 9900
        assert verify_seller_ledger(seller=seller) == []

    def test_replay(self, settled_order, seller):
        revert_sellers_on_refund(settled_order.pk)

        again = revert_sellers_on_refund(settled_order.pk)

        assert again.success and again.duplicate
        assert [r.owed_cents for r in again.reversals] == [9900]
        assert _balance(seller).balance_cents == 0
        assert SettlementTransaction.objects.filter(direction=SettlementTransaction.Direction.DEBIT).count() == 1

    def test_balance_already_spent(self, settled_order, seller):
        debit_seller_balance_clamped(
            lock_seller_balance(seller.pk),
            7000,
            reference="PAYOUT-1",
            reason=SellerBalanceEntry.Reason.ADJUSTMENT,
        )

        result = revert_sellers_on_refund(settled_order.pk)

        balance = _balance(seller)
        r = result.reversals[0]
        assert (r.owed_cents, r.debited_cents, r.shortfall_cents) == (9900, 2900, 7000)
        assert balance.balance_cents == 0
        assert balance.negative_cents == 7000

    def test_unsettled_order(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        pay(order)

        result = revert_sellers_on_refund(order.pk)
        assert not result.success


class TestRefundOrder:
    @pytest.fixture()
    def wallet_order(self, make_product, seller, buyer, place_order, pay):
        credit_buyer_wallet(user_id=buyer.pk, amount_cents=100000, reference="TOPUP-1")
        order = place_order(
            (make_product(seller), 1),
            shipping={seller.pk: 1000},
            payment_method=Order.PaymentMethod.WALLET,
        )
        pay(order)
        mark_delivered(order=order)
        return order

    def test_buyer_is_credited_and_sellers_reversed(self, wallet_order, buyer, seller):
        assert get_wallet_balance_cents(user_id=buyer.pk) == 100000 - 12850

        result = refund_order(wallet_order.pk, reason="Admin refund")

        wallet_order.refresh_from_db()
        entry = WalletEntry.objects.get(reference=order_wallet_refund_reference(wallet_order.pk))
        assert result.success
        assert result.refunded_cents == 12850
        assert result.reversal.total_owed_cents == 9900
        assert entry.type == WalletEntry.Type.CREDIT_REFUND
        assert get_wallet_balance_cents(user_id=buyer.pk) == 100000
        assert _balance(seller).balance_cents == 0
        assert wallet_order.settlement_state == SettlementState.FULLY_REVERSED
        assert wallet_order.payment_status == Order.PaymentStatus.REFUNDED

    def test_replay(self, wallet_order, buyer):
        refund_order(wallet_order.pk)

        again = refund_order(wallet_order.pk)

        assert again.success and again.duplicate
        assert again.refunded_cents == 12850
        assert [r.owed_cents for r in again.reversal.reversals] == [9900]
        assert get_wallet_balance_cents(user_id=buyer.pk) == 100000

    def test_pays_what_refund_requests_left(self, make_product, seller, buyer, place_order, pay):
        order = place_order((make_product(seller), 2), shipping={seller.pk: 1000})
        pay(order)
        mark_delivered(order=order)
        item = OrderItem.objects.get(seller_order__order=order)
        approve_refund(refund_request=create_refund_request(order=order, buyer=buyer, lines=[(item.pk, 1)]))

        result = refund_order(order.pk)

        assert result.refunded_cents == order.total_cents - 11750
        assert get_wallet_balance_cents(user_id=buyer.pk) == order.total_cents
        assert _balance(seller).balance_cents == 0

    def test_amount_above_order_total(self, settled_order, buyer, seller):
        with pytest.raises(ValidationError):
            refund_order(settled_order.pk, amount_cents=settled_order.total_cents + 1)

        settled_order.refresh_from_db()
        assert settled_order.settlement_state == SettlementState.SETTLED
        assert get_wallet_balance_cents(user_id=buyer.pk) == 0
        assert _balance(seller).balance_cents == 9900

    def test_unsettled_order(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        pay(order)

        assert not refund_order(order.pk).success


class TestRevertSellersForItems:
    @pytest.fixture()
    def order(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller, stock=10), 4), shipping={seller.pk: 1000})
        pay(order)
        mark_delivered(order=order)
        return order

    def _item(self, order) -> OrderItem:
        return OrderItem.objects.get(seller_order__order=order)

    def test_partial_then_full(self, order, seller):
        item = self._item(order)
        assert _balance(seller).balance_cents == 36900

        first = revert_sellers_for_items(order.pk, [RefundLine(item.pk, 1)], reference="RET-1")

        order.refresh_from_db()
        item.refresh_from_db()
        assert first.total_owed_cents == 9000
        assert _balance(seller).balance_cents == 27900
        assert item.refunded_quantity == 1
        assert order.settlement_state == SettlementState.PARTIALLY_REVERSED
        assert order.payment_status == Order.PaymentStatus.PARTIALLY_REFUNDED
        assert order.seller_orders.get().payout_status == SellerOrder.PayoutStatus.PAID

        second = revert_sellers_for_items(order.pk, [(item.pk, 3)], reference="RET-2")

        order.refresh_from_db()
        assert second.total_owed_cents == 27900
        assert _balance(seller).balance_cents == 0
        assert order.settlement_state == SettlementState.FULLY_REVERSED
        assert order.status == Order.Status.REFUNDED
        assert order.seller_orders.get().payout_status == SellerOrder.PayoutStatus.HOLD
        debit = SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.DEBIT)
        assert debit.amount_cents == 36900
        assert len(debit.metadata["references"]) == 2
        assert verify_seller_ledger(seller=seller) == []

    def test_same_reference_is_a_replay(self, order, seller):
        item = self._item(order)
        revert_sellers_for_items(order.pk, [RefundLine(item.pk, 1)], reference="RET-1")

        again = revert_sellers_for_items(order.pk, [RefundLine(item.pk, 1)], reference="RET-1")

        item.refresh_from_db()
        assert again.success and again.duplicate
        assert [r.owed_cents for r in again.reversals] == [9000]
        assert item.refunded_quantity == 1
        assert _balance(seller).balance_cents == 27900

    def test_separate_returns_without_reference_both_apply(self, order, seller):
        item = self._item(order)
        first = revert_sellers_for_items(order.pk, [{"order_item_id": item.pk, "quantity": 1}])

        second = revert_sellers_for_items(order.pk, [{"order_item_id": item.pk, "quantity": 1}])

        item.refresh_from_db()
        debit = SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.DEBIT)
        assert not first.duplicate and not second.duplicate
        assert second.total_owed_cents == 9000
        assert item.refunded_quantity == 2
        assert _balance(seller).balance_cents == 36900 - 18000
        assert debit.amount_cents == 18000
        assert len(set(debit.metadata["references"])) == 2

    def test_more_than_refundable(self, order, seller):
        item = self._item(order)
        with pytest.raises(ValidationError):
            revert_sellers_for_items(order.pk, [RefundLine(item.pk, 5)])
        assert _balance(seller).balance_cents == 36900

    def test_split_lines_are_merged(self, order):
        item = self._item(order)
        with pytest.raises(ValidationError):
            revert_sellers_for_items(order.pk, [RefundLine(item.pk, 3), RefundLine(item.pk, 2)])

    def test_non_positive_quantity(self, order):
        with pytest.raises(ValidationError):
            revert_sellers_for_items(order.pk, [RefundLine(self._item(order).pk, 0)])

    def test_item_from_another_order(self, order, settled_order):
        foreign = OrderItem.objects.get(seller_order__order=settled_order)
        with pytest.raises(ValidationError):
            revert_sellers_for_items(order.pk, [RefundLine(foreign.pk, 1)])

    def test_whole_order_after_partial(self, order, seller):
        item = self._item(order)
        revert_sellers_for_items(order.pk, [RefundLine(item.pk, 1)], reference="RET-1")

        result = revert_sellers_on_refund(order.pk)

        assert result.total_owed_cents == 27900
        assert _balance(seller).balance_cents == 0
        assert SettlementTransaction.objects.get(direction=SettlementTransaction.Direction.DEBIT).amount_cents == 36900


class TestCancelRecognizedPayment:
    def test_cancel_paid_order(self, make_product, seller, place_order, pay):
        product = make_product(seller, stock=10)
        order = place_order((product, 2))
        pay(order)

        result = cancel_order(order=order, reason="Buyer changed mind")

        assert result.success
        assert [c.amount_cents for c in result.updates] == [_pending_earning_cents(seller)]
        assert order.settlement_state == SettlementState.CANCELLED
        assert order.status == Order.Status.CANCELLED
        assert order.payment_status == Order.PaymentStatus.CANCELLED
        assert _balance(seller).pending_cents == 0
        assert _stock(product) == 10
        assert get_platform_stats().total_revenue_cents == 0
        assert DailyRevenue.objects.get().revenue_cents == 0
        assert set(order.seller_orders.values_list("payout_status", flat=True)) == {SellerOrder.PayoutStatus.HOLD}
        assert verify_seller_ledger(seller=seller) == []

    def test_wallet_is_refunded(self, make_product, seller, buyer, place_order, pay):
        credit_buyer_wallet(user_id=buyer.pk, amount_cents=20000, reference="TOPUP-1")
        order = place_order((make_product(seller), 1), payment_method=Order.PaymentMethod.WALLET)
        pay(order)

        cancel_recognized_payment(order.pk)

        assert get_wallet_balance_cents(user_id=buyer.pk) == 20000

    def test_revenue_recognized_before_the_window(self, make_product, seller, place_order, pay):
        order = place_order((make_product(seller), 1))
        pay(order)
        Order.objects.filter(pk=order.pk).update(
            revenue_recognized_at=timezone.now() - timedelta(days=REVENUE_WINDOW_DAYS + 10)
        )

        cancel_recognized_payment(order.pk)

        (bucket,) = DailyRevenue.objects.all()
        assert bucket.date == timezone.localdate()
        assert bucket.revenue_cents == order.total_cents
        assert get_platform_stats().total_revenue_cents == 0

    def test_unpaid_order(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        result = cancel_order(order=order)
        assert result.success
        assert order.settlement_state == SettlementState.CANCELLED

    def test_replay(self, make_product, seller, place_order):
        order = place_order((make_product(seller), 1))
        cancel_recognized_payment(order.pk)
        assert cancel_recognized_payment(order.pk).duplicate

    def test_settled_order_is_refunded_not_cancelled(self, settled_order):
        assert not cancel_recognized_payment(settled_order.pk).success
        with pytest.raises(ValidationError):
            cancel_order(order=settled_order)


class TestSellerEarningsForOrder:
    def test_breakdown(self, settled_order, seller):
        (row,) = get_seller_earnings_for_order(settled_order.pk)

        assert row.seller_id == seller.pk
        assert row.base_price_cents == 10000
        assert row.shipping_cents == 1000
        assert (row.vat_cents, row.nhil_cents, row.getfund_cents, row.covid_levy_cents) == (1250, 250, 250, 100)
        assert row.platform_fee_cents == 1100
        assert row.earnings_cents == row.credited_cents == 9900
        assert row.reversed_cents == 0
        assert row.payout_status == SellerOrder.PayoutStatus.PAID
        assert row.as_dict()["commission_rate"] == "0.1000"

    def test_missing_order(self):
        with pytest.raises(OrderNotFound):
            get_seller_earnings_for_order(987654)
