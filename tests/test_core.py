from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.utils import timezone

from core.activity import log_activity
from core.actors import Actor, ActorType, resolve_actor
from core.config import get_marketplace_commission_rate, get_site_config
from core.exceptions import IllegalSettlementTransition
from core.idempotency import create_once, require_transition
from core.models import ActivityLog, SiteConfig
from dashboards.models import DailyRevenue
from dashboards.stats import (
    REVENUE_WINDOW_DAYS,
    add_daily_revenue,
    deduct_revenue,
    get_daily_revenue_window,
    get_platform_stats,
)
from notifications.models import Notification
from notifications.services import notify_user
from orders.models import SETTLEMENT_TRANSITIONS, SettlementState
from payments.models import SellerBalanceEntry


class TestActor:
    def test_constructors(self):
        assert Actor.admin(7).as_fields() == {"actor_type": "admin", "actor_id": "7"}
        assert Actor.seller("12").as_fields("processed_by") == {"processed_by_type": "seller", "processed_by_id": "12"}
        assert str(Actor.system("webhook")) == "system:webhook"

    def test_from_blank_fields_is_system(self):
        assert Actor.from_fields(None, None) == Actor.system()
        assert resolve_actor(None).actor_type == ActorType.SYSTEM

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            Actor("robot", "1")


class TestIdempotencyHelpers:
    def test_require_transition(self):
        require_transition(
            current=SettlementState.SETTLED,
            target=SettlementState.FULLY_REVERSED,
            transitions=SETTLEMENT_TRANSITIONS,
        )
        with pytest.raises(IllegalSettlementTransition):
            require_transition(
                current=SettlementState.CANCELLED,
                target=SettlementState.SETTLED,
                transitions=SETTLEMENT_TRANSITIONS,
            )

    @pytest.mark.django_db
    def test_create_once_returns_stored_row(self, seller):
        fields = dict(
            seller_id=seller.pk,
            reason=SellerBalanceEntry.Reason.ADJUSTMENT,
            amount_cents=5,
            balance_before_cents=0,
            balance_after_cents=5,
        )
        first, created = create_once(SellerBalanceEntry, reference="ADJ-1", **fields)
        again, created_again = create_once(SellerBalanceEntry, reference="ADJ-1", **fields)

        assert created and not created_again
        assert again.pk == first.pk

    @pytest.mark.django_db
    def test_create_once_reraises_other_violations(self, seller):
        with pytest.raises(IntegrityError):
            create_once(
                SellerBalanceEntry,
                reference="ADJ-BAD",
                seller_id=seller.pk,
                reason=SellerBalanceEntry.Reason.ADJUSTMENT,
                amount_cents=5,
                balance_before_cents=0,
                balance_after_cents=6,
            )


@pytest.mark.django_db
class TestSiteConfig:
    def test_singleton_is_created_with_defaults(self):
        cfg = get_site_config()
        assert SiteConfig.objects.count() == 1
        assert get_site_config().pk == cfg.pk
        assert get_marketplace_commission_rate() == cfg.marketplace_sales_percent / 100

    def test_save_invalidates_cache(self, site_config):
        get_site_config()
        site_config.default_currency = " USD "
        site_config.save()

        assert get_site_config().default_currency == "usd"


@pytest.mark.django_db
class TestAfterCommitSideEffects:
    def test_activity_is_written_after_commit(self, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            log_activity(action="settings.changed", actor=Actor.admin(1), object_ref="x", metadata={"n": 1})
            assert not ActivityLog.objects.exists()

        assert len(callbacks) == 1
        row = ActivityLog.objects.get()
        assert row.actor == Actor.admin(1)
        assert row.metadata == {"n": 1}

    def test_failed_activity_write_is_swallowed(self, monkeypatch, django_capture_on_commit_callbacks):
        def boom(**kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(ActivityLog.objects, "create", boom)
        with django_capture_on_commit_callbacks(execute=True):
            log_activity(action="settings.changed")

        assert not ActivityLog.objects.exists()

    def test_notification(self, buyer, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            notify_user(user_id=buyer.pk, kind=Notification.Kind.WALLET, title="Top-up", payload={"a": 1})
            notify_user(user_id=None, kind=Notification.Kind.WALLET, title="nobody")

        n = Notification.objects.get()
        assert n.user_id == buyer.pk
        assert not n.is_read
        n.mark_read()
        assert Notification.objects.get().is_read


@pytest.mark.django_db
class TestPlatformRevenue:
    def test_deduct_is_clamped(self):
        stats = get_platform_stats()
        stats.total_revenue_cents = 500

        assert deduct_revenue(stats, 800) == (500, 0)

    def test_daily_window_drops_old_buckets(self):
        today = timezone.localdate()
        DailyRevenue.objects.create(date=today - timedelta(days=REVENUE_WINDOW_DAYS + 5), revenue_cents=1)
        DailyRevenue.objects.create(date=today - timedelta(days=REVENUE_WINDOW_DAYS - 1), revenue_cents=2)

        add_daily_revenue(amount_cents=300, orders=1)
        row = add_daily_revenue(amount_cents=200, orders=1)

        assert (row.revenue_cents, row.orders) == (500, 2)
        window = get_daily_revenue_window()
        assert [w["revenue_cents"] for w in window] == [2, 500]

    def test_day_outside_the_window_is_not_written(self):
        today = timezone.localdate()

        row = add_daily_revenue(amount_cents=-900, day=today - timedelta(days=REVENUE_WINDOW_DAYS + 10))

        assert row is None
        assert not DailyRevenue.objects.exists()

    def test_backdated_write_prunes_against_today(self):
        today = timezone.localdate()
        DailyRevenue.objects.create(date=today - timedelta(days=REVENUE_WINDOW_DAYS + 5), revenue_cents=1)

        add_daily_revenue(amount_cents=-300, day=today - timedelta(days=10))

        assert [w["revenue_cents"] for w in get_daily_revenue_window()] == [-300]
