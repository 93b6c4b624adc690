# tests/test_commission.py

from datetime import datetime, timedelta, timezone

import pytest

from app.crud import commission as crud_commission
from app.crud import referral as crud_referral
from app.models.order import Order
from app.models.referral import DailyCommission, Referral
from app.models.wallet import WalletTransaction
from app.services.commission import calculate_commission, credit_commission, resolve_terms
from app.services.maintenance import reconcile_referrals

# 06:00 UTC = 11:30 в Asia/Kolkata, далеко от границы бизнес-дня
NOW = datetime(2025, 3, 10, 6, 0, tzinfo=timezone.utc)


def _credit(db, payer, amount, now=NOW, **kwargs):
    result = credit_commission(db, payer.id, amount, now=now, **kwargs)
    db.commit()
    return result


@pytest.mark.parametrize("amount,percentage,expected", [
    (100, 30, 30),
    (105, 30, 32),   # 31.5 -> 32
    (1, 30, 0),
    (333, 10, 33),
])
def test_calculate_commission_rounds_half_up(amount, percentage, expected):
    assert calculate_commission(amount, percentage) == expected


def test_payer_without_referrer_is_a_noop(db_session, test_user, make_user):
    other = make_user(wallet_balance=50)

    result = _credit(db_session, test_user, 100)

    assert result == "payer was not referred"
    assert db_session.query(Referral).count() == 0
    assert db_session.query(DailyCommission).count() == 0
    db_session.refresh(other)
    db_session.refresh(test_user)
    assert other.wallet_balance == 50
    assert test_user.wallet_balance == 0


def test_commission_credited_once_per_day(db_session, referrer, referred_user):
    assert _credit(db_session, referred_user, 100) is None
    # Второй платеж в тот же бизнес-день
    second = _credit(db_session, referred_user, 100, now=NOW + timedelta(hours=3))

    assert second is not None
    db_session.refresh(referrer)
    assert referrer.wallet_balance == 30
    assert db_session.query(DailyCommission).count() == 1

    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)
    assert referral.status == "ACTIVE"
    assert referral.commission_earned == 30
    assert referral.days_paid == 1

    log = db_session.query(WalletTransaction).filter(WalletTransaction.user_id == referrer.id).all()
    assert [(e.type, e.amount) for e in log] == [("referral_commission", 30)]


def test_next_business_day_is_credited_again(db_session, referrer, referred_user):
    _credit(db_session, referred_user, 100)
    _credit(db_session, referred_user, 100, now=NOW + timedelta(days=1))

    db_session.refresh(referrer)
    assert referrer.wallet_balance == 60
    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)
    assert referral.days_paid == 2


def test_business_day_boundary_uses_business_timezone(db_session, referrer, referred_user):
    # 18:00 UTC 10 марта = 23:30 IST 10 марта, 19:00 UTC = 00:30 IST 11 марта
    _credit(db_session, referred_user, 100, now=datetime(2025, 3, 10, 18, 0, tzinfo=timezone.utc))
    _credit(db_session, referred_user, 100, now=datetime(2025, 3, 10, 19, 0, tzinfo=timezone.utc))

    dates = sorted(c.date.isoformat() for c in db_session.query(DailyCommission).all())
    assert dates == ["2025-03-10", "2025-03-11"]


def test_referral_completes_when_all_days_paid(db_session, referrer, referred_user):
    installment = {"daily_amount": 100, "days": 7}
    for day in range(6):
        _credit(db_session, referred_user, 100, now=NOW + timedelta(days=day), installment=installment)

    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)
    assert referral.days == 7
    assert referral.days_paid == 6
    assert referral.status == "ACTIVE"
    assert referral.end_date == referral.start_date + timedelta(days=7)

    seventh = NOW + timedelta(days=6)
    _credit(db_session, referred_user, 100, now=seventh, installment=installment)
    db_session.refresh(referral)
    assert referral.days_paid == 7
    assert referral.status == "COMPLETED"
    assert referral.end_date == seventh

    # Завершенная связь больше ничего не начисляет
    result = _credit(db_session, referred_user, 100, now=NOW + timedelta(days=7), installment=installment)
    assert result == f"referral {referral.id} is COMPLETED"
    db_session.refresh(referrer)
    assert referrer.wallet_balance == 7 * 30


def test_pending_referral_is_activated_with_order_terms(db_session, referrer, referred_user, product):
    crud_referral.create_referral(
        db_session, referrer_id=referrer.id, referred_user_id=referred_user.id, status="PENDING", commission_earned=0
    )
    db_session.commit()

    order = Order(
        user_id=referred_user.id, product_id=product.id, order_amount=1000,
        payment_option="daily", daily_amount=200, total_duration=5,
    )
    _credit(db_session, referred_user, 200, order=order)

    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)
    assert referral.status == "ACTIVE"
    assert (referral.daily_amount, referral.days, referral.total_amount) == (200, 5, 1000)
    assert referral.commission_earned == 60


def test_resolve_terms_defaults():
    terms = resolve_terms()
    assert (terms.daily_amount, terms.days, terms.commission_percentage) == (100, 30, 30)
    assert terms.resolved_total_amount == 3000


def test_days_paid_counts_only_paid_commissions(db_session, referrer, referred_user):
    _credit(db_session, referred_user, 100)
    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)
    crud_commission.create_commission(
        db_session, referral_id=referral.id, referrer_id=referrer.id, amount=30, day=(NOW + timedelta(days=1)).date()
    )
    db_session.commit()
    db_session.refresh(referral)

    assert db_session.query(DailyCommission).count() == 2
    assert referral.days_paid == 1


def test_reconcile_fixes_cached_earnings_and_completion(db_session, referrer, referred_user):
    installment = {"daily_amount": 100, "days": 2}
    _credit(db_session, referred_user, 100, installment=installment)
    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)

    # Кеш разошелся с таблицей комиссий
    referral.commission_earned = 999
    db_session.commit()

    report = reconcile_referrals(db_session, now=NOW)
    db_session.refresh(referral)
    assert report.earnings_fixed == 1
    assert referral.commission_earned == 30
    assert referral.status == "ACTIVE"

    # Вторая комиссия записана мимо сервиса, статус не обновлен
    commission = crud_commission.create_commission(
        db_session, referral_id=referral.id, referrer_id=referrer.id, amount=30, day=(NOW + timedelta(days=1)).date()
    )
    commission.status = "PAID"
    db_session.commit()

    report = reconcile_referrals(db_session, now=NOW + timedelta(days=1))
    db_session.refresh(referral)
    assert report.completed == 1
    assert referral.status == "COMPLETED"
    assert referral.commission_earned == 60


def test_reconcile_never_reopens_completed_referral(db_session, referrer, referred_user):
    installment = {"daily_amount": 100, "days": 2}
    _credit(db_session, referred_user, 100, installment=installment)
    referral = crud_referral.get_referral_by_referred_user_id(db_session, referred_user.id)

    # COMPLETED при одном оплаченном дне из двух
    referral.status = "COMPLETED"
    end_date = referral.end_date
    db_session.commit()

    report = reconcile_referrals(db_session, now=NOW + timedelta(days=5))
    db_session.refresh(referral)

    assert report.drifted == 1
    assert referral.status == "COMPLETED"
    assert referral.end_date == end_date
