# tests/test_commission_sweep.py

from datetime import datetime, timedelta, timezone

import pytest

from app.crud import referral as crud_referral
from app.crud import transaction as crud_transaction
from app.models.referral import DailyCommission
from app.services.commission import credit_commission
from app.services.commission_sweep import process_daily_commissions

# 23:55 по Asia/Kolkata
SWEEP_AT = datetime(2025, 3, 10, 18, 25, tzinfo=timezone.utc)
MORNING = datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)
STARTED = datetime(2025, 3, 5, 4, 0, tzinfo=timezone.utc)


@pytest.fixture
def active_referral(db_session, referrer, referred_user):
    referral = crud_referral.create_referral(
        db_session,
        referrer_id=referrer.id,
        referred_user_id=referred_user.id,
        status="ACTIVE",
        start_date=STARTED,
        end_date=STARTED + timedelta(days=30),
        daily_amount=100,
        days=30,
        total_amount=3000,
        commission_percentage=30,
        commission_earned=0,
    )
    db_session.commit()
    db_session.refresh(referral)
    return referral


def _completed_payment(db, user, amount, completed_at):
    transaction = crud_transaction.create_transaction(
        db,
        user_id=user.id,
        type="purchase",
        amount=amount,
        payment_method="razorpay",
        status="completed",
        completed_at=completed_at,
    )
    db.commit()
    return transaction


def test_missed_day_extends_end_date_by_one_day(db_session, referrer, active_referral):
    original_end = active_referral.end_date

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    db_session.refresh(active_referral)
    assert report.extended == 1
    assert report.credited == 0
    assert active_referral.end_date == original_end + timedelta(days=1)
    assert active_referral.days_paid == 0
    assert active_referral.status == "ACTIVE"
    db_session.refresh(referrer)
    assert referrer.wallet_balance == 0


def test_sweep_runs_once_per_business_day(db_session, active_referral):
    original_end = active_referral.end_date

    process_daily_commissions(db_session, now=SWEEP_AT)
    second = process_daily_commissions(db_session, now=SWEEP_AT + timedelta(minutes=2))

    db_session.refresh(active_referral)
    assert second.processed == 0
    assert active_referral.end_date == original_end + timedelta(days=1)

    # Следующий бизнес-день снова обрабатывается
    third = process_daily_commissions(db_session, now=SWEEP_AT + timedelta(days=1))
    db_session.refresh(active_referral)
    assert third.extended == 1
    assert active_referral.end_date == original_end + timedelta(days=2)


def test_payment_without_commission_is_credited(db_session, referrer, referred_user, active_referral):
    _completed_payment(db_session, referred_user, 100, MORNING)
    _completed_payment(db_session, referred_user, 50, MORNING + timedelta(hours=2))

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    db_session.refresh(active_referral)
    db_session.refresh(referrer)
    assert report.credited == 1
    # База - сумма всех покупок за день: (100 + 50) * 30%
    assert referrer.wallet_balance == 45
    assert active_referral.days_paid == 1
    assert active_referral.end_date == STARTED + timedelta(days=30)


def test_commission_already_credited_is_left_alone(db_session, referrer, referred_user, active_referral):
    _completed_payment(db_session, referred_user, 100, MORNING)
    credit_commission(db_session, referred_user.id, 100, now=MORNING)
    db_session.commit()

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    db_session.refresh(referrer)
    assert report.already_credited == 1
    assert referrer.wallet_balance == 30
    assert db_session.query(DailyCommission).count() == 1


def test_payment_from_yesterday_does_not_count(db_session, referrer, referred_user, active_referral):
    _completed_payment(db_session, referred_user, 100, MORNING - timedelta(days=1))

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    assert report.extended == 1
    db_session.refresh(referrer)
    assert referrer.wallet_balance == 0


def test_inactive_and_expired_referrals_are_skipped(db_session, make_user, referrer, active_referral):
    expired_user = make_user(referred_by_id=referrer.id)
    pending_user = make_user(referred_by_id=referrer.id)
    crud_referral.create_referral(
        db_session, referrer_id=referrer.id, referred_user_id=expired_user.id, status="ACTIVE",
        start_date=STARTED - timedelta(days=40), end_date=STARTED - timedelta(days=10), commission_earned=0,
    )
    crud_referral.create_referral(
        db_session, referrer_id=referrer.id, referred_user_id=pending_user.id, status="PENDING", commission_earned=0,
    )
    db_session.commit()

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    assert report.processed == 1


def test_failure_on_one_referral_does_not_stop_the_sweep(db_session, mocker, make_user, referrer, active_referral):
    second_user = make_user(referred_by_id=referrer.id)
    second = crud_referral.create_referral(
        db_session, referrer_id=referrer.id, referred_user_id=second_user.id, status="ACTIVE",
        start_date=STARTED, end_date=STARTED + timedelta(days=30), commission_earned=0,
    )
    db_session.commit()

    from app.services import commission_sweep
    original = commission_sweep._sweep_referral

    def flaky(db, referral, now):
        if referral.id == active_referral.id:
            raise RuntimeError("boom")
        return original(db, referral, now)

    mocker.patch.object(commission_sweep, "_sweep_referral", side_effect=flaky)

    report = process_daily_commissions(db_session, now=SWEEP_AT)

    assert report.failed == [active_referral.id]
    assert report.extended == 1
    db_session.refresh(second)
    assert second.last_swept_on is not None
