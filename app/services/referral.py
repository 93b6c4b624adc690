# app/services/referral.py
import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.crud import commission as crud_commission
from app.crud import order as crud_order
from app.crud import referral as crud_referral
from app.crud import user as crud_user
from app.crud import wallet as crud_wallet
from app.crud import withdrawal as crud_withdrawal
from app.models.referral import Referral
from app.models.user import User
from app.schemas.referral import (
    CommissionRead,
    FriendPurchase,
    MissedPaymentDays,
    ReferralCode,
    ReferralDetails,
    ReferralProgress,
    ReferralStats,
    ReferralSummary,
    ReferredUserDetails,
)
from app.services.commission import calculate_commission
from app.utils.dates import days_between, now_utc

logger = logging.getLogger(__name__)


def generate_referral_code(db: Session) -> str:
    """8 символов в верхнем регистре hex, уникальный среди пользователей."""
    code = secrets.token_hex(4).upper()
    # Коллизия крайне маловероятна, но проверяем
    while crud_user.get_user_by_referral_code(db, code=code):
        code = secrets.token_hex(4).upper()
    return code


def get_my_referral_code(db: Session, user: User) -> ReferralCode:
    if not user.referral_code:
        logger.info(f"User {user.id} has no referral code. Generating a new one.")
        user.referral_code = generate_referral_code(db)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Assigned new referral code '{user.referral_code}' to user {user.id}")
    return ReferralCode(referral_code=user.referral_code)


def apply_referral_code(db: Session, user: User, code: str) -> ReferralSummary:
    """
    Привязывает пользователя к пригласившему по коду и заводит связь PENDING.
    Свой код и повторная привязка запрещены. График комиссий стартует с первой покупкой.
    """
    referrer = crud_user.get_user_by_referral_code(db, code=code.strip().upper())
    if not referrer:
        raise NotFoundError("Invalid referral code")
    if referrer.id == user.id:
        raise ValidationError("You cannot use your own referral code")

    if not crud_user.set_referred_by(db, user.id, referrer.id):
        db.rollback()
        raise ConflictError("A referral code has already been applied to this account")

    try:
        referral = crud_referral.create_referral(
            db,
            referrer_id=referrer.id,
            referred_user_id=user.id,
            status="PENDING",
            commission_earned=0,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A referral code has already been applied to this account")

    db.refresh(referral)
    logger.info(f"User {user.id} applied referral code of user {referrer.id}, referral {referral.id} is PENDING")
    return _summary(referral)


def _summary(referral: Referral) -> ReferralSummary:
    return ReferralSummary(
        id=referral.id,
        referred_user_id=referral.referred_user_id,
        referred_user_name=referral.referred_user.name if referral.referred_user else None,
        status=referral.status,
        daily_amount=referral.daily_amount,
        days=referral.days,
        days_paid=referral.days_paid,
        commission_earned=referral.commission_earned,
        start_date=referral.start_date,
        end_date=referral.end_date,
    )


def get_referral_stats(db: Session, user: User) -> ReferralStats:
    """Собирает полную статистику по реферальной программе для пользователя."""
    referrals = crud_referral.get_referrals_by_referrer(db, user.id)
    by_status = {}
    for referral in referrals:
        by_status[referral.status] = by_status.get(referral.status, 0) + 1

    return ReferralStats(
        total_referrals=len(referrals),
        pending_referrals=by_status.get("PENDING", 0),
        active_referrals=by_status.get("ACTIVE", 0),
        completed_referrals=by_status.get("COMPLETED", 0),
        total_earnings=crud_commission.get_total_referrer_earnings(db, user.id),
        total_withdrawn=crud_withdrawal.sum_withdrawn(db, user.id),
        available_balance=crud_wallet.get_balance(db, user.id),
    )


def list_referrals(db: Session, user: User) -> List[ReferralSummary]:
    return [_summary(r) for r in crud_referral.get_referrals_by_referrer(db, user.id)]


def _get_visible_referral(db: Session, user_id: int, referral_id: int) -> Referral:
    referral = crud_referral.get_referral(db, referral_id)
    if not referral:
        raise NotFoundError("Referral not found")
    if user_id not in (referral.referrer_id, referral.referred_user_id):
        raise PermissionDeniedError("You do not have access to this referral")
    return referral


def get_referral_details(db: Session, user_id: int, referral_id: int) -> ReferralDetails:
    referral = _get_visible_referral(db, user_id, referral_id)
    commissions = crud_commission.get_referral_commissions(db, referral.id)
    days_paid = referral.days_paid
    total_days = referral.days or 0
    progress_percent = round(days_paid / total_days * 100) if total_days else 0

    return ReferralDetails(
        **_summary(referral).model_dump(),
        referrer_id=referral.referrer_id,
        total_amount=referral.total_amount,
        commission_percentage=referral.commission_percentage,
        last_payment_date=referral.last_payment_date,
        days_remaining=max(0, total_days - days_paid),
        progress=ReferralProgress(days_paid=days_paid, progress_percent=progress_percent),
        transactions=[CommissionRead.model_validate(c) for c in commissions],
    )


def get_missed_payment_days(
    db: Session, user_id: int, referral_id: int, now: Optional[datetime] = None
) -> MissedPaymentDays:
    """
    Сколько дней график ждал платежа и сколько из них пропущено.
    expected = min(дней с начала, days), missed = max(0, expected - оплачено).
    """
    now = now or now_utc()
    referral = _get_visible_referral(db, user_id, referral_id)
    if referral.start_date is None:
        # Связь еще не активирована
        return MissedPaymentDays(
            referral_id=referral.id,
            total_days_since_start=0,
            expected_payment_days=0,
            actual_paid_days=referral.days_paid,
            missed_days=0,
            current_end_date=referral.end_date,
        )

    total_days_since_start = days_between(referral.start_date, now)
    expected = min(total_days_since_start, referral.days)
    paid = referral.days_paid
    return MissedPaymentDays(
        referral_id=referral.id,
        total_days_since_start=total_days_since_start,
        expected_payment_days=expected,
        actual_paid_days=paid,
        missed_days=max(0, expected - paid),
        original_end_date=referral.start_date + timedelta(days=referral.days),
        current_end_date=referral.end_date,
    )


def get_referred_user_details(db: Session, user_id: int, referred_user_id: int) -> ReferredUserDetails:
    """
    Данные приглашенного друга: условия связи, выплаченные комиссии и его покупки.
    Доступно только пригласившему.
    """
    referral = crud_referral.get_referral_by_referred_user_id(db, referred_user_id)
    if not referral:
        raise NotFoundError("Referral not found")
    if referral.referrer_id != user_id:
        raise PermissionDeniedError("You do not have access to this referral")

    friend = referral.referred_user
    orders = [
        o for o in crud_order.get_user_orders(db, referred_user_id, limit=100)
        if o.order_status != "cancelled"
    ]
    purchases = [
        FriendPurchase(
            order_id=o.id,
            product_id=o.product_id,
            product_name=o.product.name if o.product else None,
            order_amount=o.order_amount,
            payment_option=o.payment_option,
            payment_status=o.payment_status,
            order_status=o.order_status,
            total_duration=o.total_duration,
            date_of_purchase=o.created_at,
        )
        for o in orders
    ]

    return ReferredUserDetails(
        user_id=friend.id,
        name=friend.name,
        email=friend.email,
        referral_id=referral.id,
        status=referral.status,
        commission_per_day=calculate_commission(referral.daily_amount, referral.commission_percentage),
        days=referral.days,
        days_paid=referral.days_paid,
        total_commission=crud_commission.sum_paid_commissions(db, referral.id),
        total_products=len(purchases),
        products=purchases,
    )
