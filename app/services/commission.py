# app/services/commission.py

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import commission as crud_commission
from app.crud import referral as crud_referral
from app.crud import user as crud_user
from app.crud import wallet as crud_wallet
from app.models.order import Order
from app.models.referral import Referral
from app.utils.dates import business_date, now_utc

logger = logging.getLogger(__name__)

# Статусы, в которых комиссия больше не начисляется
CLOSED_REFERRAL_STATUSES = ("COMPLETED", "CANCELLED")


@dataclass(frozen=True)
class ReferralTerms:
    daily_amount: int
    days: int
    commission_percentage: int
    total_amount: Optional[int] = None

    @property
    def resolved_total_amount(self) -> int:
        if self.total_amount is not None:
            return self.total_amount
        return self.daily_amount * self.days


# Условия по умолчанию, когда у платежа нет ни заказа, ни графика рассрочки
DEFAULT_REFERRAL_TERMS = ReferralTerms(
    daily_amount=settings.DEFAULT_DAILY_AMOUNT,
    days=settings.REFERRAL_DEFAULT_DAYS,
    commission_percentage=settings.REFERRAL_COMMISSION_PERCENTAGE,
)


def calculate_commission(payment_amount: int, percentage: int) -> int:
    """round(amount * pct / 100), половина округляется вверх."""
    value = Decimal(payment_amount) * Decimal(percentage) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def resolve_terms(order: Optional[Order] = None, installment: Optional[dict] = None) -> ReferralTerms:
    """
    Условия реферальной связи: явный график рассрочки, иначе условия заказа,
    иначе DEFAULT_REFERRAL_TERMS.
    """
    if installment:
        daily_amount = int(installment.get("daily_amount") or DEFAULT_REFERRAL_TERMS.daily_amount)
        days = int(installment.get("days") or DEFAULT_REFERRAL_TERMS.days)
        percentage = int(installment.get("commission_percentage") or DEFAULT_REFERRAL_TERMS.commission_percentage)
        total_amount = installment.get("total_amount")
        if total_amount is None and order is not None:
            total_amount = order.order_amount
        return ReferralTerms(
            daily_amount=daily_amount,
            days=days,
            commission_percentage=percentage,
            total_amount=int(total_amount) if total_amount is not None else None,
        )

    if order is not None and order.daily_amount:
        days = order.total_duration or math.ceil(order.order_amount / order.daily_amount)
        return ReferralTerms(
            daily_amount=order.daily_amount,
            days=days,
            commission_percentage=DEFAULT_REFERRAL_TERMS.commission_percentage,
            total_amount=order.order_amount,
        )

    if order is not None:
        return ReferralTerms(
            daily_amount=DEFAULT_REFERRAL_TERMS.daily_amount,
            days=DEFAULT_REFERRAL_TERMS.days,
            commission_percentage=DEFAULT_REFERRAL_TERMS.commission_percentage,
            total_amount=order.order_amount,
        )

    return DEFAULT_REFERRAL_TERMS


def activate_referral(referral: Referral, terms: ReferralTerms, now: datetime) -> Referral:
    """Переводит связь PENDING -> ACTIVE и запускает график комиссий с заданными условиями."""
    referral.status = "ACTIVE"
    referral.start_date = now
    referral.end_date = now + timedelta(days=terms.days)
    referral.daily_amount = terms.daily_amount
    referral.days = terms.days
    referral.total_amount = terms.resolved_total_amount
    referral.commission_percentage = terms.commission_percentage
    logger.info(
        f"Referral {referral.id} activated: {terms.daily_amount}/day for {terms.days} days, "
        f"{terms.commission_percentage}% commission"
    )
    return referral


def get_or_create_referral(
    db: Session,
    referrer_id: int,
    referred_user_id: int,
    terms: ReferralTerms,
    now: datetime,
) -> Referral:
    """
    Находит связь для приглашенного пользователя или создает сразу активную.
    Связь PENDING (привязан код, покупок не было) активируется с переданными условиями.
    """
    referral = crud_referral.get_referral_by_referred_user_id(db, referred_user_id)
    if referral is None:
        try:
            with db.begin_nested():
                referral = crud_referral.create_referral(
                    db,
                    referrer_id=referrer_id,
                    referred_user_id=referred_user_id,
                    status="PENDING",
                    commission_earned=0,
                )
                db.flush()
        except IntegrityError:
            # Параллельный платеж успел создать связь первым
            logger.info(f"Referral for user {referred_user_id} was created concurrently, reusing it")
            referral = crud_referral.get_referral_by_referred_user_id(db, referred_user_id)
        else:
            logger.info(f"Created referral {referral.id}: referrer {referrer_id} -> user {referred_user_id}")

    if referral.status == "PENDING":
        activate_referral(referral, terms, now)
        db.flush()
    return referral


def apply_referral_progress(referral: Referral, now: datetime) -> None:
    """
    Завершение при days_paid >= days (end_date = now),
    иначе end_date пересчитывается как start_date + days.
    """
    if referral.days_paid >= referral.days:
        if referral.status != "COMPLETED":
            logger.info(f"Referral {referral.id} completed: {referral.days_paid}/{referral.days} days paid")
        referral.status = "COMPLETED"
        referral.end_date = now
    elif referral.start_date is not None:
        referral.end_date = referral.start_date + timedelta(days=referral.days)


def credit_referral_day(db: Session, referral: Referral, payment_amount: int, now: datetime) -> bool:
    """
    Начисляет комиссию по связи за бизнес-день момента now.

    Уникальность (referral_id, date) проверяет база при вставке внутри SAVEPOINT.
    Нарушение означает "за сегодня уже начислено": шаг молча пропускается.
    Возвращает True, если комиссия была начислена этим вызовом.
    """
    if referral.status in CLOSED_REFERRAL_STATUSES:
        logger.info(f"Referral {referral.id} is {referral.status}, commission skipped")
        return False

    amount = calculate_commission(payment_amount, referral.commission_percentage)
    if amount <= 0:
        return False

    day = business_date(now)
    try:
        with db.begin_nested():
            commission = crud_commission.create_commission(
                db,
                referral_id=referral.id,
                referrer_id=referral.referrer_id,
                amount=amount,
                day=day,
            )
    except IntegrityError:
        logger.info(f"Commission for referral {referral.id} on {day} already credited, skipping")
        return False

    crud_wallet.increment_balance(db, referral.referrer_id, amount)
    crud_wallet.create_wallet_transaction(
        db,
        user_id=referral.referrer_id,
        type="referral_commission",
        amount=amount,
        description=f"Daily commission for referral {referral.id} ({day.isoformat()})",
    )
    commission.status = "PAID"

    db.query(Referral).filter(Referral.id == referral.id).update(
        {
            Referral.commission_earned: Referral.commission_earned + amount,
            Referral.last_payment_date: now,
        },
        synchronize_session=False,
    )
    db.flush()
    # Подтягиваем свежие commission_earned и days_paid из базы
    db.refresh(referral)

    apply_referral_progress(referral, now)
    db.flush()
    logger.info(
        f"Credited commission {amount} to user {referral.referrer_id} for referral {referral.id} "
        f"({referral.days_paid}/{referral.days} days)"
    )
    return True


def credit_commission(
    db: Session,
    payer_id: int,
    payment_amount: int,
    order: Optional[Order] = None,
    installment: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Реферальная комиссия за один подтвержденный платеж.
    Возвращает None при начислении или причину, по которой начислять было нечего.
    Commit делает вызывающий код.
    """
    now = now or now_utc()
    payer = crud_user.get_user_by_id(db, payer_id)
    if payer is None:
        return f"payer {payer_id} not found"
    if payer.referred_by_id is None:
        return "payer was not referred"

    terms = resolve_terms(order=order, installment=installment)
    referral = get_or_create_referral(
        db,
        referrer_id=payer.referred_by_id,
        referred_user_id=payer.id,
        terms=terms,
        now=now,
    )
    if referral.status in CLOSED_REFERRAL_STATUSES:
        return f"referral {referral.id} is {referral.status}"

    if not credit_referral_day(db, referral, payment_amount, now):
        return "already credited today or zero commission"
    return None
