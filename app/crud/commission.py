# app/crud/commission.py

from datetime import date
from typing import List
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.models.referral import DailyCommission


def create_commission(db: Session, referral_id: int, referrer_id: int, amount: int, day: date) -> DailyCommission:
    """
    Вставляет PENDING-комиссию и сразу делает flush, чтобы уникальный индекс
    (referral_id, date) сработал здесь, а не при commit.
    """
    commission = DailyCommission(
        referral_id=referral_id,
        referrer_id=referrer_id,
        amount=amount,
        date=day,
        status="PENDING",
    )
    db.add(commission)
    db.flush()
    return commission

def get_commission_for_day(db: Session, referral_id: int, day: date) -> DailyCommission | None:
    return db.query(DailyCommission).filter(
        DailyCommission.referral_id == referral_id,
        DailyCommission.date == day
    ).first()


def sum_paid_commissions(db: Session, referral_id: int) -> int:
    total = db.query(func.sum(DailyCommission.amount)).filter(
        DailyCommission.referral_id == referral_id,
        DailyCommission.status == "PAID"
    ).scalar()
    return total or 0

def get_referral_commissions(db: Session, referral_id: int) -> List[DailyCommission]:
    return db.query(DailyCommission).filter(
        DailyCommission.referral_id == referral_id
    ).order_by(DailyCommission.date.desc()).all()

def get_total_referrer_earnings(db: Session, referrer_id: int) -> int:
    """Подсчитывает общую сумму комиссий, заработанных пользователем на реферальной программе."""
    total = db.query(func.sum(DailyCommission.amount)).filter(
        DailyCommission.referrer_id == referrer_id,
        DailyCommission.status == "PAID"
    ).scalar()
    return total or 0
