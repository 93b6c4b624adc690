# app/services/commission_sweep.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.crud import commission as crud_commission
from app.crud import referral as crud_referral
from app.crud import transaction as crud_transaction
from app.db.session import SessionLocal
from app.models.referral import Referral
from app.services.commission import credit_referral_day
from app.utils.dates import business_date, business_day_bounds, now_utc

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Сводка одного прохода: сколько связей в каком исходе."""
    business_day: str
    credited: int = 0
    already_credited: int = 0
    extended: int = 0
    completed: int = 0
    failed: list = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.credited + self.already_credited + self.extended


def _sweep_referral(db: Session, referral: Referral, now: datetime) -> str:
    today = business_date(now)
    day_start, day_end = business_day_bounds(now)

    payments = crud_transaction.get_completed_purchases_between(
        db, referral.referred_user_id, day_start, day_end
    )
    if payments:
        if crud_commission.get_commission_for_day(db, referral.id, today):
            outcome = "already_credited"
        else:
            base_amount = sum(p.amount for p in payments)
            outcome = "credited" if credit_referral_day(db, referral, base_amount, now) else "already_credited"
    else:
        # Пропущенный платеж: график сдвигается ровно на один день
        referral.end_date = referral.end_date + timedelta(days=1)
        outcome = "extended"
        logger.info(f"Referral {referral.id}: no payment on {today}, end date moved to {referral.end_date}")

    referral.last_swept_on = today
    return outcome


def process_daily_commissions(db: Session, now: Optional[datetime] = None) -> SweepReport:
    """
    Ежедневный проход по ACTIVE-связям с end_date в будущем.

    Платеж за сегодня есть и комиссии нет - начисляем.
    Комиссия за сегодня уже есть - ничего не делаем.
    Платежа нет - end_date += 1 день.
    Каждая связь обрабатывается не больше одного раза за бизнес-день (last_swept_on)
    и в собственной транзакции: ошибка по одной связи не останавливает проход.
    """
    now = now or now_utc()
    today = business_date(now)
    report = SweepReport(business_day=today.isoformat())

    referral_ids = [
        referral_id for referral_id, in db.query(Referral.id).filter(
            Referral.status == "ACTIVE",
            Referral.end_date > now,
            or_(Referral.last_swept_on.is_(None), Referral.last_swept_on < today),
        ).order_by(Referral.id).all()
    ]
    logger.info(f"Daily commission sweep for {today}: {len(referral_ids)} active referrals to check")

    for referral_id in referral_ids:
        try:
            referral = crud_referral.get_referral(db, referral_id)
            outcome = _sweep_referral(db, referral, now)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to sweep referral {referral_id}", exc_info=True)
            report.failed.append(referral_id)
            continue

        if outcome == "credited":
            report.credited += 1
        elif outcome == "already_credited":
            report.already_credited += 1
        else:
            report.extended += 1
        if referral.status == "COMPLETED":
            report.completed += 1

    logger.info(
        f"Sweep for {today} done: credited={report.credited}, already_credited={report.already_credited}, "
        f"extended={report.extended}, completed={report.completed}, failed={len(report.failed)}"
    )
    return report


async def daily_commission_sweep_task():
    """Задача планировщика: открывает свою сессию и запускает проход."""
    logger.info("--- Starting scheduled job: Daily Commission Sweep ---")
    try:
        with SessionLocal() as db:
            process_daily_commissions(db)
    except Exception as e:
        logger.error("An error occurred during daily commission sweep", exc_info=True)
    logger.info("--- Finished scheduled job: Daily Commission Sweep ---")
