# app/services/maintenance.py

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import commission as crud_commission
from app.crud import transaction as crud_transaction
from app.db.session import SessionLocal
from app.models.referral import Referral
from app.utils.dates import now_utc

logger = logging.getLogger(__name__)


def expire_stale_pending_transactions(db: Session, now: Optional[datetime] = None) -> int:
    """
    Pending-оплаты старше PENDING_TRANSACTION_TTL_HOURS помечаются failed.
    Подтверждение по ним после этого уже не пройдет.
    """
    now = now or now_utc()
    cutoff = now - timedelta(hours=settings.PENDING_TRANSACTION_TTL_HOURS)
    expired = crud_transaction.expire_pending_older_than(db, cutoff)
    db.commit()
    if expired:
        logger.info(f"Expired {expired} pending transactions created before {cutoff.isoformat()}")
    return expired


@dataclass
class ReconcileReport:
    checked: int = 0
    earnings_fixed: int = 0
    completed: int = 0
    drifted: int = 0


def reconcile_referrals(db: Session, now: Optional[datetime] = None) -> ReconcileReport:
    """
    Сверяет кеш commission_earned с таблицей комиссий и статус ACTIVE с days_paid.
    COMPLETED не откатывается, расхождение по нему только логируется.
    days_paid сам по себе не хранится, его чинить не нужно.
    """
    now = now or now_utc()
    report = ReconcileReport()
    referrals = db.query(Referral).filter(Referral.status.in_(("ACTIVE", "COMPLETED"))).order_by(Referral.id).all()

    for referral in referrals:
        report.checked += 1
        earned = crud_commission.sum_paid_commissions(db, referral.id)
        if referral.commission_earned != earned:
            logger.warning(
                f"Referral {referral.id}: commission_earned {referral.commission_earned} != {earned} in commissions, fixing"
            )
            referral.commission_earned = earned
            report.earnings_fixed += 1

        if referral.status == "ACTIVE" and referral.days_paid >= referral.days:
            referral.status = "COMPLETED"
            referral.end_date = referral.last_payment_date or now
            report.completed += 1
            logger.warning(f"Referral {referral.id} had all {referral.days} days paid but was ACTIVE, completed")
        elif referral.status == "COMPLETED" and referral.days_paid < referral.days:
            # COMPLETED финальный: расхождение только фиксируем в логе
            report.drifted += 1
            logger.warning(
                f"Referral {referral.id} is COMPLETED with {referral.days_paid}/{referral.days} days paid, left as is"
            )

    db.commit()
    logger.info(
        f"Referral reconcile: checked={report.checked}, earnings_fixed={report.earnings_fixed}, "
        f"completed={report.completed}, drifted={report.drifted}"
    )
    return report


async def expire_stale_pending_transactions_task():
    logger.info("--- Starting scheduled job: Expire Stale Pending Transactions ---")
    try:
        with SessionLocal() as db:
            expire_stale_pending_transactions(db)
    except Exception as e:
        logger.error("An error occurred while expiring stale pending transactions", exc_info=True)
    logger.info("--- Finished scheduled job: Expire Stale Pending Transactions ---")


async def reconcile_referrals_task():
    logger.info("--- Starting scheduled job: Reconcile Referrals ---")
    try:
        with SessionLocal() as db:
            reconcile_referrals(db)
    except Exception as e:
        logger.error("An error occurred during referral reconciliation", exc_info=True)
    logger.info("--- Finished scheduled job: Reconcile Referrals ---")
