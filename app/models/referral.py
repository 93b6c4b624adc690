# app/models/referral.py
from sqlalchemy import Column, Date, Integer, String, ForeignKey, UniqueConstraint, func, select
from sqlalchemy.orm import column_property, relationship
from app.db.session import Base
from app.db.types import TZDateTime

class Referral(Base):
    __tablename__ = "referrals"
    id = Column(Integer, primary_key=True, index=True)

    # ID того, кто пригласил
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # ID того, кого пригласили (пригласить можно только один раз)
    referred_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    # 'PENDING' - привязан код, 'ACTIVE' - идет график комиссий,
    # 'COMPLETED' - все дни оплачены, 'CANCELLED'
    status = Column(String, default="PENDING", nullable=False, index=True)

    start_date = Column(TZDateTime, nullable=True)
    # Сдвигается на день за каждый день без платежа
    end_date = Column(TZDateTime, nullable=True)

    daily_amount = Column(Integer, default=100, nullable=False)
    days = Column(Integer, default=30, nullable=False)
    total_amount = Column(Integer, default=0, nullable=False)
    commission_percentage = Column(Integer, default=30, nullable=False)
    # Кеш суммы по DailyCommission, сверяется задачей reconcile_referrals
    commission_earned = Column(Integer, default=0, nullable=False)

    last_payment_date = Column(TZDateTime, nullable=True)
    # Бизнес-день последнего прохода ежедневной задачи
    last_swept_on = Column(Date, nullable=True)

    created_at = Column(TZDateTime, server_default=func.now())

    # --- СВЯЗИ ДЛЯ УДОБСТВА ---
    referrer = relationship("User", foreign_keys=[referrer_id], back_populates="referrals")
    referred_user = relationship("User", foreign_keys=[referred_user_id], back_populates="referrer_link")
    commissions = relationship("DailyCommission", back_populates="referral", order_by="DailyCommission.date.desc()")


class DailyCommission(Base):
    """Одно начисление комиссии по одной реферальной связи за один календарный день."""
    __tablename__ = "daily_commissions"
    # Не больше одной комиссии на связь в день. Проверяется базой при вставке, не чтением.
    __table_args__ = (UniqueConstraint("referral_id", "date", name="uq_daily_commissions_referral_date"),)

    id = Column(Integer, primary_key=True, index=True)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=False, index=True)
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    # Календарная дата в бизнес-таймзоне
    date = Column(Date, nullable=False)
    # 'PENDING' -> 'PAID' | 'FAILED'
    status = Column(String, default="PENDING", nullable=False)
    created_at = Column(TZDateTime, server_default=func.now())

    referral = relationship("Referral", back_populates="commissions")


# Количество оплаченных дней не хранится, а всегда считается по таблице комиссий
Referral.days_paid = column_property(
    select(func.count(DailyCommission.id))
    .where(DailyCommission.referral_id == Referral.id, DailyCommission.status == "PAID")
    .correlate_except(DailyCommission)
    .scalar_subquery()
)
