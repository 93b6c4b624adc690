# app/models/withdrawal.py
from sqlalchemy import Column, Integer, String, ForeignKey, JSON, func
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.db.types import TZDateTime

WITHDRAWAL_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED")


class CommissionWithdrawal(Base):
    __tablename__ = "commission_withdrawals"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String, default="PENDING", nullable=False)
    # 'UPI', 'BANK'
    payment_method = Column(String, nullable=False)
    payment_details = Column(JSON, nullable=False)
    # ID выплаты во внешней системе, проставляет админ
    gateway_reference = Column(String, nullable=True)
    created_at = Column(TZDateTime, server_default=func.now())
    processed_at = Column(TZDateTime, nullable=True)

    user = relationship("User")
