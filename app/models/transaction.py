# app/models/transaction.py
from sqlalchemy import Column, Integer, String, ForeignKey, func
from sqlalchemy.orm import relationship, validates

from app.db.session import Base
from app.db.types import TZDateTime

TRANSACTION_TYPES = ("purchase", "deposit", "withdrawal", "refund", "plan_payment", "referral")
PAYMENT_METHODS = ("razorpay", "bank_transfer", "upi", "referral_bonus", "system", "card", "wallet")

# Из pending можно уйти только один раз, остальные статусы финальные
TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class Transaction(Base):
    """Одно движение денег. Запись леджера, после завершения не меняется."""
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    # 'pending', 'completed', 'failed', 'cancelled'
    status = Column(String, default="pending", nullable=False, index=True)
    payment_method = Column(String, nullable=False)

    # Аудит платежного шлюза
    gateway_order_id = Column(String, nullable=True, index=True)
    gateway_payment_id = Column(String, nullable=True)
    gateway_signature = Column(String, nullable=True)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=True)
    description = Column(String, nullable=True)

    # Момент перехода в completed, по нему считается "оплачено сегодня"
    completed_at = Column(TZDateTime, nullable=True, index=True)

    created_at = Column(TZDateTime, server_default=func.now(), index=True)
    updated_at = Column(TZDateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")
    order = relationship("Order")

    @validates("amount")
    def _validate_amount(self, key, value):
        if self.amount is not None and value != self.amount:
            raise ValueError(f"Transaction {self.id}: amount is immutable")
        return value

    @validates("status")
    def _validate_status(self, key, value):
        current = self.status
        if current is not None and current != value and current in TERMINAL_STATUSES:
            raise ValueError(f"Transaction {self.id}: status '{current}' is final")
        return value
