# app/models/order.py
from sqlalchemy import Column, Integer, String, ForeignKey, JSON, func
from sqlalchemy.orm import relationship, validates

from app.db.session import Base
from app.db.types import TZDateTime

PAYMENT_OPTIONS = ("daily", "monthly", "upfront")

# Месяц рассрочки считаем как 30 дней
DAYS_PER_MONTH = 30

# Порядок статусов оплаты: откатываться назад нельзя
PAYMENT_STATUS_RANK = {"pending": 0, "partial": 1, "completed": 2}


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # Фиксируется при создании заказа и больше не меняется
    order_amount = Column(Integer, nullable=False)

    # 'daily', 'monthly', 'upfront'
    payment_option = Column(String, nullable=False)

    # --- Условия оплаты ---
    daily_amount = Column(Integer, nullable=True)
    monthly_amount = Column(Integer, nullable=True)
    number_of_months = Column(Integer, nullable=True)
    total_duration = Column(Integer, nullable=True)  # в днях
    start_date = Column(TZDateTime, nullable=True)
    end_date = Column(TZDateTime, nullable=True)

    # 'pending' -> 'confirmed' -> 'completed' | 'cancelled'
    order_status = Column(String, default="pending", nullable=False)
    # 'pending' -> 'partial' -> 'completed'
    payment_status = Column(String, default="pending", nullable=False)

    delivery_address = Column(JSON, nullable=True)
    # 'not_applicable', 'pending', 'shipped', 'delivered'
    delivery_status = Column(String, default="not_applicable", nullable=False)

    created_at = Column(TZDateTime, server_default=func.now())
    updated_at = Column(TZDateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")
    product = relationship("Product")

    @validates("order_amount")
    def _validate_order_amount(self, key, value):
        if self.order_amount is not None and value != self.order_amount:
            raise ValueError(f"Order {self.id}: order_amount is immutable")
        return value

    @validates("payment_status")
    def _validate_payment_status(self, key, value):
        if value not in PAYMENT_STATUS_RANK:
            raise ValueError(f"Unknown payment status '{value}'")
        current = self.payment_status
        if current is not None and PAYMENT_STATUS_RANK[value] < PAYMENT_STATUS_RANK[current]:
            raise ValueError(f"Order {self.id}: payment status cannot go back from '{current}' to '{value}'")
        return value
