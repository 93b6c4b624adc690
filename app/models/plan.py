# app/models/plan.py
from sqlalchemy import Boolean, Column, Integer, String, ForeignKey, JSON, UniqueConstraint, event, func
from sqlalchemy.orm import Session, relationship

from app.db.session import Base
from app.db.types import TZDateTime


class Plan(Base):
    """
    Сводный план рассрочки пользователя (один на пользователя) по всем его товарам.
    total_amount и completed_amount - производные поля, пересчитываются при каждом flush.
    """
    __tablename__ = "plans"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    total_amount = Column(Integer, default=0, nullable=False)
    completed_amount = Column(Integer, default=0, nullable=False)

    created_at = Column(TZDateTime, server_default=func.now())
    updated_at = Column(TZDateTime, server_default=func.now(), onupdate=func.now())

    products = relationship(
        "PlanProduct",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanProduct.id",
    )

    def recalculate_totals(self):
        self.total_amount = sum(p.total_product_amount or 0 for p in self.products)
        self.completed_amount = sum(p.paid_amount or 0 for p in self.products)


class PlanProduct(Base):
    __tablename__ = "plan_products"
    # Один товар - одна строка в плане, даже при двух параллельных первых платежах
    __table_args__ = (UniqueConstraint("plan_id", "product_id", name="uq_plan_products_plan_product"),)

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    daily_payment = Column(Integer, nullable=False)
    total_product_amount = Column(Integer, nullable=False)
    paid_amount = Column(Integer, default=0, nullable=False)
    # 'pending', 'partial', 'completed'
    status = Column(String, default="pending", nullable=False)
    # Становится True только после первого платежа
    is_active = Column(Boolean, default=False, nullable=False)

    start_date = Column(TZDateTime, server_default=func.now())
    end_date = Column(TZDateTime, nullable=True)
    last_payment_date = Column(TZDateTime, nullable=True)
    delivery_address = Column(JSON, nullable=True)
    payment_method = Column(String, default="card", nullable=False)

    plan = relationship("Plan", back_populates="products")
    product = relationship("Product")


@event.listens_for(Session, "before_flush")
def _recalculate_plan_totals(session, flush_context, instances):
    """Любое сохранение плана или его позиции пересчитывает итоги плана."""
    plans = set()
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Plan):
            plans.add(obj)
        elif isinstance(obj, PlanProduct) and obj.plan is not None:
            plans.add(obj.plan)
    for obj in session.deleted:
        if isinstance(obj, PlanProduct) and obj.plan is not None and obj.plan not in session.deleted:
            plans.add(obj.plan)
    for plan in plans:
        if plan in session.deleted:
            continue
        plan.recalculate_totals()
