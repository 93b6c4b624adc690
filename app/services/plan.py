# app/services/plan.py

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.crud import plan as crud_plan
from app.crud import product as crud_product
from app.models.order import DAYS_PER_MONTH, Order
from app.models.plan import Plan, PlanProduct
from app.models.transaction import Transaction
from app.schemas.plan import PendingPlanProduct, PlanProductAdded, PlanProductDetail, PlanProductEntry, PlanRead
from app.utils.dates import now_utc

logger = logging.getLogger(__name__)


def _entry_status(entry: PlanProduct) -> str:
    if entry.paid_amount >= entry.total_product_amount:
        return "completed"
    if entry.paid_amount > 0:
        return "partial"
    return "pending"


def _get_or_create_plan(db: Session, user_id: int) -> Plan:
    plan = crud_plan.get_plan_by_user(db, user_id)
    if plan is not None:
        return plan
    try:
        with db.begin_nested():
            plan = crud_plan.get_or_create_plan(db, user_id)
            db.flush()
    except IntegrityError:
        logger.info(f"Plan for user {user_id} was created concurrently, reusing it")
        plan = crud_plan.get_plan_by_user(db, user_id)
    return plan


def reconcile_first_payment(
    db: Session,
    user_id: int,
    order: Order,
    payment_amount: int,
    payment_method: str = "razorpay",
    now: Optional[datetime] = None,
) -> PlanProduct:
    """
    Первый платеж по товару: заводит (или находит) план пользователя и позицию товара в нем.

    Новая позиция сразу активна, paid_amount = сумма платежа.
    Повторный вызов по той же позиции только активирует ее и обновляет дату платежа,
    paid_amount записывается, только если там еще 0.
    Итоги плана пересчитывает before_flush-слушатель модели.
    """
    now = now or now_utc()
    product = crud_product.get_product(db, order.product_id)
    if not product:
        raise NotFoundError(f"Product {order.product_id} not found")

    plan = _get_or_create_plan(db, user_id)
    entry = crud_plan.find_plan_product(plan, product.id)

    if entry is None:
        if order.payment_option == "monthly" and order.monthly_amount:
            daily_payment = math.ceil(order.monthly_amount / DAYS_PER_MONTH)
        else:
            daily_payment = order.daily_amount or payment_amount
        duration = order.total_duration or math.ceil(product.price / daily_payment)
        try:
            with db.begin_nested():
                entry = PlanProduct(
                    product_id=product.id,
                    daily_payment=daily_payment,
                    total_product_amount=product.price,
                    paid_amount=payment_amount,
                    is_active=True,
                    start_date=now,
                    end_date=now + timedelta(days=duration),
                    last_payment_date=now,
                    delivery_address=order.delivery_address,
                    payment_method=payment_method,
                )
                entry.status = _entry_status(entry)
                plan.products.append(entry)
                db.flush()
            logger.info(f"Added product {product.id} to plan {plan.id} of user {user_id} with first payment {payment_amount}")
            return entry
        except IntegrityError:
            # Позицию успел создать параллельный первый платеж
            logger.info(f"Plan entry for product {product.id} already exists in plan {plan.id}, reconciling it")
            db.refresh(plan)
            entry = crud_plan.find_plan_product(plan, product.id)

    entry.is_active = True
    entry.last_payment_date = now
    if not entry.paid_amount:
        entry.paid_amount = payment_amount
    entry.status = _entry_status(entry)
    db.flush()
    return entry


def record_plan_payment(
    db: Session,
    user_id: int,
    product_id: int,
    payment_amount: int,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Последующий платеж по товару: увеличивает paid_amount позиции. Возвращает причину пропуска."""
    now = now or now_utc()
    plan = crud_plan.get_plan_by_user(db, user_id)
    if plan is None:
        return f"user {user_id} has no plan"
    entry = crud_plan.find_plan_product(plan, product_id)
    if entry is None:
        return f"product {product_id} is not in plan {plan.id}"

    db.query(PlanProduct).filter(PlanProduct.id == entry.id).update(
        {PlanProduct.paid_amount: PlanProduct.paid_amount + payment_amount},
        synchronize_session=False,
    )
    db.refresh(entry)
    entry.is_active = True
    entry.last_payment_date = now
    entry.status = _entry_status(entry)
    db.flush()
    return None


def get_current_plan(db: Session, user_id: int) -> PlanRead:
    """План пользователя только с активными позициями."""
    plan = crud_plan.get_plan_by_user(db, user_id)
    if not plan:
        raise NotFoundError("No active plan found for this user")
    return PlanRead(
        id=plan.id,
        user_id=plan.user_id,
        total_amount=plan.total_amount,
        completed_amount=plan.completed_amount,
        products=[PlanProductEntry.model_validate(p) for p in plan.products if p.is_active],
    )


def get_plan_product_detail(db: Session, user_id: int, plan_id: int, product_id: int) -> PlanProductDetail:
    plan = crud_plan.get_user_plan(db, plan_id, user_id)
    if not plan:
        raise NotFoundError("Plan or product not found")
    entry = crud_plan.find_plan_product(plan, product_id)
    if not entry:
        raise NotFoundError("Product not found in this plan")
    # Неактивную позицию показываем, только пока она ждет первого платежа
    if not entry.is_active and entry.paid_amount > 0:
        raise NotFoundError("Product is not active in this plan")

    order = db.query(Order).filter(
        Order.user_id == user_id,
        Order.product_id == product_id,
        Order.order_status != "cancelled"
    ).order_by(Order.id.desc()).first()

    equivalent_days = 0
    if entry.start_date and entry.end_date:
        equivalent_days = round((entry.end_date - entry.start_date).total_seconds() / 86400)

    return PlanProductDetail(
        **PlanProductEntry.model_validate(entry).model_dump(),
        product_name=entry.product.name,
        remaining_amount=max(0, entry.total_product_amount - entry.paid_amount),
        equivalent_days=equivalent_days,
        order_id=order.id if order else None,
        order_payment_status=order.payment_status if order else None,
    )


def add_product_to_plan(
    db: Session,
    user_id: int,
    product_id: int,
    daily_payment: int,
    delivery_address: Optional[dict] = None,
    payment_method: str = "card",
    now: Optional[datetime] = None,
) -> PlanProductAdded:
    """Добавляет товар в план неактивной позицией. Активируется она первым платежом."""
    if not daily_payment or daily_payment <= 0:
        raise ValidationError("Product ID and valid daily payment amount are required")
    now = now or now_utc()
    product = crud_product.get_product(db, product_id)
    if not product:
        raise NotFoundError("Product not found")

    plan = crud_plan.get_or_create_plan(db, user_id)
    if crud_plan.find_plan_product(plan, product_id):
        raise ConflictError("This product is already in your plan")

    plan.products.append(PlanProduct(
        product_id=product.id,
        daily_payment=daily_payment,
        total_product_amount=product.price,
        paid_amount=0,
        status="pending",
        is_active=False,
        start_date=now,
        end_date=now + timedelta(days=math.ceil(product.price / daily_payment)),
        delivery_address=delivery_address,
        payment_method=payment_method,
    ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This product is already in your plan")
    logger.info(f"User {user_id} added product {product_id} to plan {plan.id}")

    return PlanProductAdded(
        product_id=product.id,
        name=product.name,
        price=product.price,
        daily_payment=daily_payment,
    )


def get_pending_products(db: Session, user_id: int) -> List[PendingPlanProduct]:
    """Позиции, ожидающие первого платежа."""
    plan = crud_plan.get_plan_by_user(db, user_id)
    if not plan:
        return []
    return [
        PendingPlanProduct(
            plan_id=plan.id,
            product_id=entry.product_id,
            product_name=entry.product.name,
            price=entry.product.price,
            daily_payment=entry.daily_payment,
            total_product_amount=entry.total_product_amount,
        )
        for entry in plan.products
        if not entry.is_active and entry.paid_amount == 0
    ]


def remove_unpaid_entry(db: Session, plan: Plan, entry: PlanProduct) -> bool:
    """
    Убирает позицию без единого платежа. Пустой план удаляется целиком.
    Возвращает True, если план был удален. Commit делает вызывающий код.
    """
    if entry.paid_amount > 0:
        raise ConflictError("Cannot remove product as payment has already started")
    # Платежи по позиции могли быть, даже если paid_amount еще не обновился
    has_payments = db.query(Transaction.id).filter(
        Transaction.user_id == plan.user_id,
        Transaction.product_id == entry.product_id,
        Transaction.status == "completed"
    ).first()
    if has_payments:
        raise ConflictError("Cannot remove product as payment has already started")

    plan.products.remove(entry)
    if not plan.products:
        db.delete(plan)
        logger.info(f"Plan {plan.id} deleted as no products remain")
        return True
    return False


def remove_product_from_plan(db: Session, user_id: int, plan_id: int, product_id: int) -> bool:
    plan = crud_plan.get_user_plan(db, plan_id, user_id)
    if not plan:
        raise NotFoundError("Plan not found")
    entry = crud_plan.find_plan_product(plan, product_id)
    if not entry:
        raise NotFoundError("Product not found in this plan")

    plan_deleted = remove_unpaid_entry(db, plan, entry)
    db.commit()
    logger.info(f"User {user_id} removed product {product_id} from plan {plan_id}")
    return plan_deleted
