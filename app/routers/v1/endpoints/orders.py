# app/routers/v1/endpoints/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.order import NextPaymentInfo, OrderCreate, OrderCreated, OrderPaymentStatus, OrderRead
from app.schemas.payment import ChargeIntent, InstallmentPaymentCreate
from app.services import order as order_service

router = APIRouter()


@router.post("/orders", response_model=OrderCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.PAYMENT_RATE_LIMIT)
async def create_order(
    request: Request,
    order_data: OrderCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Оформление заказа. Для дневной рассрочки сразу возвращает данные первого платежа,
    для upfront списывает цену с кошелька.
    """
    return await order_service.create_order(db, current_user, order_data)


@router.get("/orders", response_model=List[OrderRead])
def get_my_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return order_service.get_user_orders(db, current_user.id, skip=skip, limit=limit)


@router.get("/orders/{order_id}", response_model=OrderRead)
def get_order_details(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return order_service.get_order(db, current_user.id, order_id)


@router.post("/orders/{order_id}/installment-payment", response_model=ChargeIntent)
@limiter.limit(settings.PAYMENT_RATE_LIMIT)
async def create_installment_payment(
    request: Request,
    order_id: int,
    payment_data: InstallmentPaymentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Создает платеж шлюза для очередного взноса: дневного (не больше одного в день)
    или месячного (не больше одного за 30-дневный период, сумма из условий заказа).
    """
    return await order_service.create_installment_payment(db, current_user.id, order_id, payment_data.daily_amount)


@router.get("/orders/{order_id}/payment-status", response_model=OrderPaymentStatus)
def get_order_payment_status(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return order_service.get_order_payment_status(db, current_user.id, order_id)


@router.get("/orders/{order_id}/next-payment", response_model=NextPaymentInfo)
def get_next_payment_date(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return order_service.get_next_payment_date(db, current_user.id, order_id)


@router.put("/orders/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Отмена заказа, пока по нему не было ни одного платежа."""
    return order_service.cancel_order(db, current_user.id, order_id)
