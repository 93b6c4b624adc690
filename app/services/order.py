# app/services/order.py

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlalchemy.orm import Session

from app.clients.razorpay import razorpay_client
from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, UpstreamError, ValidationError
from app.crud import order as crud_order
from app.crud import plan as crud_plan
from app.crud import product as crud_product
from app.crud import referral as crud_referral
from app.crud import transaction as crud_transaction
from app.crud import wallet as crud_wallet
from app.models.order import DAYS_PER_MONTH, Order
from app.models.product import Product
from app.models.transaction import Transaction
from app.models.user import User
from app.schemas.order import NextPaymentInfo, OrderCreate, OrderCreated, OrderPaymentStatus, OrderRead
from app.schemas.payment import ChargeIntent, TransactionRead
from app.services import commission as commission_service
from app.services import plan as plan_service
from app.services.cascade import run_best_effort
from app.utils.dates import business_day_bounds, now_utc

logger = logging.getLogger(__name__)


def _get_owned_order(db: Session, user_id: int, order_id: int) -> Order:
    order = crud_order.get_order(db, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.user_id != user_id:
        raise PermissionDeniedError("You do not have access to this order")
    return order


async def create_charge_intent(
    db: Session,
    user_id: int,
    order: Order,
    product: Product,
    amount: int,
    payment_type: str,
    now: Optional[datetime] = None,
) -> ChargeIntent:
    """
    Создает заказ в Razorpay на сумму платежа и pending-транзакцию под него.
    Транзакция завершится только после проверенного подтверждения оплаты.
    """
    now = now or now_utc()
    # Razorpay ограничивает receipt 40 символами
    receipt = f"ord{order.id}_u{user_id}_{int(now.timestamp())}"[:40]
    try:
        gateway_order = await razorpay_client.create_order(
            amount_minor=amount * 100,
            currency=settings.PAYMENT_CURRENCY,
            receipt=receipt,
            notes={
                "order_id": str(order.id),
                "payment_type": payment_type,
                "product_id": str(product.id),
            },
        )
    except httpx.HTTPError as e:
        logger.error(f"Failed to create Razorpay order for order {order.id}", exc_info=True)
        raise UpstreamError("Payment gateway is unavailable, please try again later")

    transaction = crud_transaction.create_transaction(
        db,
        user_id=user_id,
        type="purchase",
        amount=amount,
        payment_method="razorpay",
        gateway_order_id=gateway_order["id"],
        order_id=order.id,
        product_id=product.id,
        description=f"{order.payment_option.capitalize()} installment payment for {product.name}",
    )
    db.commit()
    db.refresh(transaction)
    logger.info(
        f"Charge intent {gateway_order['id']} for order {order.id}: amount {amount}, transaction {transaction.id}"
    )
    return ChargeIntent(
        gateway_order_id=gateway_order["id"],
        amount=gateway_order.get("amount", amount * 100),
        currency=gateway_order.get("currency", settings.PAYMENT_CURRENCY),
        transaction_id=transaction.id,
        key_id=settings.RAZORPAY_KEY_ID,
    )


def _activate_pending_referral(db: Session, user: User, order: Order, now: datetime) -> None:
    """Первая покупка приглашенного запускает график комиссий с условиями заказа."""
    if user.referred_by_id is None:
        return
    referral = crud_referral.get_referral_by_referred_user_id(db, user.id)
    if referral is not None and referral.status == "PENDING":
        commission_service.activate_referral(referral, commission_service.resolve_terms(order=order), now)


async def create_order(db: Session, user: User, order_data: OrderCreate, now: Optional[datetime] = None) -> OrderCreated:
    now = now or now_utc()
    product = crud_product.get_product(db, order_data.product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not found")
    if product.price <= 0:
        raise ValidationError("Product has no valid price")

    details = order_data.payment_details
    fields = {
        "user_id": user.id,
        "product_id": product.id,
        "order_amount": product.price,
        "payment_option": order_data.payment_option,
        "start_date": now,
        "delivery_address": order_data.delivery_address,
        "delivery_status": "pending" if order_data.delivery_address else "not_applicable",
    }

    if order_data.payment_option == "daily":
        if not details.daily_amount:
            raise ValidationError("Daily amount is required for daily payment option")
        total_duration = math.ceil(product.price / details.daily_amount)
        fields.update(
            daily_amount=details.daily_amount,
            total_duration=total_duration,
            end_date=now + timedelta(days=total_duration),
        )
    elif order_data.payment_option == "monthly":
        monthly_amount, months = details.monthly_amount, details.number_of_months
        if not monthly_amount and not months:
            raise ValidationError("Monthly amount or number of months is required for monthly payment option")
        if not months:
            months = math.ceil(product.price / monthly_amount)
        if not monthly_amount:
            monthly_amount = math.ceil(product.price / months)
        fields.update(
            monthly_amount=monthly_amount,
            number_of_months=months,
            total_duration=months * DAYS_PER_MONTH,
            end_date=now + timedelta(days=months * DAYS_PER_MONTH),
        )
    else:
        # Оплата сразу из кошелька: атомарное списание с проверкой баланса
        if not crud_wallet.decrement_balance_if_sufficient(db, user.id, product.price):
            db.rollback()
            raise ConflictError("Insufficient wallet balance")
        fields.update(payment_status="completed", order_status="confirmed", end_date=now)

    order = crud_order.create_order(db, **fields)
    db.flush()

    if order_data.payment_option == "upfront":
        crud_transaction.create_transaction(
            db,
            user_id=user.id,
            type="purchase",
            amount=product.price,
            payment_method="wallet",
            status="completed",
            completed_at=now,
            order_id=order.id,
            product_id=product.id,
            description=f"Upfront payment for {product.name}",
        )
        crud_wallet.create_wallet_transaction(
            db,
            user_id=user.id,
            type="purchase",
            amount=-product.price,
            description=f"Upfront payment for order {order.id}",
        )

    _activate_pending_referral(db, user, order, now)
    db.commit()
    db.refresh(order)
    logger.info(f"User {user.id} created {order.payment_option} order {order.id} for product {product.id}")

    payment = None
    if order.payment_option == "daily":
        payment = await create_charge_intent(
            db, user.id, order, product, order.daily_amount, "daily_installment_initial", now=now
        )
    elif order.payment_option == "upfront":
        # Оплата целиком - это первый и последний платеж: комиссия и позиция в плане
        run_best_effort(
            db,
            "referral_commission",
            lambda: commission_service.credit_commission(db, user.id, product.price, order=order, now=now),
        )

        def reconcile_plan():
            plan_service.reconcile_first_payment(db, user.id, order, product.price, payment_method="wallet", now=now)

        run_best_effort(db, "plan_reconcile", reconcile_plan)

    db.refresh(order)
    return OrderCreated(order=OrderRead.model_validate(order), payment=payment)


def _payment_window(order: Order, now: datetime) -> tuple[datetime, datetime]:
    """
    Окно, в котором по заказу допустим один платеж.
    Дневная рассрочка - бизнес-день, месячная - 30-дневный период от даты старта заказа.
    """
    if order.payment_option == "monthly" and order.start_date is not None:
        period = max(0, (now - order.start_date).days // DAYS_PER_MONTH)
        window_start = order.start_date + timedelta(days=period * DAYS_PER_MONTH)
        return window_start, window_start + timedelta(days=DAYS_PER_MONTH)
    return business_day_bounds(now)


def _paid_in_window(db: Session, order: Order, now: datetime) -> bool:
    window_start, window_end = _payment_window(order, now)
    return bool(crud_transaction.get_completed_purchases_between(
        db, order.user_id, window_start, window_end, order_id=order.id
    ))


def _already_paid_message(order: Order) -> str:
    if order.payment_option == "monthly":
        return "You have already made this month's payment for this order."
    return "You have already made a payment today for this order. Next payment can be made tomorrow."


def _completed_payments(db: Session, order: Order) -> List[Transaction]:
    # Тот же охват, что и при проверке оплаты: все завершенные платежи пользователя по товару
    return crud_transaction.get_completed_for_product(db, order.user_id, order.product_id)


async def create_installment_payment(
    db: Session,
    user_id: int,
    order_id: int,
    amount: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ChargeIntent:
    """
    Charge intent для очередного взноса.
    Дневной заказ: сумма из запроса (или дневной взнос заказа), один платеж в бизнес-день.
    Месячный заказ: сумма monthly_amount, один платеж за 30-дневный период.
    """
    now = now or now_utc()
    order = _get_owned_order(db, user_id, order_id)
    if order.payment_option not in ("daily", "monthly"):
        raise ValidationError("This order is not configured for installment payments")
    if order.order_status == "cancelled":
        raise ConflictError("Order is cancelled")
    if order.payment_status == "completed":
        raise ConflictError("Order is already fully paid")

    if order.payment_option == "monthly":
        installment_amount = order.monthly_amount
    else:
        installment_amount = amount or order.daily_amount
    if not installment_amount or installment_amount < 1:
        raise ValidationError("A valid installment amount is required")
    if _paid_in_window(db, order, now):
        raise ConflictError(_already_paid_message(order))

    total_paid = sum(t.amount for t in _completed_payments(db, order))
    remaining = max(0, order.order_amount - total_paid)
    charge_amount = min(installment_amount, remaining) if remaining else installment_amount
    return await create_charge_intent(
        db, user_id, order, order.product, charge_amount, f"{order.payment_option}_installment", now=now
    )


def get_order_payment_status(db: Session, user_id: int, order_id: int) -> OrderPaymentStatus:
    order = _get_owned_order(db, user_id, order_id)
    transactions = _completed_payments(db, order)
    total_paid = sum(t.amount for t in transactions)
    return OrderPaymentStatus(
        order_id=order.id,
        product_id=order.product_id,
        order_amount=order.order_amount,
        payment_option=order.payment_option,
        payment_status=order.payment_status,
        order_status=order.order_status,
        total_paid=total_paid,
        remaining_amount=max(0, order.order_amount - total_paid),
        transactions=[TransactionRead.model_validate(t) for t in transactions],
        next_payment_due=order.payment_status != "completed",
    )


def get_next_payment_date(db: Session, user_id: int, order_id: int, now: Optional[datetime] = None) -> NextPaymentInfo:
    now = now or now_utc()
    order = _get_owned_order(db, user_id, order_id)
    if order.payment_status == "completed":
        return NextPaymentInfo(can_make_payment=False, message="Order is already fully paid")

    payments = _completed_payments(db, order)
    total_paid = sum(t.amount for t in payments)
    remaining = max(0, order.order_amount - total_paid)
    window_start, window_end = _payment_window(order, now)

    if _paid_in_window(db, order, now):
        return NextPaymentInfo(
            can_make_payment=False,
            message=_already_paid_message(order),
            next_payment_date=window_end,
            total_paid=total_paid,
            remaining_amount=remaining,
            payments_made=len(payments),
        )
    if remaining <= 0:
        return NextPaymentInfo(
            can_make_payment=False,
            message="Order is already fully paid",
            total_paid=total_paid,
            remaining_amount=0,
            payments_made=len(payments),
        )

    if order.payment_option == "monthly":
        installment_amount = order.monthly_amount
    else:
        installment_amount = order.daily_amount or settings.DEFAULT_DAILY_AMOUNT
    return NextPaymentInfo(
        can_make_payment=True,
        message="You can make a payment today",
        next_payment_date=window_start,
        suggested_amount=min(installment_amount, remaining),
        total_paid=total_paid,
        remaining_amount=remaining,
        payments_made=len(payments),
    )


def cancel_order(db: Session, user_id: int, order_id: int) -> OrderRead:
    """Отмена - только смена статуса, пока по заказу ничего не оплачено."""
    order = _get_owned_order(db, user_id, order_id)
    if order.order_status in ("completed", "cancelled"):
        raise ConflictError(f"Cannot cancel order in {order.order_status} status")
    if order.payment_status != "pending" or crud_transaction.get_completed_purchases_for_order(db, order.id):
        raise ConflictError("Cannot cancel order after payment has started")

    order.order_status = "cancelled"
    cancelled = crud_transaction.cancel_pending_for_order(db, order.id)

    plan = crud_plan.get_plan_by_user(db, user_id)
    if plan is not None:
        entry = crud_plan.find_plan_product(plan, order.product_id)
        if entry is not None and not entry.is_active and entry.paid_amount == 0:
            plan_service.remove_unpaid_entry(db, plan, entry)

    db.commit()
    db.refresh(order)
    logger.info(f"User {user_id} cancelled order {order.id}, {cancelled} pending payments cancelled")
    return OrderRead.model_validate(order)


def get_user_orders(db: Session, user_id: int, skip: int = 0, limit: int = 20) -> List[OrderRead]:
    return [OrderRead.model_validate(o) for o in crud_order.get_user_orders(db, user_id, skip=skip, limit=limit)]


def get_order(db: Session, user_id: int, order_id: int) -> OrderRead:
    return OrderRead.model_validate(_get_owned_order(db, user_id, order_id))
