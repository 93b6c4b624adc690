# app/services/payment.py

import hashlib
import hmac
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PermissionDeniedError, UpstreamError, ValidationError
from app.crud import transaction as crud_transaction
from app.crud import wallet as crud_wallet
from app.models.order import Order
from app.models.transaction import Transaction
from app.schemas.payment import CascadeStep, GatewayConfirmation, VerifyPaymentResult
from app.services import commission as commission_service
from app.services import plan as plan_service
from app.services.cascade import StepResult, run_best_effort
from app.utils.dates import now_utc

logger = logging.getLogger(__name__)


# --- Подписи Razorpay ---

def _hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_gateway_signature(gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    """Подпись Checkout: HMAC-SHA256("{order_id}|{payment_id}") на секретном ключе."""
    if not settings.RAZORPAY_KEY_SECRET:
        logger.error("RAZORPAY_KEY_SECRET is not configured, payment confirmations cannot be verified")
        return False
    if not (gateway_order_id and gateway_payment_id and signature):
        return False
    expected = _hmac_sha256_hex(settings.RAZORPAY_KEY_SECRET, f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8"))
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(raw_body: bytes, signature: Optional[str]) -> bool:
    """Подпись вебхука: HMAC-SHA256 тела запроса на секрете вебхука."""
    if not settings.RAZORPAY_WEBHOOK_SECRET:
        logger.error("RAZORPAY_WEBHOOK_SECRET is not configured, webhook rejected")
        return False
    if not signature:
        return False
    expected = _hmac_sha256_hex(settings.RAZORPAY_WEBHOOK_SECRET, raw_body)
    return hmac.compare_digest(expected, signature)


# --- Прогресс оплаты заказа ---

def apply_order_progress(db: Session, order: Order, user_id: int) -> tuple[int, bool]:
    """
    Пересчитывает total_paid по завершенным транзакциям (пользователь, товар)
    и двигает статусы заказа только вперед.
    Возвращает (total_paid, is_first_payment).
    """
    completed = crud_transaction.get_completed_for_product(db, user_id, order.product_id)
    total_paid = sum(t.amount for t in completed)
    is_first_payment = len(completed) == 1

    if total_paid >= order.order_amount:
        order.payment_status = "completed"
        if order.order_status in ("pending", "confirmed"):
            order.order_status = "completed"
    elif order.payment_status == "pending":
        order.payment_status = "partial"
        if order.order_status == "pending":
            order.order_status = "confirmed"
    return total_paid, is_first_payment


def _current_figures(db: Session, transaction: Transaction) -> VerifyPaymentResult:
    order = transaction.order
    result = VerifyPaymentResult(
        success=transaction.status == "completed",
        transaction_id=transaction.id,
        already_verified=True,
    )
    if order is not None:
        completed = crud_transaction.get_completed_for_product(db, transaction.user_id, order.product_id)
        total_paid = sum(t.amount for t in completed)
        result.order_id = order.id
        result.payment_status = order.payment_status
        result.total_paid = total_paid
        result.remaining_amount = max(0, order.order_amount - total_paid)
    return result


# --- Каскад после успешной оплаты ---

def _run_cascade(
    db: Session,
    payer_id: int,
    payment_amount: int,
    order: Optional[Order],
    is_first_payment: bool,
    payment_method: str,
    installment: Optional[dict],
    now: datetime,
) -> List[StepResult]:
    """
    Комиссия (на каждый платеж) и план (первый или последующий платеж).
    Каждый шаг в своей транзакции, ошибки не влияют на результат оплаты.
    """
    steps = [
        run_best_effort(
            db,
            "referral_commission",
            lambda: commission_service.credit_commission(
                db, payer_id, payment_amount, order=order, installment=installment, now=now
            ),
        )
    ]

    if order is not None:
        order_id = order.id
        product_id = order.product_id

        def reconcile_plan():
            fresh_order = db.get(Order, order_id)
            plan_service.reconcile_first_payment(
                db, payer_id, fresh_order, payment_amount, payment_method=payment_method, now=now
            )

        if is_first_payment:
            steps.append(run_best_effort(db, "plan_reconcile", reconcile_plan))
        else:
            steps.append(run_best_effort(
                db,
                "plan_payment",
                lambda: plan_service.record_plan_payment(db, payer_id, product_id, payment_amount, now=now),
            ))

    for step in steps:
        if not step.ok:
            logger.warning(f"Payment cascade step '{step.name}' for user {payer_id} failed: {step.error}")
        elif step.skipped:
            logger.debug(f"Payment cascade step '{step.name}' for user {payer_id} skipped: {step.error}")
    return steps


def _steps_out(steps: List[StepResult]) -> List[CascadeStep]:
    return [CascadeStep(name=s.name, ok=s.ok, skipped=s.skipped, error=s.error) for s in steps]


def _credit_deposit(db: Session, transaction: Transaction) -> VerifyPaymentResult:
    """Пополнение кошелька: зачисление в той же транзакции БД, что и перевод в completed. Без каскада."""
    crud_wallet.increment_balance(db, transaction.user_id, transaction.amount)
    crud_wallet.create_wallet_transaction(
        db,
        user_id=transaction.user_id,
        type="deposit",
        amount=transaction.amount,
        description=f"Wallet top-up, transaction #{transaction.id}",
    )
    db.commit()
    logger.info(f"Deposit {transaction.id} completed: {transaction.amount} credited to user {transaction.user_id}")
    return VerifyPaymentResult(transaction_id=transaction.id, total_paid=transaction.amount)


def complete_transaction(
    db: Session,
    transaction: Transaction,
    gateway_payment_id: Optional[str],
    gateway_signature: Optional[str],
    installment: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> VerifyPaymentResult:
    """
    Переводит аутентифицированную оплату в completed и запускает каскад.
    Подлинность подтверждения уже проверена вызывающим кодом.
    """
    now = now or now_utc()
    if transaction.status != "pending":
        logger.info(f"Transaction {transaction.id} is already {transaction.status}, verification is a no-op")
        return _current_figures(db, transaction)

    if not crud_transaction.mark_completed_if_pending(
        db, transaction.id, gateway_payment_id, gateway_signature, completed_at=now
    ):
        # Параллельное подтверждение успело раньше
        db.rollback()
        db.refresh(transaction)
        logger.info(f"Transaction {transaction.id} was verified concurrently")
        return _current_figures(db, transaction)
    db.flush()
    db.refresh(transaction)

    if transaction.type == "deposit":
        return _credit_deposit(db, transaction)

    payer_id = transaction.user_id
    payment_amount = transaction.amount
    order = transaction.order
    result = VerifyPaymentResult(transaction_id=transaction.id)

    if order is not None:
        total_paid, is_first_payment = apply_order_progress(db, order, payer_id)
        result.order_id = order.id
        result.total_paid = total_paid
        result.remaining_amount = max(0, order.order_amount - total_paid)
        result.is_first_payment = is_first_payment
    else:
        # Оплата без заказа считается первой
        result.is_first_payment = True
        result.total_paid = payment_amount

    db.commit()
    if order is not None:
        result.payment_status = order.payment_status
    logger.info(
        f"Transaction {transaction.id} completed: user {payer_id}, amount {payment_amount}, "
        f"order {result.order_id}, total paid {result.total_paid}"
    )

    steps = _run_cascade(
        db,
        payer_id=payer_id,
        payment_amount=payment_amount,
        order=order,
        is_first_payment=result.is_first_payment,
        payment_method=transaction.payment_method,
        installment=installment,
        now=now,
    )
    result.steps = _steps_out(steps)
    return result


def verify_payment(
    db: Session,
    transaction_id: Optional[int],
    confirmation: GatewayConfirmation,
    user_id: Optional[int] = None,
    installment: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> VerifyPaymentResult:
    """
    Проверяет подтверждение Razorpay Checkout и проводит оплату.

    Невалидная подпись или чужой gateway order id -> UpstreamError, транзакция остается pending.
    Повторная проверка уже проведенной транзакции ничего не меняет (already_verified=True).
    Ошибки комиссии и плана возвращаются в steps и не влияют на успех оплаты.
    """
    now = now or now_utc()

    transaction = crud_transaction.get_transaction(db, transaction_id) if transaction_id else None
    if transaction is None:
        # Клиент мог не передать ID, но заказ шлюза однозначно указывает на транзакцию
        transaction = crud_transaction.get_by_gateway_order_id(db, confirmation.razorpay_order_id)

    if transaction is None and user_id is None:
        raise ValidationError("User ID is required")

    if not verify_gateway_signature(
        confirmation.razorpay_order_id, confirmation.razorpay_payment_id, confirmation.razorpay_signature
    ):
        logger.warning(
            f"Invalid payment signature for gateway order {confirmation.razorpay_order_id} "
            f"(transaction {transaction.id if transaction else None})"
        )
        raise UpstreamError("Invalid payment signature")

    if transaction is not None:
        if user_id is not None and transaction.user_id != user_id:
            raise PermissionDeniedError("Transaction belongs to another user")
        if transaction.gateway_order_id and transaction.gateway_order_id != confirmation.razorpay_order_id:
            logger.warning(
                f"Gateway order mismatch for transaction {transaction.id}: "
                f"expected {transaction.gateway_order_id}, got {confirmation.razorpay_order_id}"
            )
            raise UpstreamError("Payment confirmation does not match the transaction")
        return complete_transaction(
            db,
            transaction,
            gateway_payment_id=confirmation.razorpay_payment_id,
            gateway_signature=confirmation.razorpay_signature,
            installment=installment,
            now=now,
        )

    # Запасной сценарий без транзакции. Подпись подтверждает сам платеж, но не его сумму:
    # сумма берется из присланных условий рассрочки и ограничивается максимальной дневной ставкой.
    payment_amount = int((installment or {}).get("daily_amount") or 0)
    if payment_amount <= 0:
        raise ValidationError("Installment daily amount is required")
    max_amount = max(settings.INSTALLMENT_DAILY_RATES or [settings.DEFAULT_DAILY_AMOUNT])
    if payment_amount > max_amount:
        logger.warning(f"Untracked payment amount {payment_amount} from user {user_id} capped to {max_amount}")
        payment_amount = max_amount
        installment = {**installment, "daily_amount": payment_amount}
    logger.warning(
        f"Verifying payment {confirmation.razorpay_payment_id} for user {user_id} without a transaction, "
        f"amount {payment_amount} taken from installment terms"
    )

    # Запись в леджере: повторное подтверждение того же заказа шлюза найдет ее и ничего не начислит
    transaction = crud_transaction.create_transaction(
        db,
        user_id=user_id,
        type="purchase",
        amount=payment_amount,
        payment_method="razorpay",
        status="completed",
        completed_at=now,
        gateway_order_id=confirmation.razorpay_order_id,
        gateway_payment_id=confirmation.razorpay_payment_id,
        gateway_signature=confirmation.razorpay_signature,
        description="Installment payment confirmed without a prepared transaction",
    )
    db.commit()
    db.refresh(transaction)

    steps = _run_cascade(
        db,
        payer_id=user_id,
        payment_amount=payment_amount,
        order=None,
        is_first_payment=True,
        payment_method="razorpay",
        installment=installment,
        now=now,
    )
    return VerifyPaymentResult(
        transaction_id=transaction.id,
        total_paid=payment_amount,
        is_first_payment=True,
        steps=_steps_out(steps),
    )


def confirm_captured_payment(
    db: Session,
    gateway_order_id: str,
    gateway_payment_id: str,
    now: Optional[datetime] = None,
) -> Optional[VerifyPaymentResult]:
    """
    Событие payment.captured из вебхука (тело уже проверено по подписи вебхука).
    Возвращает None, если транзакции под этот заказ шлюза нет.
    """
    transaction = crud_transaction.get_by_gateway_order_id(db, gateway_order_id)
    if transaction is None:
        logger.warning(f"Webhook: no transaction for gateway order {gateway_order_id}")
        return None
    return complete_transaction(db, transaction, gateway_payment_id=gateway_payment_id, gateway_signature=None, now=now)
