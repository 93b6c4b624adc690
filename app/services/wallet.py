# app/services/wallet.py

import logging
from datetime import datetime
from typing import List, Optional

import httpx
from sqlalchemy.orm import Session

from app.clients.razorpay import razorpay_client
from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, UpstreamError, ValidationError
from app.crud import transaction as crud_transaction
from app.crud import wallet as crud_wallet
from app.crud import withdrawal as crud_withdrawal
from app.models.user import User
from app.models.withdrawal import CommissionWithdrawal
from app.schemas.payment import ChargeIntent
from app.schemas.wallet import WalletRead, WalletTransactionRead, WithdrawalCreate, WithdrawalRead
from app.utils.dates import now_utc

logger = logging.getLogger(__name__)

# Из этих статусов заявку уже не сдвинуть
FINAL_WITHDRAWAL_STATUSES = ("COMPLETED", "FAILED")


def get_wallet(db: Session, user: User, skip: int = 0, limit: int = 50) -> WalletRead:
    entries = crud_wallet.get_wallet_transactions(db, user.id, skip=skip, limit=limit)
    return WalletRead(
        balance=crud_wallet.get_balance(db, user.id),
        transactions=[WalletTransactionRead.model_validate(e) for e in entries],
    )


async def create_deposit(db: Session, user: User, amount: int, now: Optional[datetime] = None) -> ChargeIntent:
    """
    Пополнение кошелька через Razorpay: заказ шлюза и pending-транзакция типа deposit.
    Баланс растет только после проверенного подтверждения оплаты (verify_payment или вебхук).
    """
    now = now or now_utc()
    receipt = f"dep_u{user.id}_{int(now.timestamp())}"[:40]
    try:
        gateway_order = await razorpay_client.create_order(
            amount_minor=amount * 100,
            currency=settings.PAYMENT_CURRENCY,
            receipt=receipt,
            notes={"user_id": str(user.id), "payment_type": "wallet_deposit"},
        )
    except httpx.HTTPError:
        logger.error(f"Failed to create Razorpay order for wallet deposit of user {user.id}", exc_info=True)
        raise UpstreamError("Payment gateway is unavailable, please try again later")

    transaction = crud_transaction.create_transaction(
        db,
        user_id=user.id,
        type="deposit",
        amount=amount,
        payment_method="razorpay",
        gateway_order_id=gateway_order["id"],
        description="Add money to wallet",
    )
    db.commit()
    db.refresh(transaction)
    logger.info(f"Wallet deposit {gateway_order['id']} of {amount} for user {user.id}, transaction {transaction.id}")
    return ChargeIntent(
        gateway_order_id=gateway_order["id"],
        amount=gateway_order.get("amount", amount * 100),
        currency=gateway_order.get("currency", settings.PAYMENT_CURRENCY),
        transaction_id=transaction.id,
        key_id=settings.RAZORPAY_KEY_ID,
    )


def request_withdrawal(db: Session, user: User, data: WithdrawalCreate) -> WithdrawalRead:
    """
    Заявка на вывод. Деньги списываются сразу, одним UPDATE с проверкой баланса,
    поэтому две параллельные заявки не уведут баланс в минус.
    """
    if data.amount < settings.MIN_WITHDRAWAL_AMOUNT:
        raise ValidationError(f"Minimum withdrawal amount is {settings.MIN_WITHDRAWAL_AMOUNT}")

    if not crud_wallet.decrement_balance_if_sufficient(db, user.id, data.amount):
        db.rollback()
        raise ConflictError("Withdrawal request failed: Insufficient balance.")

    withdrawal = crud_withdrawal.create_withdrawal(
        db,
        user_id=user.id,
        amount=data.amount,
        payment_method=data.payment_method,
        payment_details=data.payment_details,
    )
    db.flush()
    crud_wallet.create_wallet_transaction(
        db,
        user_id=user.id,
        type="withdrawal",
        amount=-data.amount,
        description=f"Withdrawal request #{withdrawal.id}",
    )
    db.commit()
    db.refresh(withdrawal)
    logger.info(f"User {user.id} requested withdrawal {withdrawal.id} of {data.amount} via {data.payment_method}")
    return WithdrawalRead.model_validate(withdrawal)


def list_withdrawals(db: Session, user: User) -> List[WithdrawalRead]:
    return [WithdrawalRead.model_validate(w) for w in crud_withdrawal.get_user_withdrawals(db, user.id)]


def update_withdrawal_status(
    db: Session,
    withdrawal_id: int,
    status: str,
    gateway_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WithdrawalRead:
    """
    Админская смена статуса заявки. COMPLETED и FAILED - финальные.
    FAILED возвращает сумму в кошелек пользователя.
    """
    now = now or now_utc()
    withdrawal = crud_withdrawal.get_withdrawal(db, withdrawal_id)
    if not withdrawal:
        raise NotFoundError("Withdrawal not found")
    if withdrawal.status in FINAL_WITHDRAWAL_STATUSES:
        if withdrawal.status == status:
            return WithdrawalRead.model_validate(withdrawal)
        raise ConflictError(f"Withdrawal is already {withdrawal.status}")

    values = {CommissionWithdrawal.status: status}
    if status in FINAL_WITHDRAWAL_STATUSES:
        values[CommissionWithdrawal.processed_at] = now
    if gateway_reference:
        values[CommissionWithdrawal.gateway_reference] = gateway_reference

    # Статус меняется только из того, что мы прочитали: двойной возврат невозможен
    updated = db.query(CommissionWithdrawal).filter(
        CommissionWithdrawal.id == withdrawal.id,
        CommissionWithdrawal.status == withdrawal.status
    ).update(values, synchronize_session=False)
    if updated != 1:
        db.rollback()
        raise ConflictError("Withdrawal status was changed concurrently, please retry")

    if status == "FAILED":
        crud_wallet.increment_balance(db, withdrawal.user_id, withdrawal.amount)
        crud_wallet.create_wallet_transaction(
            db,
            user_id=withdrawal.user_id,
            type="refund",
            amount=withdrawal.amount,
            description=f"Refund for failed withdrawal #{withdrawal.id}",
        )
        logger.info(f"Withdrawal {withdrawal.id} failed, {withdrawal.amount} refunded to user {withdrawal.user_id}")

    db.commit()
    db.refresh(withdrawal)
    logger.info(f"Withdrawal {withdrawal.id} status set to {status}")
    return WithdrawalRead.model_validate(withdrawal)
