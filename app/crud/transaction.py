# app/crud/transaction.py

from datetime import datetime
from typing import List
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.models.transaction import Transaction


def create_transaction(
    db: Session,
    user_id: int,
    type: str,
    amount: int,
    payment_method: str,
    status: str = "pending",
    completed_at: datetime | None = None,
    gateway_order_id: str | None = None,
    gateway_payment_id: str | None = None,
    gateway_signature: str | None = None,
    order_id: int | None = None,
    product_id: int | None = None,
    plan_id: int | None = None,
    description: str | None = None,
) -> Transaction:
    """
    Создает транзакцию и добавляет ее в сессию.
    Требует внешнего вызова db.commit().
    """
    transaction = Transaction(
        user_id=user_id,
        type=type,
        amount=amount,
        status=status,
        completed_at=completed_at,
        payment_method=payment_method,
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        gateway_signature=gateway_signature,
        order_id=order_id,
        product_id=product_id,
        plan_id=plan_id,
        description=description,
    )
    db.add(transaction)
    return transaction

def get_transaction(db: Session, transaction_id: int) -> Transaction | None:
    return db.query(Transaction).filter(Transaction.id == transaction_id).first()

def get_by_gateway_order_id(db: Session, gateway_order_id: str) -> Transaction | None:
    """Находит транзакцию, созданную под конкретный заказ платежного шлюза."""
    return db.query(Transaction).filter(
        Transaction.gateway_order_id == gateway_order_id
    ).order_by(Transaction.id.desc()).first()

def mark_completed_if_pending(
    db: Session,
    transaction_id: int,
    gateway_payment_id: str | None,
    gateway_signature: str | None,
    completed_at: datetime,
) -> bool:
    """
    Compare-and-swap: pending -> completed одним UPDATE.
    Из двух параллельных подтверждений выигрывает только одно.
    """
    values = {
        Transaction.status: "completed",
        Transaction.completed_at: completed_at,
        Transaction.updated_at: func.now(),
    }
    if gateway_payment_id:
        values[Transaction.gateway_payment_id] = gateway_payment_id
    if gateway_signature:
        values[Transaction.gateway_signature] = gateway_signature
    updated = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.status == "pending"
    ).update(values, synchronize_session=False)
    return updated == 1

def get_completed_for_product(db: Session, user_id: int, product_id: int) -> List[Transaction]:
    """Все завершенные платежи пользователя по товару, от новых к старым."""
    return db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.product_id == product_id,
        Transaction.status == "completed"
    ).order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()

def get_completed_purchases_between(
    db: Session, user_id: int, start: datetime, end: datetime, order_id: int | None = None
) -> List[Transaction]:
    """Завершенные покупки пользователя в окне [start, end)."""
    query = db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.type == "purchase",
        Transaction.status == "completed",
        Transaction.completed_at >= start,
        Transaction.completed_at < end
    )
    if order_id is not None:
        query = query.filter(Transaction.order_id == order_id)
    return query.all()


def expire_pending_older_than(db: Session, cutoff: datetime) -> int:
    """Помечает failed все pending-транзакции шлюза, созданные раньше cutoff."""
    return db.query(Transaction).filter(
        Transaction.status == "pending",
        Transaction.payment_method == "razorpay",
        Transaction.created_at < cutoff
    ).update(
        {Transaction.status: "failed", Transaction.updated_at: func.now()},
        synchronize_session=False
    )

def cancel_pending_for_order(db: Session, order_id: int) -> int:
    """Отменяет все незавершенные оплаты по заказу."""
    return db.query(Transaction).filter(
        Transaction.order_id == order_id,
        Transaction.status == "pending"
    ).update(
        {Transaction.status: "cancelled", Transaction.updated_at: func.now()},
        synchronize_session=False
    )

def get_completed_purchases_for_order(db: Session, order_id: int) -> List[Transaction]:
    return db.query(Transaction).filter(
        Transaction.order_id == order_id,
        Transaction.type == "purchase",
        Transaction.status == "completed"
    ).order_by(Transaction.id).all()
