# app/crud/withdrawal.py
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.withdrawal import CommissionWithdrawal

def create_withdrawal(db: Session, user_id: int, amount: int, payment_method: str, payment_details: dict) -> CommissionWithdrawal:
    withdrawal = CommissionWithdrawal(
        user_id=user_id,
        amount=amount,
        payment_method=payment_method,
        payment_details=payment_details,
    )
    db.add(withdrawal)
    return withdrawal

def get_withdrawal(db: Session, withdrawal_id: int) -> CommissionWithdrawal | None:
    return db.query(CommissionWithdrawal).filter(CommissionWithdrawal.id == withdrawal_id).first()

def get_user_withdrawals(db: Session, user_id: int) -> list[CommissionWithdrawal]:
    return db.query(CommissionWithdrawal).filter(
        CommissionWithdrawal.user_id == user_id
    ).order_by(CommissionWithdrawal.id.desc()).all()

def sum_withdrawn(db: Session, user_id: int) -> int:
    """Сумма выводов, которые не завершились ошибкой."""
    total = db.query(func.sum(CommissionWithdrawal.amount)).filter(
        CommissionWithdrawal.user_id == user_id,
        CommissionWithdrawal.status != "FAILED"
    ).scalar()
    return total or 0
