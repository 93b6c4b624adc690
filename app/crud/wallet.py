# app/crud/wallet.py

from typing import List
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.wallet import WalletTransaction


def create_wallet_transaction(
    db: Session,
    user_id: int,
    type: str,
    amount: int,
    description: str = ""
) -> WalletTransaction:
    """
    Создает запись журнала кошелька и добавляет ее в сессию.
    Требует внешнего вызова db.commit().
    """
    entry = WalletTransaction(user_id=user_id, type=type, amount=amount, description=description)
    db.add(entry)
    return entry

def increment_balance(db: Session, user_id: int, amount: int) -> bool:
    """
    Атомарно увеличивает баланс (UPDATE ... SET balance = balance + :amount).
    Чтение-изменение-запись в Python здесь недопустимо: параллельные начисления потеряются.
    """
    updated = db.query(User).filter(User.id == user_id).update(
        {User.wallet_balance: User.wallet_balance + amount}, synchronize_session=False
    )
    return updated == 1

def decrement_balance_if_sufficient(db: Session, user_id: int, amount: int) -> bool:
    """
    Атомарное списание с проверкой баланса в том же UPDATE.
    Возвращает False, если денег не хватило (строка не обновилась).
    """
    updated = db.query(User).filter(
        User.id == user_id,
        User.wallet_balance >= amount
    ).update({User.wallet_balance: User.wallet_balance - amount}, synchronize_session=False)
    return updated == 1

def get_balance(db: Session, user_id: int) -> int:
    balance = db.query(User.wallet_balance).filter(User.id == user_id).scalar()
    return balance or 0

def get_wallet_transactions(db: Session, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
    """Журнал кошелька от новых к старым."""
    return db.query(WalletTransaction).filter(
        WalletTransaction.user_id == user_id
    ).order_by(WalletTransaction.id.desc()).offset(skip).limit(limit).all()
