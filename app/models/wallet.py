# app/models/wallet.py
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.db.types import TZDateTime

class WalletTransaction(Base):
    """Журнал кошелька. Только добавление записей."""
    __tablename__ = "wallet_transactions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # 'referral_commission', 'deposit', 'withdrawal', 'refund', 'purchase', 'bonus'
    type = Column(String, nullable=False)

    # Положительное число - начисление, отрицательное - списание
    amount = Column(Integer, nullable=False)
    description = Column(String, nullable=False, default="", server_default="")

    user = relationship("User", back_populates="wallet_transactions")
    created_at = Column(TZDateTime, server_default=func.now(), nullable=False)
