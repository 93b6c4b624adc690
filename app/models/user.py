# app/models/user.py

from sqlalchemy import Column, Integer, String, ForeignKey, func
from sqlalchemy.orm import relationship
from .referral import Referral
from app.db.session import Base
from app.db.types import TZDateTime

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # UID из внешнего сервиса авторизации (Firebase)
    auth_uid = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    referral_code = Column(String(8), unique=True, index=True, nullable=True)
    referred_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Баланс меняется только атомарным UPDATE (см. crud/wallet.py), никогда присваиванием
    wallet_balance = Column(Integer, default=0, nullable=False, server_default="0")

    created_at = Column(TZDateTime, server_default=func.now(), nullable=False)

    referred_by = relationship("User", remote_side=[id], foreign_keys=[referred_by_id])
    # Связи для реферальной системы
    # Кто пригласил этого пользователя
    referrer_link = relationship("Referral", foreign_keys="Referral.referred_user_id", back_populates="referred_user", uselist=False)
    # Кого пригласил этот пользователь
    referrals = relationship("Referral", foreign_keys="Referral.referrer_id", back_populates="referrer")
    wallet_transactions = relationship("WalletTransaction", back_populates="user", order_by="WalletTransaction.id.desc()")
