# app/crud/referral.py
from sqlalchemy.orm import Session
from app.models.referral import Referral

def create_referral(db: Session, referrer_id: int, referred_user_id: int, **terms) -> Referral:
    """Добавляет реферальную связь в сессию. Требует внешнего вызова db.commit()."""
    db_referral = Referral(referrer_id=referrer_id, referred_user_id=referred_user_id, **terms)
    db.add(db_referral)
    return db_referral

def get_referral(db: Session, referral_id: int) -> Referral | None:
    return db.query(Referral).filter(Referral.id == referral_id).first()

def get_referral_by_referred_user_id(db: Session, referred_user_id: int) -> Referral | None:
    """Находит реферальную связь по ID приглашенного пользователя."""
    return db.query(Referral).filter(Referral.referred_user_id == referred_user_id).first()

def get_referrals_by_referrer(db: Session, referrer_id: int) -> list[Referral]:
    return db.query(Referral).filter(Referral.referrer_id == referrer_id).order_by(Referral.id.desc()).all()
