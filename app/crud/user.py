# app/crud/user.py
from sqlalchemy.orm import Session
from app.models.user import User


def get_user_by_id(db: Session, user_id: int) -> User | None:
    """Получает пользователя по его первичному ключу (ID в нашей БД)."""
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_referral_code(db: Session, code: str) -> User | None:
    return db.query(User).filter(User.referral_code == code).first()


def set_referred_by(db: Session, user_id: int, referrer_id: int) -> bool:
    """
    Привязывает пригласившего, только если привязки еще нет.
    Возвращает False, если пользователь уже был кем-то приглашен.
    """
    updated = db.query(User).filter(
        User.id == user_id,
        User.referred_by_id.is_(None)
    ).update({User.referred_by_id: referrer_id}, synchronize_session=False)
    return updated == 1
