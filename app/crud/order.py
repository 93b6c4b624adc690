# app/crud/order.py
from sqlalchemy.orm import Session
from app.models.order import Order

def create_order(db: Session, **fields) -> Order:
    """Добавляет заказ в сессию. Требует внешнего вызова db.commit()."""
    order = Order(**fields)
    db.add(order)
    return order

def get_order(db: Session, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()

def get_user_orders(db: Session, user_id: int, skip: int = 0, limit: int = 20) -> list[Order]:
    return db.query(Order).filter(Order.user_id == user_id).order_by(Order.id.desc()).offset(skip).limit(limit).all()
