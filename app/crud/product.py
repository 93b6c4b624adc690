# app/crud/product.py
from sqlalchemy.orm import Session
from app.models.product import Product

def get_product(db: Session, product_id: int) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()
