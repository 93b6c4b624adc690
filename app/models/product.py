# app/models/product.py
from sqlalchemy import Boolean, Column, Integer, String, func

from app.db.session import Base
from app.db.types import TZDateTime

class Product(Base):
    """Витрина каталога. Ядро только читает цену и название."""
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, server_default="true")
    created_at = Column(TZDateTime, server_default=func.now())
