# app/schemas/installment.py
from datetime import datetime
from typing import List, Literal
from pydantic import BaseModel


class InstallmentOption(BaseModel):
    """Один вариант рассрочки из меню ставок."""
    amount: int                  # Ежедневный платеж
    periods: int                 # Сколько платежей всего
    period_unit: Literal["day"] = "day"
    total_amount: int            # Всегда равно цене товара
    final_payment: int           # Последний платеж, забирает остаток
    start_date: datetime
    end_date: datetime
    is_recommended: bool = False


class ProductInstallmentOptions(BaseModel):
    product_id: int
    product_name: str
    price: int
    options: List[InstallmentOption]
