# app/services/installments.py

import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import List

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.crud import product as crud_product
from app.schemas.installment import InstallmentOption, ProductInstallmentOptions
from app.utils.dates import now_utc

logger = logging.getLogger(__name__)


def _to_price(price) -> Decimal | None:
    # bool - подкласс int, но ценой не является
    if isinstance(price, bool):
        return None
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not value.is_finite():
        return None
    # Деньги храним в целых единицах валюты
    value = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if value <= 0:
        return None
    return value


def generate_installment_options(price, now: datetime | None = None) -> List[InstallmentOption]:
    """
    Строит меню вариантов рассрочки для цены.

    Для каждой ставки из settings.INSTALLMENT_DAILY_RATES:
      periods = ceil(price / rate)
      final_payment = price - rate * (periods - 1)
    Последний платеж забирает остаток, поэтому сумма всех платежей ровно равна цене.
    Рекомендуется вариант с минимальной ставкой.
    Для цены <= 0 или нечисловой возвращается пустой список, это не ошибка.
    """
    value = _to_price(price)
    if value is None:
        return []

    start_date = now or now_utc()
    rates = sorted(settings.INSTALLMENT_DAILY_RATES)
    options = []
    for rate in rates:
        periods = int((value / rate).to_integral_value(rounding=ROUND_CEILING))
        periods = max(periods, 1)
        final_payment = value - rate * (periods - 1)
        options.append(InstallmentOption(
            amount=rate,
            periods=periods,
            total_amount=int(value),
            final_payment=int(final_payment),
            start_date=start_date,
            end_date=start_date + timedelta(days=periods),
            is_recommended=(rate == rates[0]),
        ))
    return options


def get_product_installment_options(db: Session, product_id: int, now: datetime | None = None) -> ProductInstallmentOptions:
    product = crud_product.get_product(db, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    options = generate_installment_options(product.price, now=now)
    if not options:
        logger.warning(f"Product {product_id} has non-positive price {product.price}, no installment options")
    return ProductInstallmentOptions(
        product_id=product.id,
        product_name=product.name,
        price=product.price,
        options=options,
    )
