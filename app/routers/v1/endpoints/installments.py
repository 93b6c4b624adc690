# app/routers/v1/endpoints/installments.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.installment import InstallmentOption, ProductInstallmentOptions
from app.services import installments as installments_service

router = APIRouter()


@router.get("/installments/options", response_model=List[InstallmentOption])
def get_installment_options(price: float = Query(..., description="Цена товара")):
    """
    Меню вариантов рассрочки для цены. Для цены <= 0 - пустой список.
    """
    return installments_service.generate_installment_options(price)


@router.get("/products/{product_id}/installments", response_model=ProductInstallmentOptions)
def get_product_installment_options(product_id: int, db: Session = Depends(get_db)):
    return installments_service.get_product_installment_options(db, product_id)
