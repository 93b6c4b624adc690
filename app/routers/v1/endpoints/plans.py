# app/routers/v1/endpoints/plans.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.plan import (
    PendingPlanProduct,
    PlanProductAdded,
    PlanProductCreate,
    PlanProductDetail,
    PlanProductRemoved,
    PlanRead,
)
from app.services import plan as plan_service

router = APIRouter()


@router.get("/plans/me", response_model=PlanRead)
def get_current_plan(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """План пользователя, только активные позиции."""
    return plan_service.get_current_plan(db, current_user.id)


@router.get("/plans/pending", response_model=List[PendingPlanProduct])
def get_pending_products(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return plan_service.get_pending_products(db, current_user.id)


@router.post("/plans/products", response_model=PlanProductAdded, status_code=status.HTTP_201_CREATED)
def add_product_to_plan(
    product_data: PlanProductCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return plan_service.add_product_to_plan(
        db,
        current_user.id,
        product_data.product_id,
        product_data.daily_payment,
        delivery_address=product_data.delivery_address,
        payment_method=product_data.payment_method,
    )


@router.get("/plans/{plan_id}/products/{product_id}", response_model=PlanProductDetail)
def get_plan_product_detail(
    plan_id: int,
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return plan_service.get_plan_product_detail(db, current_user.id, plan_id, product_id)


@router.delete("/plans/{plan_id}/products/{product_id}", response_model=PlanProductRemoved)
def remove_product_from_plan(
    plan_id: int,
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    plan_deleted = plan_service.remove_product_from_plan(db, current_user.id, plan_id, product_id)
    message = "Plan deleted as no products remain" if plan_deleted else "Product removed from plan successfully"
    return PlanProductRemoved(message=message, plan_deleted=plan_deleted)
