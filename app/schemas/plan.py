# app/schemas/plan.py
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class PlanProductEntry(BaseModel):
    id: int
    product_id: int
    daily_payment: int
    total_product_amount: int
    paid_amount: int
    status: str
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    delivery_address: Optional[dict] = None
    payment_method: str

    class Config:
        from_attributes = True


class PlanRead(BaseModel):
    id: int
    user_id: int
    total_amount: int
    completed_amount: int
    products: List[PlanProductEntry]

    class Config:
        from_attributes = True


class PlanProductDetail(PlanProductEntry):
    product_name: str
    remaining_amount: int
    equivalent_days: int
    order_id: Optional[int] = None
    order_payment_status: Optional[str] = None


class PendingPlanProduct(BaseModel):
    plan_id: int
    product_id: int
    product_name: str
    price: int
    daily_payment: int
    total_product_amount: int


class PlanProductCreate(BaseModel):
    product_id: int
    daily_payment: int = Field(..., gt=0)
    delivery_address: Optional[dict] = None
    payment_method: str = "card"


class PlanProductAdded(BaseModel):
    product_id: int
    name: str
    price: int
    daily_payment: int
    requires_initial_payment: bool = True


class PlanProductRemoved(BaseModel):
    message: str
    plan_deleted: bool
