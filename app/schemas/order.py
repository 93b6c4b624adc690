# app/schemas/order.py
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime

from app.schemas.payment import ChargeIntent, TransactionRead


class PaymentDetailsIn(BaseModel):
    """Условия оплаты, которые клиент выбирает при оформлении."""
    daily_amount: Optional[int] = Field(None, gt=0)
    monthly_amount: Optional[int] = Field(None, gt=0)
    number_of_months: Optional[int] = Field(None, gt=0)


class OrderCreate(BaseModel):
    product_id: int
    payment_option: Literal["daily", "monthly", "upfront"]
    payment_details: PaymentDetailsIn = PaymentDetailsIn()
    delivery_address: Optional[dict] = None


class OrderRead(BaseModel):
    id: int
    user_id: int
    product_id: int
    order_amount: int
    payment_option: str
    daily_amount: Optional[int] = None
    monthly_amount: Optional[int] = None
    number_of_months: Optional[int] = None
    total_duration: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    order_status: str
    payment_status: str
    delivery_address: Optional[dict] = None
    delivery_status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderCreated(BaseModel):
    message: str = "Order created successfully"
    order: OrderRead
    # Первый платеж по дневной рассрочке
    payment: Optional[ChargeIntent] = None


class OrderPaymentStatus(BaseModel):
    order_id: int
    product_id: int
    order_amount: int
    payment_option: str
    payment_status: str
    order_status: str
    total_paid: int
    remaining_amount: int
    transactions: List[TransactionRead]
    next_payment_due: bool


class NextPaymentInfo(BaseModel):
    can_make_payment: bool
    message: str
    next_payment_date: Optional[datetime] = None
    suggested_amount: Optional[int] = None
    total_paid: int = 0
    remaining_amount: int = 0
    payments_made: int = 0
