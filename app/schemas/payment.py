# app/schemas/payment.py
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class GatewayConfirmation(BaseModel):
    """Подписанное подтверждение оплаты от Razorpay Checkout."""
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class InstallmentTerms(BaseModel):
    """Условия рассрочки, которые клиент присылает в запасном сценарии без транзакции."""
    daily_amount: Optional[int] = Field(None, gt=0)
    days: Optional[int] = Field(None, gt=0)
    total_amount: Optional[int] = Field(None, gt=0)


class VerifyPaymentRequest(GatewayConfirmation):
    transaction_id: Optional[int] = None
    installment: Optional[InstallmentTerms] = None


class CascadeStep(BaseModel):
    name: str
    ok: bool
    skipped: bool = False
    error: Optional[str] = None


class VerifyPaymentResult(BaseModel):
    success: bool = True
    transaction_id: Optional[int] = None
    order_id: Optional[int] = None
    payment_status: Optional[str] = None
    total_paid: int = 0
    remaining_amount: int = 0
    is_first_payment: bool = False
    already_verified: bool = False
    steps: List[CascadeStep] = []


class ChargeIntent(BaseModel):
    """Ответ клиенту для открытия Razorpay Checkout."""
    gateway_order_id: str
    amount: int          # в минорных единицах (пайсы)
    currency: str
    transaction_id: int
    key_id: str


class InstallmentPaymentCreate(BaseModel):
    # Для месячного заказа сумма берется из его условий и поле не нужно
    daily_amount: Optional[int] = Field(None, ge=1)


class TransactionRead(BaseModel):
    id: int
    type: str
    amount: int
    status: str
    payment_method: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    order_id: Optional[int] = None
    product_id: Optional[int] = None
    description: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
