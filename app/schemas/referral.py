# app/schemas/referral.py
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class ReferralCode(BaseModel):
    referral_code: str


class ApplyReferralCode(BaseModel):
    code: str = Field(..., min_length=8, max_length=8)


class ReferralStats(BaseModel):
    total_referrals: int
    pending_referrals: int   # Код привязан, покупок еще не было
    active_referrals: int
    completed_referrals: int
    total_earnings: int      # Сумма выплаченных комиссий
    total_withdrawn: int
    available_balance: int   # Текущий баланс кошелька


class ReferralSummary(BaseModel):
    id: int
    referred_user_id: int
    referred_user_name: Optional[str] = None
    status: str
    daily_amount: int
    days: int
    days_paid: int
    commission_earned: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CommissionRead(BaseModel):
    id: int
    amount: int
    date: date
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReferralProgress(BaseModel):
    days_paid: int
    progress_percent: int


class ReferralDetails(ReferralSummary):
    referrer_id: int
    total_amount: int
    commission_percentage: int
    last_payment_date: Optional[datetime] = None
    days_remaining: int
    progress: ReferralProgress
    transactions: List[CommissionRead]


class MissedPaymentDays(BaseModel):
    referral_id: int
    total_days_since_start: int
    expected_payment_days: int
    actual_paid_days: int
    missed_days: int
    original_end_date: Optional[datetime] = None
    current_end_date: Optional[datetime] = None


class FriendPurchase(BaseModel):
    order_id: int
    product_id: int
    product_name: Optional[str] = None
    order_amount: int
    payment_option: str
    payment_status: str
    order_status: str
    total_duration: Optional[int] = None  # в днях
    date_of_purchase: Optional[datetime] = None


class ReferredUserDetails(BaseModel):
    """Карточка приглашенного друга для пригласившего."""
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    referral_id: int
    status: str
    commission_per_day: int
    days: int
    days_paid: int
    total_commission: int
    total_products: int
    products: List[FriendPurchase]
