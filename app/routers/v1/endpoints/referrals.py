# app/routers/v1/endpoints/referrals.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.referral import (
    ApplyReferralCode,
    MissedPaymentDays,
    ReferralCode,
    ReferralDetails,
    ReferralStats,
    ReferralSummary,
    ReferredUserDetails,
)
from app.services import referral as referral_service

router = APIRouter()


@router.get("/referrals/code", response_model=ReferralCode)
def get_my_referral_code(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Реферальный код пользователя. Генерируется при первом запросе."""
    return referral_service.get_my_referral_code(db, current_user)


@router.post("/referrals/apply", response_model=ReferralSummary, status_code=status.HTTP_201_CREATED)
def apply_referral_code(
    apply_data: ApplyReferralCode,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return referral_service.apply_referral_code(db, current_user, apply_data.code)


@router.get("/referrals/stats", response_model=ReferralStats)
def get_referral_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return referral_service.get_referral_stats(db, current_user)


@router.get("/referrals", response_model=List[ReferralSummary])
def list_referrals(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return referral_service.list_referrals(db, current_user)


@router.get("/referrals/friends/{referred_user_id}", response_model=ReferredUserDetails)
def get_referred_user_details(
    referred_user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Карточка приглашенного друга: условия, заработанные комиссии, его покупки."""
    return referral_service.get_referred_user_details(db, current_user.id, referred_user_id)


@router.get("/referrals/{referral_id}", response_model=ReferralDetails)
def get_referral_details(
    referral_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return referral_service.get_referral_details(db, current_user.id, referral_id)


@router.get("/referrals/{referral_id}/missed-days", response_model=MissedPaymentDays)
def get_missed_payment_days(
    referral_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return referral_service.get_missed_payment_days(db, current_user.id, referral_id)
