# app/routers/v1/endpoints/wallet.py
from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.payment import ChargeIntent
from app.schemas.wallet import DepositCreate, WalletRead, WithdrawalCreate, WithdrawalRead
from app.services import wallet as wallet_service

router = APIRouter()


@router.get("/wallet", response_model=WalletRead)
def get_wallet(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Баланс кошелька и журнал движений."""
    return wallet_service.get_wallet(db, current_user, skip=skip, limit=limit)


@router.post("/wallet/deposits", response_model=ChargeIntent, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.PAYMENT_RATE_LIMIT)
async def create_deposit(
    request: Request,
    deposit_data: DepositCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Пополнение кошелька. Возвращает данные для Razorpay Checkout,
    деньги зачисляются после POST /payments/verify (или вебхука).
    """
    return await wallet_service.create_deposit(db, current_user, deposit_data.amount)


@router.post("/wallet/withdrawals", response_model=WithdrawalRead, status_code=status.HTTP_201_CREATED)
def request_withdrawal(
    withdrawal_data: WithdrawalCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return wallet_service.request_withdrawal(db, current_user, withdrawal_data)


@router.get("/wallet/withdrawals", response_model=List[WithdrawalRead])
def list_withdrawals(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return wallet_service.list_withdrawals(db, current_user)
