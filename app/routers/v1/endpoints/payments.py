# app/routers/v1/endpoints/payments.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.payment import VerifyPaymentRequest, VerifyPaymentResult
from app.services import payment as payment_service

router = APIRouter()


@router.post("/payments/verify", response_model=VerifyPaymentResult)
@limiter.limit(settings.PAYMENT_RATE_LIMIT)
def verify_payment(
    request: Request,
    verify_data: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Подтверждение оплаты из Razorpay Checkout.
    Успех определяется только самой оплатой: сбой начисления комиссии или
    обновления плана виден в steps, но не делает ответ ошибкой.
    """
    installment = verify_data.installment.model_dump(exclude_none=True) if verify_data.installment else None
    return payment_service.verify_payment(
        db,
        transaction_id=verify_data.transaction_id,
        confirmation=verify_data,
        user_id=current_user.id,
        installment=installment,
    )
