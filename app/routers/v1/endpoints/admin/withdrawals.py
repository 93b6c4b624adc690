# app/routers/v1/endpoints/admin/withdrawals.py

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.wallet import WithdrawalRead, WithdrawalStatusUpdate
from app.services import wallet as wallet_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put("/{withdrawal_id}/status", response_model=WithdrawalRead)
def update_withdrawal_status_endpoint(
    withdrawal_id: int,
    update_data: WithdrawalStatusUpdate,
    db: Session = Depends(get_db),
):
    """
    [АДМИН] Меняет статус заявки на вывод. FAILED возвращает деньги в кошелек.
    """
    return wallet_service.update_withdrawal_status(
        db, withdrawal_id, update_data.status, gateway_reference=update_data.gateway_reference
    )
