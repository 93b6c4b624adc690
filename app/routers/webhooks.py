# app/routers/webhooks.py

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.services import payment as payment_service

logger = logging.getLogger(__name__)

# --- Роутер для Razorpay ---
# Будет подключен в main.py С префиксом /internal/webhooks
razorpay_router = APIRouter()

# События, по которым оплата считается состоявшейся
CAPTURE_EVENTS = {"payment.captured", "order.paid"}


# --- Зависимость для проверки подписи Razorpay ---
async def verify_razorpay_signature(
    request: Request,
    x_razorpay_signature: str | None = Header(None)
):
    """
    Подпись вебхука проверяется всегда: без нее событие не принимается.
    """
    raw_body = await request.body()
    if not payment_service.verify_webhook_signature(raw_body, x_razorpay_signature):
        logger.warning("Razorpay webhook rejected: invalid or missing signature.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )
    logger.debug("Razorpay webhook signature verified successfully.")


@razorpay_router.post("/razorpay", dependencies=[Depends(verify_razorpay_signature)])
async def razorpay_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Подтверждает оплату по событию захвата платежа.
    Повторная доставка того же события ничего не меняет.
    """
    raw_body = await request.body()
    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError:
        logger.warning(f"Received Razorpay webhook with non-JSON payload: {raw_body.decode(errors='ignore')}")
        return {"status": "skipped", "reason": "invalid json"}

    event_type = event.get("event")
    if event_type not in CAPTURE_EVENTS:
        logger.info(f"Razorpay webhook event '{event_type}' is not handled. Skipping.")
        return {"status": "ignored", "event": event_type}

    payment_entity = (event.get("payload", {}).get("payment") or {}).get("entity") or {}
    gateway_order_id = payment_entity.get("order_id")
    gateway_payment_id = payment_entity.get("id")
    if not gateway_order_id or not gateway_payment_id:
        return {"status": "skipped", "reason": "missing payment entity"}

    result = payment_service.confirm_captured_payment(db, gateway_order_id, gateway_payment_id)
    if result is None:
        return {"status": "skipped", "reason": "unknown order"}

    logger.info(
        f"Razorpay webhook '{event_type}' for gateway order {gateway_order_id} processed, "
        f"already verified: {result.already_verified}"
    )
    return {"status": "ok", "transaction_id": result.transaction_id, "already_verified": result.already_verified}
