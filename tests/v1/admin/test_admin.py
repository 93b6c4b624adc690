# tests/v1/admin/test_admin.py

from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.crud import referral as crud_referral
from app.schemas.wallet import WithdrawalCreate
from app.services import wallet as wallet_service
from app.utils.dates import now_utc

pytestmark = pytest.mark.asyncio


async def test_admin_routes_require_admin(client: AsyncClient, auth_headers: dict):
    response = await client.get("/api/v1/admin/tasks", headers=auth_headers)
    assert response.status_code == 403


async def test_list_tasks(client: AsyncClient, admin_auth_headers: dict):
    response = await client.get("/api/v1/admin/tasks", headers=admin_auth_headers)

    assert response.status_code == 200
    names = {task["task_name"] for task in response.json()}
    assert names == {"daily_commission_sweep", "expire_stale_transactions", "reconcile_referrals"}


async def test_run_task_in_background(client: AsyncClient, admin_auth_headers: dict, mocker):
    sweep = mocker.patch("app.services.commission_sweep.daily_commission_sweep_task")

    response = await client.post(
        "/api/v1/admin/tasks/run", json={"task_name": "daily_commission_sweep"}, headers=admin_auth_headers
    )

    assert response.status_code == 202
    sweep.assert_called_once()


async def test_run_sweep_now(client: AsyncClient, db_session, admin_auth_headers: dict, referrer, referred_user):
    now = now_utc()
    referral = crud_referral.create_referral(
        db_session, referrer_id=referrer.id, referred_user_id=referred_user.id, status="ACTIVE",
        start_date=now - timedelta(days=2), end_date=now + timedelta(days=28), commission_earned=0,
    )
    db_session.commit()

    response = await client.post("/api/v1/admin/tasks/daily-commission-sweep", headers=admin_auth_headers)

    assert response.status_code == 200
    assert response.json()["extended"] == 1
    second = await client.post("/api/v1/admin/tasks/daily-commission-sweep", headers=admin_auth_headers)
    assert second.json()["extended"] == 0
    db_session.refresh(referral)
    assert referral.last_swept_on is not None


async def test_fail_withdrawal_refunds(client: AsyncClient, db_session, admin_auth_headers: dict, make_user):
    earner = make_user(wallet_balance=300)
    withdrawal = wallet_service.request_withdrawal(
        db_session, earner, WithdrawalCreate(amount=200, payment_method="UPI", payment_details={"upi_id": "e@upi"})
    )

    response = await client.put(
        f"/api/v1/admin/withdrawals/{withdrawal.id}/status", json={"status": "FAILED"}, headers=admin_auth_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "FAILED"
    db_session.refresh(earner)
    assert earner.wallet_balance == 300
