# tests/v1/test_orders.py

import httpx
import pytest
from httpx import AsyncClient
from unittest.mock import MagicMock

from app.crud import transaction as crud_transaction
from app.crud import wallet as crud_wallet
from app.models.order import Order
from app.models.user import User
from tests.conftest import auth_headers_for, sign_payment

pytestmark = pytest.mark.asyncio


async def _create_daily_order(client, headers, product, daily_amount=100):
    payload = {
        "product_id": product.id,
        "payment_option": "daily",
        "payment_details": {"daily_amount": daily_amount},
    }
    response = await client.post("/api/v1/orders", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _verify(client, headers, payment):
    gateway_order_id = payment["gateway_order_id"]
    payload = {
        "transaction_id": payment["transaction_id"],
        "razorpay_order_id": gateway_order_id,
        "razorpay_payment_id": f"pay_{gateway_order_id}",
        "razorpay_signature": sign_payment(gateway_order_id, f"pay_{gateway_order_id}"),
    }
    return await client.post("/api/v1/payments/verify", json=payload, headers=headers)


async def test_daily_order_returns_first_charge_intent(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    data = await _create_daily_order(client, auth_headers, product)

    assert data["order"]["total_duration"] == 10
    assert data["order"]["payment_status"] == "pending"
    assert data["payment"]["gateway_order_id"] == "order_test_1"
    # Шлюзу сумма уходит в пайсах
    assert data["payment"]["amount"] == 10000
    assert data["payment"]["key_id"] == "rzp_test_key"
    mock_razorpay.assert_awaited_once()
    assert mock_razorpay.await_args.kwargs["amount_minor"] == 10000


async def test_pay_verify_and_check_status(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    data = await _create_daily_order(client, auth_headers, product)
    order_id = data["order"]["id"]

    response = await _verify(client, auth_headers, data["payment"])
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["success"] is True
    assert result["is_first_payment"] is True
    assert result["payment_status"] == "partial"

    status_response = await client.get(f"/api/v1/orders/{order_id}/payment-status", headers=auth_headers)
    status_data = status_response.json()
    assert status_data["total_paid"] == 100
    assert status_data["remaining_amount"] == 900
    assert status_data["order_status"] == "confirmed"
    assert len(status_data["transactions"]) == 1

    next_payment = (await client.get(f"/api/v1/orders/{order_id}/next-payment", headers=auth_headers)).json()
    assert next_payment["can_make_payment"] is False
    assert next_payment["payments_made"] == 1

    # Второй платеж в тот же бизнес-день запрещен
    second = await client.post(
        f"/api/v1/orders/{order_id}/installment-payment", json={"daily_amount": 100}, headers=auth_headers
    )
    assert second.status_code == 409

    plan = (await client.get("/api/v1/plans/me", headers=auth_headers)).json()
    assert plan["completed_amount"] == 100
    assert plan["products"][0]["product_id"] == product.id


async def test_verify_with_bad_signature_is_rejected(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock, db_session
):
    data = await _create_daily_order(client, auth_headers, product)
    payload = {
        "transaction_id": data["payment"]["transaction_id"],
        "razorpay_order_id": data["payment"]["gateway_order_id"],
        "razorpay_payment_id": "pay_forged",
        "razorpay_signature": "forged",
    }

    response = await client.post("/api/v1/payments/verify", json=payload, headers=auth_headers)

    assert response.status_code == 502
    transaction = crud_transaction.get_transaction(db_session, data["payment"]["transaction_id"])
    assert transaction.status == "pending"


async def test_installment_payment_for_unpaid_day(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    data = await _create_daily_order(client, auth_headers, product)

    response = await client.post(
        f"/api/v1/orders/{data['order']['id']}/installment-payment", json={"daily_amount": 150}, headers=auth_headers
    )

    assert response.status_code == 200, response.text
    assert response.json()["amount"] == 15000
    assert mock_razorpay.await_count == 2


async def test_gateway_outage_is_reported(client: AsyncClient, auth_headers: dict, product, mocker):
    mocker.patch(
        "app.clients.razorpay.razorpay_client.create_order",
        side_effect=httpx.ConnectError("gateway down"),
    )

    payload = {"product_id": product.id, "payment_option": "daily", "payment_details": {"daily_amount": 100}}
    response = await client.post("/api/v1/orders", json=payload, headers=auth_headers)

    assert response.status_code == 502


async def test_daily_order_requires_daily_amount(client: AsyncClient, auth_headers: dict, product):
    payload = {"product_id": product.id, "payment_option": "daily"}
    response = await client.post("/api/v1/orders", json=payload, headers=auth_headers)
    assert response.status_code == 400


async def test_monthly_order_derives_missing_terms(client: AsyncClient, auth_headers: dict, product):
    payload = {"product_id": product.id, "payment_option": "monthly", "payment_details": {"number_of_months": 4}}
    response = await client.post("/api/v1/orders", json=payload, headers=auth_headers)

    assert response.status_code == 201, response.text
    order = response.json()["order"]
    assert order["monthly_amount"] == 250
    assert order["total_duration"] == 120
    assert response.json()["payment"] is None


async def test_upfront_order_paid_from_wallet(
    client: AsyncClient, db_session, make_user, product
):
    buyer = make_user(wallet_balance=1500)

    payload = {"product_id": product.id, "payment_option": "upfront"}
    response = await client.post("/api/v1/orders", json=payload, headers=auth_headers_for(buyer))

    assert response.status_code == 201, response.text
    order = response.json()["order"]
    assert order["payment_status"] == "completed"
    assert crud_wallet.get_balance(db_session, buyer.id) == 500
    completed = crud_transaction.get_completed_for_product(db_session, buyer.id, product.id)
    assert [(t.payment_method, t.amount) for t in completed] == [("wallet", 1000)]


async def test_upfront_order_with_insufficient_balance(
    client: AsyncClient, db_session, auth_headers: dict, test_user: User, product
):
    payload = {"product_id": product.id, "payment_option": "upfront"}
    response = await client.post("/api/v1/orders", json=payload, headers=auth_headers)

    assert response.status_code == 409
    assert db_session.query(Order).count() == 0


async def test_cancel_unpaid_order(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock, db_session
):
    data = await _create_daily_order(client, auth_headers, product)
    order_id = data["order"]["id"]

    response = await client.put(f"/api/v1/orders/{order_id}/cancel", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["order_status"] == "cancelled"
    transaction = crud_transaction.get_transaction(db_session, data["payment"]["transaction_id"])
    db_session.refresh(transaction)
    assert transaction.status == "cancelled"


async def test_cancel_after_payment_is_rejected(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    data = await _create_daily_order(client, auth_headers, product)
    await _verify(client, auth_headers, data["payment"])

    response = await client.put(f"/api/v1/orders/{data['order']['id']}/cancel", headers=auth_headers)

    assert response.status_code == 409


async def test_order_of_another_user_is_forbidden(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock, make_user
):
    data = await _create_daily_order(client, auth_headers, product)
    stranger = make_user()

    response = await client.get(f"/api/v1/orders/{data['order']['id']}", headers=auth_headers_for(stranger))

    assert response.status_code == 403


async def test_orders_require_authentication(client: AsyncClient):
    response = await client.get("/api/v1/orders")
    assert response.status_code in (401, 403)


async def test_installment_options_endpoint(client: AsyncClient, product):
    response = await client.get("/api/v1/installments/options", params={"price": 3399})
    assert response.status_code == 200
    first = response.json()[0]
    assert (first["amount"], first["periods"], first["final_payment"]) == (100, 34, 99)

    per_product = await client.get(f"/api/v1/products/{product.id}/installments")
    assert per_product.json()["price"] == 1000


async def test_monthly_order_installments(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    payload = {"product_id": product.id, "payment_option": "monthly", "payment_details": {"number_of_months": 4}}
    order_id = (await client.post("/api/v1/orders", json=payload, headers=auth_headers)).json()["order"]["id"]

    response = await client.post(f"/api/v1/orders/{order_id}/installment-payment", json={}, headers=auth_headers)
    assert response.status_code == 200, response.text
    payment = response.json()
    # Сумма из условий заказа, а не из запроса
    assert payment["amount"] == 25000

    verified = await _verify(client, auth_headers, payment)
    assert verified.status_code == 200, verified.text
    assert verified.json()["payment_status"] == "partial"
    assert verified.json()["total_paid"] == 250

    # Второй взнос в том же 30-дневном периоде запрещен
    second = await client.post(
        f"/api/v1/orders/{order_id}/installment-payment", json={"daily_amount": 250}, headers=auth_headers
    )
    assert second.status_code == 409

    next_payment = (await client.get(f"/api/v1/orders/{order_id}/next-payment", headers=auth_headers)).json()
    assert next_payment["can_make_payment"] is False
    assert next_payment["remaining_amount"] == 750

    plan = (await client.get("/api/v1/plans/me", headers=auth_headers)).json()
    assert plan["products"][0]["paid_amount"] == 250


async def test_upfront_order_is_added_to_plan(client: AsyncClient, make_user, product):
    buyer = make_user(wallet_balance=1500)
    headers = auth_headers_for(buyer)

    response = await client.post(
        "/api/v1/orders", json={"product_id": product.id, "payment_option": "upfront"}, headers=headers
    )
    assert response.status_code == 201, response.text

    plan = (await client.get("/api/v1/plans/me", headers=headers)).json()
    assert plan["completed_amount"] == 1000
    entry = plan["products"][0]
    assert entry["product_id"] == product.id
    assert entry["status"] == "completed"
    assert entry["payment_method"] == "wallet"


async def test_order_views_agree_on_total_paid(
    client: AsyncClient, auth_headers: dict, product, mock_razorpay: MagicMock
):
    first = await _create_daily_order(client, auth_headers, product)
    await _verify(client, auth_headers, first["payment"])
    # Тот же товар заказан повторно
    second = await _create_daily_order(client, auth_headers, product)
    order_id = second["order"]["id"]

    status_data = (await client.get(f"/api/v1/orders/{order_id}/payment-status", headers=auth_headers)).json()
    next_payment = (await client.get(f"/api/v1/orders/{order_id}/next-payment", headers=auth_headers)).json()

    assert status_data["total_paid"] == next_payment["total_paid"] == 100
    assert status_data["remaining_amount"] == next_payment["remaining_amount"] == 900
