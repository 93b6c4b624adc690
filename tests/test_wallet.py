# tests/test_wallet.py

import pydantic
import pytest

from app.core.exceptions import ConflictError, ValidationError
from app.crud import withdrawal as crud_withdrawal
from app.models.wallet import WalletTransaction
from app.schemas.wallet import WithdrawalCreate
from app.services import wallet as wallet_service


@pytest.fixture
def rich_user(make_user):
    return make_user(name="Earner", wallet_balance=500)


def _upi(amount):
    return WithdrawalCreate(amount=amount, payment_method="UPI", payment_details={"upi_id": "earner@upi"})


def test_withdrawal_debits_balance_immediately(db_session, rich_user):
    withdrawal = wallet_service.request_withdrawal(db_session, rich_user, _upi(200))

    db_session.refresh(rich_user)
    assert withdrawal.status == "PENDING"
    assert rich_user.wallet_balance == 300
    entry = db_session.query(WalletTransaction).filter(WalletTransaction.user_id == rich_user.id).one()
    assert (entry.type, entry.amount) == ("withdrawal", -200)


def test_withdrawal_below_minimum_is_rejected(db_session, rich_user):
    with pytest.raises(ValidationError):
        wallet_service.request_withdrawal(db_session, rich_user, _upi(50))


def test_withdrawal_over_balance_is_rejected(db_session, rich_user):
    wallet_service.request_withdrawal(db_session, rich_user, _upi(400))

    with pytest.raises(ConflictError):
        wallet_service.request_withdrawal(db_session, rich_user, _upi(200))

    db_session.refresh(rich_user)
    assert rich_user.wallet_balance == 100
    assert len(crud_withdrawal.get_user_withdrawals(db_session, rich_user.id)) == 1


def test_bank_withdrawal_requires_account_details():
    with pytest.raises(pydantic.ValidationError):
        WithdrawalCreate(amount=200, payment_method="BANK", payment_details={"account_number": "123"})
    with pytest.raises(pydantic.ValidationError):
        WithdrawalCreate(amount=200, payment_method="UPI", payment_details={})


def test_failed_withdrawal_refunds_wallet(db_session, rich_user):
    withdrawal = wallet_service.request_withdrawal(db_session, rich_user, _upi(200))

    updated = wallet_service.update_withdrawal_status(db_session, withdrawal.id, "FAILED")

    db_session.refresh(rich_user)
    assert updated.status == "FAILED"
    assert updated.processed_at is not None
    assert rich_user.wallet_balance == 500
    types = [e.type for e in wallet_service.get_wallet(db_session, rich_user).transactions]
    assert types == ["refund", "withdrawal"]


def test_final_status_cannot_change(db_session, rich_user):
    withdrawal = wallet_service.request_withdrawal(db_session, rich_user, _upi(200))
    wallet_service.update_withdrawal_status(db_session, withdrawal.id, "PROCESSING")
    wallet_service.update_withdrawal_status(db_session, withdrawal.id, "COMPLETED", gateway_reference="pout_1")

    # Повтор того же финального статуса ничего не меняет
    same = wallet_service.update_withdrawal_status(db_session, withdrawal.id, "COMPLETED")
    assert same.gateway_reference == "pout_1"

    with pytest.raises(ConflictError):
        wallet_service.update_withdrawal_status(db_session, withdrawal.id, "FAILED")
    db_session.refresh(rich_user)
    assert rich_user.wallet_balance == 300
