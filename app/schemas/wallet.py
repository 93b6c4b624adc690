# app/schemas/wallet.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator


class WalletTransactionRead(BaseModel):
    id: int
    type: str
    amount: int
    description: str
    created_at: datetime

    class Config:
        from_attributes = True


class WalletRead(BaseModel):
    balance: int
    transactions: List[WalletTransactionRead]


class WithdrawalCreate(BaseModel):
    amount: int
    payment_method: Literal["UPI", "BANK"]
    payment_details: dict = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_payment_details(self):
        # Для UPI нужен upi_id, для банка - номер счета и IFSC
        if self.payment_method == "UPI" and not self.payment_details.get("upi_id"):
            raise ValueError("upi_id is required for UPI withdrawals")
        if self.payment_method == "BANK":
            missing = [k for k in ("account_number", "ifsc_code") if not self.payment_details.get(k)]
            if missing:
                raise ValueError(f"Missing bank details: {', '.join(missing)}")
        return self


class WithdrawalRead(BaseModel):
    id: int
    user_id: int
    amount: int
    status: str
    payment_method: str
    payment_details: dict
    gateway_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WithdrawalStatusUpdate(BaseModel):
    status: Literal["PENDING", "PROCESSING", "COMPLETED", "FAILED"]
    gateway_reference: Optional[str] = None


class DepositCreate(BaseModel):
    amount: int = Field(..., ge=1)
