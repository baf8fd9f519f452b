from pydantic import BaseModel, Field, StrictInt
from datetime import datetime
from typing import List, Literal, Optional


class DepositRequest(BaseModel):
    amount: StrictInt = Field(gt=0, description="Amount in kobo")
    reference: Optional[str] = Field(default=None, min_length=1, max_length=100)


class DepositResponse(BaseModel):
    reference: str
    authorization_url: Optional[str] = None
    message: Optional[str] = None


class DepositStatus(BaseModel):
    reference: str
    status: str
    amount: int


class BalanceResponse(BaseModel):
    balance: int


class TransferRequest(BaseModel):
    amount: StrictInt = Field(gt=0)
    wallet_number: str = Field(min_length=1)


class TransferResult(BaseModel):
    status: Literal["success", "failed"]
    message: str


class TransactionItem(BaseModel):
    type: str
    amount: int
    status: str

    class Config:
        from_attributes = True


class TransactionList(BaseModel):
    transactions: List[TransactionItem]


class ChargeData(BaseModel):
    id: Optional[int | str] = None
    reference: str
    status: str
    amount: int = Field(gt=0)
    paid_at: Optional[datetime] = None


class PaystackEvent(BaseModel):
    event: str
    data: dict = Field(default_factory=dict)
