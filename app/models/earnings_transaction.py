from sqlmodel import SQLModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4


class EarningsTransactionType(str, Enum):
    COMMISSION = "COMMISSION"
    ADJUSTMENT = "ADJUSTMENT"
    PAYOUT = "PAYOUT"


class EarningsTransaction(SQLModel, table=True):
    """
    Audit trail of every change to a WorkerAccount.

    job_id is unique, so one completed check-in can be credited at most once.
    """
    __tablename__ = "earnings_transaction"
    id: Optional[UUID] = Field(
        default_factory=uuid4, primary_key=True, unique=True)
    worker_id: UUID = Field(index=True)
    type: EarningsTransactionType
    income: Decimal = Field(
        default=Decimal("0.00"), max_digits=12, decimal_places=2)
    expense: Decimal = Field(
        default=Decimal("0.00"), max_digits=12, decimal_places=2)
    job_id: Optional[UUID] = Field(default=None, unique=True)
    payment_request_id: Optional[UUID] = Field(
        default=None, foreign_key="payment_request.id")
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
