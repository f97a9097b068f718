from sqlmodel import SQLModel, Field
from sqlalchemy import CheckConstraint
from datetime import datetime
from decimal import Decimal
from uuid import UUID


class WorkerAccount(SQLModel, table=True):
    """Running earnings of one washer. total_earned only ever grows."""
    __tablename__ = "worker_account"
    __table_args__ = (
        CheckConstraint("total_earned >= 0", name="ck_account_earned_non_negative"),
        CheckConstraint("total_paid_out >= 0", name="ck_account_paid_non_negative"),
    )

    worker_id: UUID = Field(primary_key=True)
    total_earned: Decimal = Field(
        default=Decimal("0.00"), max_digits=14, decimal_places=2)
    total_paid_out: Decimal = Field(
        default=Decimal("0.00"), max_digits=14, decimal_places=2)
    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )


class WorkerEarningsRead(SQLModel):
    worker_id: UUID
    total_earned: Decimal
    total_paid_out: Decimal
    available_balance: Decimal
