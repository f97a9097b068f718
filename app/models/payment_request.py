from sqlmodel import SQLModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4


class PaymentRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


# The only legal moves; paid is reachable from approved and nothing else
ALLOWED_TRANSITIONS = {
    PaymentRequestStatus.PENDING: (PaymentRequestStatus.APPROVED, PaymentRequestStatus.REJECTED),
    PaymentRequestStatus.APPROVED: (PaymentRequestStatus.PAID,),
    PaymentRequestStatus.REJECTED: (),
    PaymentRequestStatus.PAID: (),
}


class PaymentRequest(SQLModel, table=True):
    __tablename__ = "payment_request"
    id: Optional[UUID] = Field(
        default_factory=uuid4, primary_key=True, unique=True)
    worker_id: UUID = Field(index=True)
    requested_amount: Decimal = Field(max_digits=12, decimal_places=2)
    # Set on approval; may be less than requested
    approved_amount: Optional[Decimal] = Field(
        default=None, max_digits=12, decimal_places=2)
    # Withdrawable earnings at creation time
    total_earnings_snapshot: Decimal = Field(max_digits=14, decimal_places=2)
    material_deductions: Decimal = Field(
        default=Decimal("0.00"), max_digits=12, decimal_places=2)
    tool_deductions: Decimal = Field(
        default=Decimal("0.00"), max_digits=12, decimal_places=2)
    status: PaymentRequestStatus = Field(
        default=PaymentRequestStatus.PENDING, index=True)
    is_advance: bool = Field(default=False)
    approver_id: Optional[UUID] = Field(default=None)
    approval_timestamp: Optional[datetime] = Field(default=None)
    paid_at: Optional[datetime] = Field(default=None)
    payment_reference: Optional[str] = Field(default=None, max_length=120)
    payment_method: Optional[str] = Field(default=None, max_length=40)
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )

    @property
    def payable_amount(self) -> Decimal:
        """What a payout of this request transfers"""
        if self.approved_amount is not None:
            return self.approved_amount
        return self.requested_amount

    @property
    def total_deductions(self) -> Decimal:
        return self.material_deductions + self.tool_deductions


class PaymentRequestRead(SQLModel):
    """Payment request as returned to the request layer"""
    id: UUID
    worker_id: UUID
    requested_amount: Decimal
    approved_amount: Optional[Decimal] = None
    total_earnings_snapshot: Decimal
    material_deductions: Decimal
    tool_deductions: Decimal
    status: PaymentRequestStatus
    is_advance: bool
    approver_id: Optional[UUID] = None
    approval_timestamp: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

