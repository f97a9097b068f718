from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List
from enum import Enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4


class CheckInStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


# Statuses in which the line items can no longer change
CLOSED_STATUSES = (CheckInStatus.COMPLETED, CheckInStatus.PAID)


class CheckIn(SQLModel, table=True):
    __tablename__ = "check_in"
    id: Optional[UUID] = Field(
        default_factory=uuid4, primary_key=True, unique=True)
    assigned_worker_id: Optional[UUID] = Field(default=None, index=True)
    status: CheckInStatus = Field(default=CheckInStatus.PENDING)
    completed_at: Optional[datetime] = Field(default=None)
    company_income: Optional[Decimal] = Field(
        default=None, max_digits=12, decimal_places=2)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )

    # Relationships
    services: List["CheckInService"] = Relationship(
        back_populates="check_in",
        sa_relationship_kwargs={"order_by": "CheckInService.position"}
    )


class CheckInService(SQLModel, table=True):
    __tablename__ = "check_in_service"
    id: Optional[int] = Field(default=None, primary_key=True)
    check_in_id: UUID = Field(foreign_key="check_in.id", index=True)
    service_id: Optional[int] = Field(default=None, foreign_key="service.id")
    position: int = Field(default=0)
    price: Optional[Decimal] = Field(
        default=None, max_digits=12, decimal_places=2)
    # Copied from the service catalog when the check-in is completed
    commission_percentage: Optional[Decimal] = Field(
        default=None, max_digits=5, decimal_places=2)
    company_commission_percentage: Optional[Decimal] = Field(
        default=None, max_digits=5, decimal_places=2)

    check_in: Optional[CheckIn] = Relationship(back_populates="services")
