from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint
from typing import Optional, List
from enum import Enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4


class ItemKind(str, Enum):
    MATERIAL = "material"
    TOOL = "tool"
    SUPPLY = "supply"


# Kinds charged as material deductions, everything else is a tool deduction
MATERIAL_KINDS = (ItemKind.MATERIAL, ItemKind.SUPPLY)


class CustodyRecord(SQLModel, table=True):
    __tablename__ = "custody_record"
    __table_args__ = (
        CheckConstraint("quantity_assigned > 0", name="ck_custody_assigned_positive"),
        CheckConstraint("quantity_consumed >= 0", name="ck_custody_consumed_non_negative"),
        CheckConstraint("quantity_returned >= 0", name="ck_custody_returned_non_negative"),
        CheckConstraint(
            "quantity_consumed + quantity_returned <= quantity_assigned",
            name="ck_custody_balance"),
    )

    id: Optional[UUID] = Field(
        default_factory=uuid4, primary_key=True, unique=True)
    worker_id: UUID = Field(index=True)
    item_name: str = Field(max_length=100)
    item_kind: ItemKind
    # Quantity issued to the worker; never rewritten after assignment
    quantity_assigned: int
    # Running sum of ConsumptionRecord.quantity_used, kept in step by the ledger
    quantity_consumed: int = Field(default=0)
    quantity_returned: int = Field(default=0)
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)
    notes: Optional[str] = None
    assigned_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    returned_at: Optional[datetime] = Field(default=None)
    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )

    # Relationships
    consumptions: List["ConsumptionRecord"] = Relationship(
        back_populates="custody_record")

    @property
    def remaining_quantity(self) -> int:
        return self.quantity_assigned - self.quantity_consumed - self.quantity_returned

    @property
    def is_fully_returned(self) -> bool:
        return self.remaining_quantity <= 0


class ConsumptionRecord(SQLModel, table=True):
    __tablename__ = "consumption_record"
    __table_args__ = (
        CheckConstraint("quantity_used > 0", name="ck_consumption_positive"),
    )

    id: Optional[UUID] = Field(
        default_factory=uuid4, primary_key=True, unique=True)
    custody_record_id: UUID = Field(
        foreign_key="custody_record.id", index=True, ondelete="RESTRICT")
    job_id: UUID = Field(index=True)
    worker_id: UUID = Field(index=True)
    quantity_used: int
    used_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    custody_record: Optional[CustodyRecord] = Relationship(
        back_populates="consumptions")


class CustodyRecordRead(SQLModel):
    id: UUID
    worker_id: UUID
    item_name: str
    item_kind: ItemKind
    quantity_assigned: int
    quantity_consumed: int
    quantity_returned: int
    remaining_quantity: int
    is_fully_returned: bool
    unit_price: Decimal
    notes: Optional[str] = None
    assigned_at: datetime
    returned_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: CustodyRecord) -> "CustodyRecordRead":
        return cls(
            id=record.id,
            worker_id=record.worker_id,
            item_name=record.item_name,
            item_kind=record.item_kind,
            quantity_assigned=record.quantity_assigned,
            quantity_consumed=record.quantity_consumed,
            quantity_returned=record.quantity_returned,
            remaining_quantity=record.remaining_quantity,
            is_fully_returned=record.is_fully_returned,
            unit_price=record.unit_price,
            notes=record.notes,
            assigned_at=record.assigned_at,
            returned_at=record.returned_at,
        )
