"""
Request bodies for every state change the engine accepts.

Each transition gets its own closed model instead of a free-form dict that is
merged into a row; unknown fields are rejected. Range checks (quantity > 0,
amount > 0 ...) stay in the services so that in-process callers get the same
typed errors as HTTP callers.
"""
from typing import Optional, List, Literal
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from app.models.custody import ItemKind


class Command(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AssignCustody(Command):
    kind: Literal["assign_custody"] = "assign_custody"
    worker_id: UUID
    item_name: str
    item_kind: ItemKind
    quantity: int
    unit_price: Decimal
    notes: Optional[str] = None


class RecordConsumption(Command):
    kind: Literal["record_consumption"] = "record_consumption"
    custody_record_id: UUID
    job_id: UUID
    quantity_used: int


class MaterialUsage(Command):
    item_name: str
    item_kind: ItemKind = ItemKind.MATERIAL
    quantity_used: int


class RecordJobMaterials(Command):
    kind: Literal["record_job_materials"] = "record_job_materials"
    job_id: UUID
    worker_id: UUID
    materials: List[MaterialUsage] = Field(min_length=1)


class RecordReturn(Command):
    kind: Literal["record_return"] = "record_return"
    custody_record_id: UUID
    quantity_returned: int


class CreditEarnings(Command):
    kind: Literal["credit_earnings"] = "credit_earnings"
    worker_id: UUID
    amount: Decimal


class CreatePaymentRequest(Command):
    kind: Literal["create_payment_request"] = "create_payment_request"
    requested_amount: Decimal
    notes: Optional[str] = None
    is_advance: bool = False


class ApprovePaymentRequest(Command):
    kind: Literal["approve_payment_request"] = "approve_payment_request"
    approved_amount: Optional[Decimal] = None
    admin_notes: Optional[str] = None


class RejectPaymentRequest(Command):
    kind: Literal["reject_payment_request"] = "reject_payment_request"
    admin_notes: Optional[str] = None


class PayPaymentRequest(Command):
    kind: Literal["pay_payment_request"] = "pay_payment_request"
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, max_length=40)
