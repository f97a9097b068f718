from sqlmodel import SQLModel
from typing import List
from decimal import Decimal
from uuid import UUID

from app.models.custody import ItemKind


class UnreturnedItem(SQLModel):
    custody_record_id: UUID
    item_name: str
    item_kind: ItemKind
    unreturned_quantity: int
    unit_price: Decimal
    line_value: Decimal


class DeductionSummary(SQLModel):
    """What a worker owes for items still out of the warehouse."""
    worker_id: UUID
    material_deductions: Decimal
    tool_deductions: Decimal
    total_deductions: Decimal
    unreturned_items: List[UnreturnedItem] = []
    # Records whose counters gave a negative unreturned quantity (clamped to 0)
    flagged_items: List[UUID] = []
