from sqlmodel import Session, select
from sqlalchemy import func
from app.models.custody import CustodyRecord, ConsumptionRecord, MATERIAL_KINDS
from app.models.deduction import DeductionSummary, UnreturnedItem
from app.utils.money import to_money, ZERO
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class DeductionService:
    def __init__(self, session: Session):
        self.session = session

    def calculate_deductions(self, worker_id: UUID) -> DeductionSummary:
        """
        Values everything the worker still holds at its unit price.

        Consumption is summed from the consumption records themselves, not the
        cached counter on the custody record. Materials and supplies count as
        material deductions, tools as tool deductions. Read only: calling it
        twice on unchanged data gives the same summary.
        """
        consumed = (
            select(
                ConsumptionRecord.custody_record_id.label("custody_record_id"),
                func.sum(ConsumptionRecord.quantity_used).label("used"),
            )
            .where(ConsumptionRecord.worker_id == worker_id)
            .group_by(ConsumptionRecord.custody_record_id)
            .subquery()
        )
        statement = (
            select(CustodyRecord, func.coalesce(consumed.c.used, 0))
            .outerjoin(consumed, consumed.c.custody_record_id == CustodyRecord.id)
            .where(CustodyRecord.worker_id == worker_id)
            .order_by(CustodyRecord.assigned_at, CustodyRecord.id)
        )

        material_total = ZERO
        tool_total = ZERO
        items = []
        flagged = []
        for record, used in self.session.exec(statement).all():
            unreturned = record.quantity_assigned - int(used) - record.quantity_returned
            if unreturned < 0:
                logger.warning(
                    "Custody record %s of worker %s has negative unreturned quantity %d, counting 0",
                    record.id, worker_id, unreturned)
                flagged.append(record.id)
                continue
            if unreturned == 0:
                continue

            line_value = to_money(record.unit_price * unreturned)
            if record.item_kind in MATERIAL_KINDS:
                material_total += line_value
            else:
                tool_total += line_value
            items.append(UnreturnedItem(
                custody_record_id=record.id,
                item_name=record.item_name,
                item_kind=record.item_kind,
                unreturned_quantity=unreturned,
                unit_price=record.unit_price,
                line_value=line_value,
            ))

        return DeductionSummary(
            worker_id=worker_id,
            material_deductions=material_total,
            tool_deductions=tool_total,
            total_deductions=material_total + tool_total,
            unreturned_items=items,
            flagged_items=flagged,
        )
