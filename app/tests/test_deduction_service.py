from decimal import Decimal
from uuid import uuid4
from sqlalchemy import update

from app.models.custody import CustodyRecord, ItemKind
from app.services.custody_service import CustodyLedgerService
from app.services.deduction_service import DeductionService


def test_unreturned_sponges_become_material_deductions(session, worker_id):
    custody = CustodyLedgerService(session)
    record = custody.assign(worker_id, "Sponge", ItemKind.MATERIAL, 10, Decimal("50.00"))
    custody.record_consumption(record.id, uuid4(), 3)
    custody.record_return(record.id, 2)

    summary = DeductionService(session).calculate_deductions(worker_id)

    assert summary.material_deductions == Decimal("250.00")
    assert summary.tool_deductions == Decimal("0.00")
    assert summary.total_deductions == Decimal("250.00")
    assert len(summary.unreturned_items) == 1
    assert summary.unreturned_items[0].unreturned_quantity == 5
    assert summary.flagged_items == []


def test_tools_and_materials_are_split(session, worker_id):
    custody = CustodyLedgerService(session)
    custody.assign(worker_id, "Pressure washer", ItemKind.TOOL, 1, Decimal("1200.00"))
    custody.assign(worker_id, "Wax", ItemKind.SUPPLY, 2, Decimal("35.50"))
    returned = custody.assign(worker_id, "Bucket", ItemKind.TOOL, 1, Decimal("80.00"))
    custody.record_return(returned.id, 1)

    summary = DeductionService(session).calculate_deductions(worker_id)

    assert summary.tool_deductions == Decimal("1200.00")
    assert summary.material_deductions == Decimal("71.00")
    assert summary.total_deductions == Decimal("1271.00")
    assert {item.item_name for item in summary.unreturned_items} == {"Pressure washer", "Wax"}


def test_worker_without_custody_owes_nothing(session):
    summary = DeductionService(session).calculate_deductions(uuid4())
    assert summary.total_deductions == Decimal("0.00")
    assert summary.unreturned_items == []


def test_calculation_is_idempotent(session, worker_id):
    custody = CustodyLedgerService(session)
    record = custody.assign(worker_id, "Towel", ItemKind.MATERIAL, 4, Decimal("12.25"))
    custody.record_consumption(record.id, uuid4(), 1)

    service = DeductionService(session)
    first = service.calculate_deductions(worker_id)
    second = service.calculate_deductions(worker_id)

    assert first == second
    assert custody.get(record.id).version == 2


def test_negative_unreturned_quantity_is_clamped_and_flagged(session, worker_id, caplog):
    custody = CustodyLedgerService(session)
    record = custody.assign(worker_id, "Sponge", ItemKind.MATERIAL, 5, Decimal("50.00"))
    custody.record_consumption(record.id, uuid4(), 4)
    session.execute(
        update(CustodyRecord)
        .where(CustodyRecord.id == record.id)
        .values(quantity_consumed=0, quantity_returned=5)
    )
    session.commit()

    summary = DeductionService(session).calculate_deductions(worker_id)

    assert summary.total_deductions == Decimal("0.00")
    assert summary.flagged_items == [record.id]
    assert "negative unreturned quantity" in caplog.text
