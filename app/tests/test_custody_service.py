import sqlite3
import pytest
from decimal import Decimal
from uuid import uuid4
from sqlalchemy import update
from sqlmodel import Session, select

from app.core.exceptions import (
    InvalidQuantity,
    InvalidPrice,
    ValidationError,
    InsufficientCustody,
    OverReturn,
    CustodyRecordNotFound,
    CustodyIntegrityError,
    JobNotFound,
    PermissionDenied,
    StoreUnavailable,
)
from app.models.commands import MaterialUsage
from app.core.db import build_engine
from app.models.custody import CustodyRecord, ConsumptionRecord, ItemKind
from app.services.custody_service import CustodyLedgerService


def assign_sponges(session, worker_id, quantity=10):
    return CustodyLedgerService(session).assign(
        worker_id, "Sponge", ItemKind.MATERIAL, quantity, Decimal("50.00"))


def test_assign_starts_with_nothing_consumed_or_returned(session, worker_id):
    record = assign_sponges(session, worker_id)
    assert record.quantity_assigned == 10
    assert record.quantity_consumed == 0
    assert record.quantity_returned == 0
    assert record.remaining_quantity == 10
    assert not record.is_fully_returned


@pytest.mark.parametrize("quantity", [0, -3, True])
def test_assign_rejects_bad_quantity(session, worker_id, quantity):
    with pytest.raises(InvalidQuantity):
        CustodyLedgerService(session).assign(
            worker_id, "Sponge", ItemKind.MATERIAL, quantity, Decimal("50.00"))


def test_assign_rejects_non_positive_price(session, worker_id):
    with pytest.raises(InvalidPrice):
        CustodyLedgerService(session).assign(
            worker_id, "Sponge", ItemKind.MATERIAL, 1, Decimal("0"))


def test_assign_rejects_blank_name_and_unknown_kind(session, worker_id):
    service = CustodyLedgerService(session)
    with pytest.raises(ValidationError):
        service.assign(worker_id, "  ", ItemKind.TOOL, 1, Decimal("10"))
    with pytest.raises(ValidationError):
        service.assign(worker_id, "Hose", "gadget", 1, Decimal("10"))


def test_consumption_reduces_remaining_and_keeps_assigned(session, worker_id):
    service = CustodyLedgerService(session)
    record = assign_sponges(session, worker_id)
    consumption = service.record_consumption(record.id, uuid4(), 3)

    record = service.get(record.id)
    assert consumption.quantity_used == 3
    assert consumption.worker_id == worker_id
    assert record.quantity_assigned == 10
    assert record.quantity_consumed == 3
    assert record.remaining_quantity == 7
    assert service.consumed_total(record.id) == 3
    assert record.version == 2


def test_consumption_beyond_remaining_fails(session, worker_id):
    service = CustodyLedgerService(session)
    record = assign_sponges(session, worker_id, quantity=2)
    with pytest.raises(InsufficientCustody):
        service.record_consumption(record.id, uuid4(), 3)
    assert service.get(record.id).quantity_consumed == 0
    assert service.consumed_total(record.id) == 0


def test_consumption_of_unknown_record_fails(session):
    with pytest.raises(CustodyRecordNotFound):
        CustodyLedgerService(session).record_consumption(uuid4(), uuid4(), 1)


def test_consumption_rejects_non_positive_quantity(session, worker_id):
    record = assign_sponges(session, worker_id)
    with pytest.raises(InvalidQuantity):
        CustodyLedgerService(session).record_consumption(record.id, uuid4(), 0)


def test_return_is_bounded_by_what_was_not_consumed(session, worker_id):
    service = CustodyLedgerService(session)
    record = assign_sponges(session, worker_id)
    service.record_consumption(record.id, uuid4(), 3)
    service.record_return(record.id, 2)

    with pytest.raises(OverReturn):
        service.record_return(record.id, 6)

    record = service.record_return(record.id, 5)
    assert record.remaining_quantity == 0
    assert record.is_fully_returned
    assert record.returned_at is not None


def test_counters_never_exceed_assigned(session, worker_id):
    service = CustodyLedgerService(session)
    record = assign_sponges(session, worker_id, quantity=5)
    steps = [("consume", 2), ("return", 1), ("consume", 3), ("return", 2), ("consume", 1), ("return", 1)]
    for action, quantity in steps:
        try:
            if action == "consume":
                service.record_consumption(record.id, uuid4(), quantity)
            else:
                service.record_return(record.id, quantity)
        except (InsufficientCustody, OverReturn):
            pass
        current = service.get(record.id)
        assert current.quantity_consumed + current.quantity_returned <= current.quantity_assigned
        assert service.verify_integrity(current) == current.quantity_consumed

    final = service.get(record.id)
    assert (final.quantity_consumed, final.quantity_returned) == (2, 3)


def test_two_consumptions_race_for_the_last_unit(engine, session, other_session, worker_id):
    record_id = assign_sponges(session, worker_id, quantity=1).id
    winner = CustodyLedgerService(other_session)
    loser = CustodyLedgerService(session)

    read = loser._get_record
    competed = []

    def read_then_let_winner_consume(custody_record_id):
        record = read(custody_record_id)
        if not competed:
            competed.append(True)
            winner.record_consumption(custody_record_id, uuid4(), 1)
        return record

    loser._get_record = read_then_let_winner_consume
    with pytest.raises(InsufficientCustody):
        loser.record_consumption(record_id, uuid4(), 1)

    record = winner.get(record_id)
    other_session.refresh(record)
    assert record.quantity_consumed == 1
    assert winner.consumed_total(record_id) == 1


def test_corrupted_counter_blocks_further_consumption(session, worker_id):
    service = CustodyLedgerService(session)
    record = assign_sponges(session, worker_id)
    service.record_consumption(record.id, uuid4(), 2)

    session.execute(
        update(CustodyRecord)
        .where(CustodyRecord.id == record.id)
        .values(quantity_consumed=0)
    )
    session.commit()

    with pytest.raises(CustodyIntegrityError):
        service.record_consumption(record.id, uuid4(), 1)
    assert service.consumed_total(record.id) == 2


def test_available_for_lists_only_records_with_units_left(session, worker_id):
    service = CustodyLedgerService(session)
    spent = assign_sponges(session, worker_id, quantity=1)
    service.record_consumption(spent.id, uuid4(), 1)
    kept = service.assign(worker_id, "Vacuum", ItemKind.TOOL, 1, Decimal("900.00"))
    service.assign(uuid4(), "Vacuum", ItemKind.TOOL, 1, Decimal("900.00"))

    assert [r.id for r in service.available_for(worker_id)] == [kept.id]
    assert service.find_available(worker_id, "Vacuum", ItemKind.TOOL).id == kept.id
    with pytest.raises(CustodyRecordNotFound):
        service.find_available(worker_id, "vacuum", ItemKind.TOOL)


def test_job_materials_are_all_or_nothing(session, worker_id, make_check_in):
    service = CustodyLedgerService(session)
    wax = service.assign(worker_id, "Wax", ItemKind.SUPPLY, 2, Decimal("30.00"))
    sponge = assign_sponges(session, worker_id, quantity=5)
    job_id = make_check_in(worker_id, [(Decimal("1000"), Decimal("20"), None)], status="in_progress").id

    with pytest.raises(InsufficientCustody):
        service.record_job_materials(job_id, worker_id, [
            MaterialUsage(item_name="Sponge", quantity_used=2),
            MaterialUsage(item_name="Wax", item_kind=ItemKind.SUPPLY, quantity_used=3),
        ])
    assert service.get(sponge.id).quantity_consumed == 0
    assert service.get(wax.id).quantity_consumed == 0

    consumptions = service.record_job_materials(job_id, worker_id, [
        MaterialUsage(item_name="Sponge", quantity_used=2),
        MaterialUsage(item_name="Wax", item_kind=ItemKind.SUPPLY, quantity_used=2),
    ])
    assert [c.job_id for c in consumptions] == [job_id, job_id]
    assert service.get(sponge.id).remaining_quantity == 3
    assert service.get(wax.id).remaining_quantity == 0


def test_job_materials_require_an_existing_check_in(session, worker_id):
    service = CustodyLedgerService(session)
    sponge = assign_sponges(session, worker_id, quantity=5)

    with pytest.raises(JobNotFound):
        service.record_job_materials(uuid4(), worker_id, [
            MaterialUsage(item_name="Sponge", quantity_used=1),
        ])
    assert service.get(sponge.id).quantity_consumed == 0
    assert session.exec(select(ConsumptionRecord)).all() == []


def test_job_materials_require_the_check_in_of_the_same_washer(session, worker_id, make_check_in):
    service = CustodyLedgerService(session)
    sponge = assign_sponges(session, worker_id, quantity=5)
    someone_elses = make_check_in(uuid4(), [(Decimal("1000"), Decimal("20"), None)], status="in_progress")
    unassigned = make_check_in(None, [(Decimal("1000"), Decimal("20"), None)], status="pending")

    for check_in in (someone_elses, unassigned):
        with pytest.raises(PermissionDenied):
            service.record_job_materials(check_in.id, worker_id, [
                MaterialUsage(item_name="Sponge", quantity_used=1),
            ])
    assert service.get(sponge.id).quantity_consumed == 0
    assert session.exec(select(ConsumptionRecord)).all() == []


def test_job_materials_spread_over_batches_oldest_first(session, worker_id, make_check_in):
    service = CustodyLedgerService(session)
    first = assign_sponges(session, worker_id, quantity=2)
    second = assign_sponges(session, worker_id, quantity=5)
    job_id = make_check_in(worker_id, [(Decimal("1000"), Decimal("20"), None)]).id

    consumptions = service.record_job_materials(job_id, worker_id, [
        MaterialUsage(item_name="Sponge", quantity_used=4),
    ])

    assert [(c.custody_record_id, c.quantity_used) for c in consumptions] == [
        (first.id, 2), (second.id, 2)]
    assert service.get(first.id).remaining_quantity == 0
    assert service.get(second.id).remaining_quantity == 3

    with pytest.raises(InsufficientCustody):
        service.record_job_materials(job_id, worker_id, [
            MaterialUsage(item_name="Sponge", quantity_used=2),
            MaterialUsage(item_name="Sponge", quantity_used=2),
        ])
    assert service.get(second.id).remaining_quantity == 3


def test_locked_store_surfaces_as_retryable_failure(engine, tmp_path, worker_id):
    path = tmp_path / "carwash_test.db"
    impatient = build_engine(f"sqlite:///{path}", timeout=0.1)
    blocker = sqlite3.connect(str(path), isolation_level=None)
    blocker.execute("BEGIN EXCLUSIVE")
    try:
        with Session(impatient) as session:
            with pytest.raises(StoreUnavailable) as exc_info:
                assign_sponges(session, worker_id, quantity=5)
            assert exc_info.value.retryable is True
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()
        impatient.dispose()

    with Session(engine) as session:
        assert session.exec(select(CustodyRecord)).all() == []
