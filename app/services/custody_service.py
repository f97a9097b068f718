from sqlmodel import Session, select
from sqlalchemy import func
from app.models.custody import CustodyRecord, ConsumptionRecord, ItemKind
from app.models.check_in import CheckIn
from app.models.commands import MaterialUsage
from app.core.transactions import atomic, compare_and_swap
from app.core.exceptions import (
    ValidationError,
    InvalidQuantity,
    InvalidPrice,
    InsufficientCustody,
    OverReturn,
    StaleWriteError,
    CustodyRecordNotFound,
    CustodyIntegrityError,
    JobNotFound,
    PermissionDenied,
)
from app.utils.money import to_money
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def _validate_quantity(quantity, field: str = "quantity"):
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(
            f"{field} must be a whole number greater than 0, got {quantity!r}")


class CustodyLedgerService:
    """
    Tools and materials handed to washers, and what happened to them.

    quantity_assigned never changes after issue. Consumption and returns are
    tracked in their own counters and every update is a compare-and-swap on
    the record version, so two writers can never both spend the same unit.
    """

    def __init__(self, session: Session):
        self.session = session

    def assign(
        self,
        worker_id: UUID,
        item_name: str,
        item_kind: ItemKind,
        quantity: int,
        unit_price: Decimal,
        notes: Optional[str] = None
    ) -> CustodyRecord:
        _validate_quantity(quantity)
        if isinstance(unit_price, float):
            raise InvalidPrice("Unit price must be a decimal amount, not a float")
        unit_price = to_money(unit_price)
        if unit_price <= 0:
            raise InvalidPrice(f"Unit price must be greater than 0, got {unit_price}")
        if not item_name or not item_name.strip():
            raise ValidationError("Item name is required")
        try:
            item_kind = ItemKind(item_kind)
        except ValueError:
            raise ValidationError(f"Unknown item kind: {item_kind!r}")

        record = CustodyRecord(
            worker_id=worker_id,
            item_name=item_name.strip(),
            item_kind=item_kind,
            quantity_assigned=quantity,
            unit_price=unit_price,
            notes=notes,
        )
        with atomic(self.session):
            self.session.add(record)
        self.session.refresh(record)
        logger.info(
            "Assigned %d x %s (%s) to worker %s, record %s",
            quantity, record.item_name, item_kind.value, worker_id, record.id)
        return record

    def _get_record(self, custody_record_id: UUID) -> CustodyRecord:
        record = self.session.get(CustodyRecord, custody_record_id)
        if not record:
            raise CustodyRecordNotFound(
                f"Custody record {custody_record_id} not found",
                custody_record_id=custody_record_id)
        return record

    def get(self, custody_record_id: UUID) -> CustodyRecord:
        return self._get_record(custody_record_id)

    def consumed_total(self, custody_record_id: UUID) -> int:
        """Sum of quantity_used over the consumption records of one custody record."""
        total = self.session.exec(
            select(func.coalesce(func.sum(ConsumptionRecord.quantity_used), 0))
            .where(ConsumptionRecord.custody_record_id == custody_record_id)
        ).one()
        return int(total)

    def verify_integrity(self, record: CustodyRecord) -> int:
        """
        Recomputes consumption from the consumption records and checks it
        against the record's counters. Returns the recomputed total.

        Raises:
            CustodyIntegrityError: the cached counter disagrees with the
                consumption records, or more was consumed and returned than
                was ever assigned.
        """
        # Counters and the sum are read in one statement so a concurrent
        # writer cannot make them disagree
        used = (
            select(func.coalesce(func.sum(ConsumptionRecord.quantity_used), 0))
            .where(ConsumptionRecord.custody_record_id == CustodyRecord.id)
            .scalar_subquery()
        )
        assigned, cached, returned, consumed = self.session.exec(
            select(
                CustodyRecord.quantity_assigned,
                CustodyRecord.quantity_consumed,
                CustodyRecord.quantity_returned,
                used,
            ).where(CustodyRecord.id == record.id)
        ).one()
        consumed = int(consumed)
        if consumed != cached:
            logger.error(
                "Custody record %s: cached consumed %d but consumption records sum to %d",
                record.id, cached, consumed)
            raise CustodyIntegrityError(
                f"Custody record {record.id} consumption counter is out of step with its consumption records",
                custody_record_id=record.id)
        if consumed + returned > assigned:
            logger.error(
                "Custody record %s: consumed %d + returned %d exceeds assigned %d",
                record.id, consumed, returned, assigned)
            raise CustodyIntegrityError(
                f"Custody record {record.id} has more consumed and returned than assigned",
                custody_record_id=record.id)
        return consumed

    def _consume(self, record: CustodyRecord, job_id: UUID, quantity_used: int) -> ConsumptionRecord:
        """Consume inside the caller's transaction. Raises StaleWriteError on a lost swap."""
        self.verify_integrity(record)
        if quantity_used > record.remaining_quantity:
            raise InsufficientCustody(
                f"Only {record.remaining_quantity} of {record.item_name} left in custody, "
                f"{quantity_used} requested",
                custody_record_id=record.id)

        swapped = compare_and_swap(
            self.session, CustodyRecord, record.version,
            CustodyRecord.id == record.id,
            quantity_consumed=record.quantity_consumed + quantity_used,
        )
        if not swapped:
            raise StaleWriteError(
                f"Custody record {record.id} was modified concurrently",
                custody_record_id=record.id)

        consumption = ConsumptionRecord(
            custody_record_id=record.id,
            job_id=job_id,
            worker_id=record.worker_id,
            quantity_used=quantity_used,
        )
        self.session.add(consumption)
        return consumption

    def _classify_lost_consumption(self, custody_record_id: UUID, quantity_used: int):
        # The failed transaction was rolled back, so this read sees the winner's write
        record = self._get_record(custody_record_id)
        self.session.refresh(record)
        if quantity_used > record.remaining_quantity:
            return InsufficientCustody(
                f"Only {record.remaining_quantity} of {record.item_name} left in custody, "
                f"{quantity_used} requested",
                custody_record_id=custody_record_id)
        return StaleWriteError(
            f"Custody record {custody_record_id} was modified concurrently, retry the operation",
            custody_record_id=custody_record_id)

    def record_consumption(self, custody_record_id: UUID, job_id: UUID, quantity_used: int) -> ConsumptionRecord:
        """
        Charges `quantity_used` units of a custody record to a job.

        Raises:
            InvalidQuantity: quantity_used is not a positive integer.
            CustodyRecordNotFound: no such record.
            InsufficientCustody: fewer units remain than requested, including
                when a concurrent consumption took them first.
            StaleWriteError: a concurrent write won but units still remain.
        """
        _validate_quantity(quantity_used, "quantity_used")
        try:
            with atomic(self.session):
                record = self._get_record(custody_record_id)
                consumption = self._consume(record, job_id, quantity_used)
        except StaleWriteError:
            raise self._classify_lost_consumption(custody_record_id, quantity_used)

        self.session.refresh(consumption)
        logger.info(
            "Consumed %d from custody record %s for job %s",
            quantity_used, custody_record_id, job_id)
        return consumption

    def record_return(self, custody_record_id: UUID, quantity_returned: int) -> CustodyRecord:
        """
        Takes `quantity_returned` units back from the worker.

        Raises:
            InvalidQuantity: quantity_returned is not a positive integer.
            OverReturn: returned plus consumed would exceed assigned.
            StaleWriteError: the record changed between read and write and
                the return still fits.
        """
        _validate_quantity(quantity_returned, "quantity_returned")
        try:
            with atomic(self.session):
                record = self._get_record(custody_record_id)
                self.verify_integrity(record)
                if quantity_returned > record.remaining_quantity:
                    raise OverReturn(
                        f"Cannot return {quantity_returned} of {record.item_name}: "
                        f"only {record.remaining_quantity} not yet consumed or returned",
                        custody_record_id=record.id)

                new_returned = record.quantity_returned + quantity_returned
                values = {"quantity_returned": new_returned}
                if record.quantity_consumed + new_returned >= record.quantity_assigned:
                    values["returned_at"] = datetime.utcnow()

                swapped = compare_and_swap(
                    self.session, CustodyRecord, record.version,
                    CustodyRecord.id == record.id, **values)
                if not swapped:
                    raise StaleWriteError(
                        f"Custody record {record.id} was modified concurrently",
                        custody_record_id=record.id)
        except StaleWriteError:
            record = self._get_record(custody_record_id)
            self.session.refresh(record)
            if quantity_returned > record.remaining_quantity:
                raise OverReturn(
                    f"Cannot return {quantity_returned} of {record.item_name}: "
                    f"only {record.remaining_quantity} not yet consumed or returned",
                    custody_record_id=record.id)
            raise

        record = self._get_record(custody_record_id)
        self.session.refresh(record)
        logger.info(
            "Returned %d to custody record %s (%d remaining)",
            quantity_returned, custody_record_id, record.remaining_quantity)
        return record

    def available_for(self, worker_id: UUID) -> List[CustodyRecord]:
        """Records of the worker with units left, oldest first."""
        remaining = (CustodyRecord.quantity_assigned
                     - CustodyRecord.quantity_consumed
                     - CustodyRecord.quantity_returned)
        statement = (
            select(CustodyRecord)
            .where(CustodyRecord.worker_id == worker_id, remaining > 0)
            .order_by(CustodyRecord.assigned_at, CustodyRecord.id)
        )
        return list(self.session.exec(statement).all())

    def find_available(self, worker_id: UUID, item_name: str, item_kind: ItemKind) -> CustodyRecord:
        matching = self._matching_available(worker_id, item_name, item_kind)
        if not matching:
            raise CustodyRecordNotFound(
                f"Worker {worker_id} has no {item_name} ({ItemKind(item_kind).value}) in custody",
                worker_id=worker_id, item_name=item_name)
        return matching[0]

    def _matching_available(self, worker_id: UUID, item_name: str,
                            item_kind: ItemKind) -> List[CustodyRecord]:
        return [record for record in self.available_for(worker_id)
                if record.item_name == item_name and record.item_kind == item_kind]

    def _assigned_check_in(self, job_id: UUID, worker_id: UUID) -> CheckIn:
        check_in = self.session.get(CheckIn, job_id)
        if not check_in:
            raise JobNotFound(f"Check-in {job_id} not found", job_id=job_id)
        if check_in.assigned_worker_id != worker_id:
            raise PermissionDenied(
                f"Check-in {job_id} is not assigned to worker {worker_id}", job_id=job_id)
        return check_in

    def _plan_usages(self, worker_id: UUID, usages: List[MaterialUsage]) -> List[tuple]:
        """
        Splits every usage over the worker's matching records, oldest first.
        Returns (custody_record_id, quantity) pairs.
        """
        planned = {}
        plan = []
        for usage in usages:
            matching = self._matching_available(worker_id, usage.item_name, usage.item_kind)
            if not matching:
                raise CustodyRecordNotFound(
                    f"Worker {worker_id} has no {usage.item_name} "
                    f"({ItemKind(usage.item_kind).value}) in custody",
                    worker_id=worker_id, item_name=usage.item_name)

            held = sum(r.remaining_quantity - planned.get(r.id, 0) for r in matching)
            if usage.quantity_used > held:
                raise InsufficientCustody(
                    f"Only {held} of {usage.item_name} left in custody, "
                    f"{usage.quantity_used} requested",
                    worker_id=worker_id, item_name=usage.item_name)

            needed = usage.quantity_used
            for record in matching:
                take = min(needed, record.remaining_quantity - planned.get(record.id, 0))
                if take <= 0:
                    continue
                planned[record.id] = planned.get(record.id, 0) + take
                plan.append((record.id, take))
                needed -= take
                if needed == 0:
                    break
        return plan

    def record_job_materials(self, job_id: UUID, worker_id: UUID,
                             usages: List[MaterialUsage]) -> List[ConsumptionRecord]:
        """
        Charges every material a job used in one go. Either all usages are
        recorded or none is.

        The job must be a check-in assigned to the worker. A usage larger
        than the oldest matching record continues on the next one, so it
        may produce several consumption records.

        Raises:
            JobNotFound: no such check-in.
            PermissionDenied: the check-in belongs to another washer.
            CustodyRecordNotFound: the worker holds none of an item.
            InsufficientCustody: the worker holds too few of an item.
        """
        if not usages:
            raise ValidationError("At least one material is required")
        for usage in usages:
            _validate_quantity(usage.quantity_used, "quantity_used")

        self._assigned_check_in(job_id, worker_id)
        # Resolve every usage before writing anything
        plan = self._plan_usages(worker_id, usages)

        consumptions = []
        with atomic(self.session):
            for custody_record_id, quantity in plan:
                record = self._get_record(custody_record_id)
                # Earlier usages in this batch may have touched the same record
                self.session.refresh(record)
                consumptions.append(self._consume(record, job_id, quantity))
                self.session.flush()

        for consumption in consumptions:
            self.session.refresh(consumption)
        logger.info(
            "Recorded %d material usages for job %s, worker %s",
            len(consumptions), job_id, worker_id)
        return consumptions
