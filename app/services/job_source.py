from typing import Protocol, Optional
from datetime import datetime
from uuid import UUID
import logging

from sqlmodel import Session, select

from app.core.exceptions import JobNotFound, ValidationError
from app.core.transactions import atomic
from app.models.check_in import CheckIn, CheckInStatus, CLOSED_STATUSES
from app.models.service import Service
from app.models.job import Job, LineItem

logger = logging.getLogger(__name__)


class JobSource(Protocol):
    def get_completed_job(self, job_id: UUID) -> Job:
        ...


class CheckInJobSource:
    """Reads completed check-ins and their services from the dispatch tables."""

    def __init__(self, session: Session):
        self.session = session

    def _catalog(self, service_ids) -> dict:
        if not service_ids:
            return {}
        services = self.session.exec(
            select(Service).where(Service.id.in_(service_ids))).all()
        return {service.id: service for service in services}

    def get_completed_job(self, job_id: UUID) -> Job:
        """
        Returns the check-in as a Job with every line's percentages resolved.

        Percentages frozen on the line at completion win; lines completed
        before freezing existed fall back to the current catalog value.
        """
        check_in = self.session.get(CheckIn, job_id)
        if not check_in or check_in.status not in CLOSED_STATUSES:
            raise JobNotFound(f"Completed check-in {job_id} not found", job_id=job_id)

        catalog = self._catalog({line.service_id for line in check_in.services if line.service_id})
        items = []
        for line in check_in.services:
            service: Optional[Service] = catalog.get(line.service_id)
            washer_pct = line.commission_percentage
            company_pct = line.company_commission_percentage
            if washer_pct is None and service is not None:
                washer_pct = service.washer_commission_percentage
            if company_pct is None and service is not None:
                company_pct = service.company_commission_percentage
            items.append(LineItem(
                service_id=line.service_id,
                price=line.price,
                commission_percentage=washer_pct,
                company_commission_percentage=company_pct,
            ))

        return Job(
            id=check_in.id,
            assigned_worker_id=check_in.assigned_worker_id,
            status=check_in.status,
            line_items=tuple(items),
            completed_at=check_in.completed_at,
        )


def complete_check_in(session: Session, check_in_id: UUID, now: datetime = None) -> CheckIn:
    """
    Marks a check-in completed and freezes each line's commission percentages
    from the catalog, so later catalog edits do not change what it pays.
    Prices are never filled in: a line without a price stays an add-on that
    pays no commission.
    """
    with atomic(session):
        check_in = session.get(CheckIn, check_in_id)
        if not check_in:
            raise JobNotFound(f"Check-in {check_in_id} not found", job_id=check_in_id)
        if check_in.status in CLOSED_STATUSES:
            return check_in
        if check_in.status == CheckInStatus.CANCELLED:
            raise ValidationError("A cancelled check-in cannot be completed")

        service_ids = {line.service_id for line in check_in.services if line.service_id}
        catalog = {}
        if service_ids:
            catalog = {s.id: s for s in session.exec(
                select(Service).where(Service.id.in_(service_ids))).all()}

        for line in check_in.services:
            service = catalog.get(line.service_id)
            if service is None:
                continue
            if line.commission_percentage is None:
                line.commission_percentage = service.washer_commission_percentage
            if line.company_commission_percentage is None:
                line.company_commission_percentage = service.company_commission_percentage
            session.add(line)

        check_in.status = CheckInStatus.COMPLETED
        check_in.completed_at = now or datetime.utcnow()
        session.add(check_in)

    session.refresh(check_in)
    logger.info("Check-in %s completed", check_in_id)
    return check_in
