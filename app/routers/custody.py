from fastapi import APIRouter, Depends, HTTPException, status
from uuid import UUID
from typing import List
import logging

from app.core.db import SessionDep
from app.core.dependencies.auth import get_current_user
from app.core.dependencies.admin_auth import get_current_admin
from app.core.exceptions import EngineError
from app.models.commands import AssignCustody, RecordConsumption, RecordReturn, RecordJobMaterials
from app.models.custody import CustodyRecordRead, ConsumptionRecord
from app.models.deduction import DeductionSummary
from app.services.custody_service import CustodyLedgerService
from app.services.deduction_service import DeductionService

router = APIRouter(prefix="/custody", tags=["custody"])


@router.post("/", response_model=CustodyRecordRead, status_code=status.HTTP_201_CREATED, description="""
Hands tools or materials over to a washer.

**Body:** `worker_id`, `item_name`, `item_kind` (material, tool, supply), `quantity`, `unit_price`, `notes`.
""")
def assign_custody(
    data: AssignCustody,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = CustodyLedgerService(session)
    record = service.assign(
        data.worker_id, data.item_name, data.item_kind,
        data.quantity, data.unit_price, notes=data.notes)
    return CustodyRecordRead.from_record(record)


@router.post("/consumptions", response_model=ConsumptionRecord, status_code=status.HTTP_201_CREATED)
def record_consumption(
    data: RecordConsumption,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = CustodyLedgerService(session)
    return service.record_consumption(data.custody_record_id, data.job_id, data.quantity_used)


@router.post("/job-materials", response_model=List[ConsumptionRecord], status_code=status.HTTP_201_CREATED, description="""
Records every material a check-in used. If any of them is not in the washer's custody
nothing is recorded.
""")
def record_job_materials(
    data: RecordJobMaterials,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = CustodyLedgerService(session)
    try:
        return service.record_job_materials(data.job_id, data.worker_id, data.materials)
    except EngineError:
        raise
    except Exception:
        logging.exception("Unexpected error recording job materials")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/returns", response_model=CustodyRecordRead)
def record_return(
    data: RecordReturn,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = CustodyLedgerService(session)
    record = service.record_return(data.custody_record_id, data.quantity_returned)
    return CustodyRecordRead.from_record(record)


@router.get("/me", response_model=List[CustodyRecordRead])
def list_my_custody(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    """
    Tools and materials the authenticated washer still holds.
    """
    service = CustodyLedgerService(session)
    return [CustodyRecordRead.from_record(r) for r in service.available_for(user_id)]


@router.get("/me/deductions", response_model=DeductionSummary)
def get_my_deductions(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    return DeductionService(session).calculate_deductions(user_id)


@router.get("/workers/{worker_id}/deductions", response_model=DeductionSummary)
def get_worker_deductions(
    worker_id: UUID,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    return DeductionService(session).calculate_deductions(worker_id)
