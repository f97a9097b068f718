from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from decimal import Decimal
from uuid import UUID
from typing import List
import logging

from app.core.db import SessionDep
from app.core.dependencies.auth import get_current_user
from app.core.dependencies.admin_auth import get_current_admin
from app.core.exceptions import EngineError
from app.models.commands import CreditEarnings
from app.models.earnings_transaction import EarningsTransaction
from app.models.worker_account import WorkerEarningsRead
from app.services.earnings_service import EarningsService

router = APIRouter(prefix="/earnings", tags=["earnings"])


class EarningsTotalResponse(BaseModel):
    worker_id: UUID
    total_earned: Decimal


@router.get("/me", response_model=WorkerEarningsRead)
def get_my_earnings(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    """
    Earned, paid out and available balance of the authenticated washer.
    """
    return EarningsService(session).get_summary(user_id)


@router.get("/me/transactions", response_model=List[EarningsTransaction])
def list_my_earnings_transactions(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    return EarningsService(session).list_transactions(user_id)


@router.post("/jobs/{job_id}/credit", response_model=EarningsTotalResponse, description="""
Credits the assigned washer with the commission of a completed check-in.

Crediting the same check-in twice leaves the total unchanged.
""")
def credit_job(
    job_id: UUID,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = EarningsService(session)
    try:
        credited = service.credit_job(job_id)
        return EarningsTotalResponse(worker_id=credited.worker_id, total_earned=credited.total_earned)
    except EngineError:
        raise
    except Exception:
        logging.exception("Unexpected error crediting job earnings")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/adjustments", response_model=EarningsTotalResponse, status_code=status.HTTP_201_CREATED)
def credit_adjustment(
    data: CreditEarnings,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    total = EarningsService(session).credit(
        data.worker_id, data.amount,
        description=f"Manual credit by {current_admin}")
    return EarningsTotalResponse(worker_id=data.worker_id, total_earned=total)
