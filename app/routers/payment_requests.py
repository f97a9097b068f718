from fastapi import APIRouter, Depends, HTTPException, status, Response
from pydantic import BaseModel
from decimal import Decimal
from uuid import UUID
from typing import List
import logging

from app.core.db import SessionDep
from app.core.dependencies.auth import get_current_user
from app.core.exceptions import EngineError, PermissionDenied
from app.models.commands import CreatePaymentRequest
from app.models.payment_request import PaymentRequestRead
from app.services.payment_request_service import PaymentRequestService

router = APIRouter(prefix="/payment-requests", tags=["payment-requests"])


class PayoutCeilingResponse(BaseModel):
    total_earnings: Decimal
    total_deductions: Decimal
    ceiling: Decimal


@router.post("/", response_model=PaymentRequestRead, status_code=status.HTTP_201_CREATED, description="""
Opens a payment request for the authenticated washer.

The request stores a snapshot of the washer's earnings and custody deductions.
Unless `is_advance` is set, the amount cannot exceed earnings net of deductions.
Only one pending request per washer is allowed.
""")
def create_payment_request(
    data: CreatePaymentRequest,
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    service = PaymentRequestService(session)
    try:
        return service.create(
            user_id, data.requested_amount, notes=data.notes, is_advance=data.is_advance)
    except EngineError:
        raise
    except Exception:
        logging.exception("Unexpected error creating payment request")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/me", response_model=List[PaymentRequestRead])
def list_my_payment_requests(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    return PaymentRequestService(session).list_for_worker(user_id)


@router.get("/me/ceiling", response_model=PayoutCeilingResponse)
def get_my_payout_ceiling(
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    """
    The most the authenticated washer could request right now.
    """
    ceiling = PaymentRequestService(session).payout_ceiling(user_id)
    return PayoutCeilingResponse(**ceiling._asdict())


@router.get("/{request_id}", response_model=PaymentRequestRead)
def get_payment_request(
    request_id: UUID,
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    payment_request = PaymentRequestService(session).get(request_id)
    if payment_request.worker_id != user_id:
        raise PermissionDenied("You can only see your own payment requests")
    return payment_request


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_payment_request(
    request_id: UUID,
    session: SessionDep,
    user_id: UUID = Depends(get_current_user)
):
    PaymentRequestService(session).cancel(request_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
