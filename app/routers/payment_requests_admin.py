from fastapi import APIRouter, Depends, status, HTTPException
from uuid import UUID
import logging

from app.core.dependencies.admin_auth import get_current_admin
from app.core.db import SessionDep
from app.core.exceptions import EngineError
from app.models.commands import ApprovePaymentRequest, RejectPaymentRequest, PayPaymentRequest
from app.models.payment_request import PaymentRequestRead
from app.services.payment_request_service import PaymentRequestService

router = APIRouter(
    prefix="/admin/payment-requests",
    tags=["ADMIN"]
)


@router.get("/{request_id}", response_model=PaymentRequestRead)
def get_payment_request(
    request_id: UUID,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    return PaymentRequestService(session).get(request_id)


@router.patch("/{request_id}/approve", response_model=PaymentRequestRead, status_code=status.HTTP_200_OK, description="""
Approves a pending payment request.

**Parameters:**
- `request_id`: UUID of the payment request.
- `approved_amount`: optional amount to approve, at most the requested amount. Defaults to the requested amount.
- `admin_notes`: optional note stored on the request.
""")
def approve_payment_request(
    request_id: UUID,
    data: ApprovePaymentRequest,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = PaymentRequestService(session)
    try:
        return service.approve(request_id, current_admin, admin_notes=data.admin_notes,
                               approved_amount=data.approved_amount)
    except EngineError:
        raise
    except Exception:
        logging.exception("Unexpected error approving payment request")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/{request_id}/reject", response_model=PaymentRequestRead)
def reject_payment_request(
    request_id: UUID,
    data: RejectPaymentRequest,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = PaymentRequestService(session)
    return service.reject(request_id, current_admin, admin_notes=data.admin_notes)


@router.patch("/{request_id}/pay", response_model=PaymentRequestRead, description="""
Marks an approved payment request as paid and records a payout of the approved amount against the washer's account.
""")
def pay_payment_request(
    request_id: UUID,
    data: PayPaymentRequest,
    session: SessionDep,
    current_admin: UUID = Depends(get_current_admin)
):
    service = PaymentRequestService(session)
    try:
        return service.pay(request_id, current_admin, payment_reference=data.payment_reference,
                           payment_method=data.payment_method)
    except EngineError:
        raise
    except Exception:
        logging.exception("Unexpected error paying payment request")
        raise HTTPException(status_code=500, detail="Internal server error")
