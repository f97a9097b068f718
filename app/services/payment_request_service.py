from sqlmodel import Session, select
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from app.models.payment_request import (
    PaymentRequest,
    PaymentRequestStatus,
    ALLOWED_TRANSITIONS,
)
from app.models.worker_account import WorkerAccount
from app.core.config import settings
from app.core.transactions import atomic, compare_and_swap
from app.core.exceptions import (
    DuplicatePendingRequest,
    InvalidTransition,
    CannotCancelProcessedRequest,
    InvalidAmount,
    PaymentRequestNotFound,
    PermissionDenied,
    StaleWriteError,
)
from app.services.authorization_service import Authorizer, RoleAuthorizer, APPROVE, REJECT, PAY
from app.services.deduction_service import DeductionService
from app.services.earnings_service import EarningsService
from app.utils.payment_request_utils import (
    PayoutCeiling,
    calculate_payout_ceiling,
    assert_within_ceiling,
    assert_can_request_advance,
)
from app.utils.money import positive_amount, to_money, ZERO
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import logging

logger = logging.getLogger(__name__)


class PaymentRequestService:
    """
    Payout requests of washers and their review by staff.

        pending -> approved -> paid
        pending -> rejected

    Creating a request bumps the worker account version in the same
    transaction, so of two concurrent creations for one worker only one can
    commit. Transitions are compare-and-swap updates on (status, version).
    """

    def __init__(self, session: Session, authorizer: Optional[Authorizer] = None):
        self.session = session
        self.authorizer = authorizer or RoleAuthorizer(session)
        self.earnings = EarningsService(session)
        self.deductions = DeductionService(session)

    def _get_account(self, worker_id: UUID) -> Optional[WorkerAccount]:
        return self.session.get(WorkerAccount, worker_id)

    def _pending_for(self, worker_id: UUID) -> Optional[PaymentRequest]:
        return self.session.exec(
            select(PaymentRequest).where(
                PaymentRequest.worker_id == worker_id,
                PaymentRequest.status == PaymentRequestStatus.PENDING,
            )
        ).first()

    def _approved_unpaid_total(self, worker_id: UUID) -> Decimal:
        promised = func.coalesce(PaymentRequest.approved_amount, PaymentRequest.requested_amount)
        total = self.session.exec(
            select(func.coalesce(func.sum(promised), 0)).where(
                PaymentRequest.worker_id == worker_id,
                PaymentRequest.status == PaymentRequestStatus.APPROVED,
            )
        ).one()
        return to_money(Decimal(str(total)))

    def _withdrawable(self, account: Optional[WorkerAccount], worker_id: UUID) -> Decimal:
        """Earned, not paid out, and not already promised by an approved request."""
        if account is None:
            balance = ZERO
        else:
            balance = account.total_earned - account.total_paid_out
        return balance - self._approved_unpaid_total(worker_id)

    def _claim_account(self, account: Optional[WorkerAccount], worker_id: UUID):
        if account is None:
            self.session.add(WorkerAccount(worker_id=worker_id))
            self.session.flush()
            return
        if not compare_and_swap(self.session, WorkerAccount, account.version,
                                WorkerAccount.worker_id == worker_id):
            raise StaleWriteError(
                f"Account of worker {worker_id} was modified concurrently",
                worker_id=worker_id)

    def payout_ceiling(self, worker_id: UUID) -> PayoutCeiling:
        """The most the worker could request right now."""
        account = self._get_account(worker_id)
        if account is not None:
            self.session.refresh(account)
        summary = self.deductions.calculate_deductions(worker_id)
        return calculate_payout_ceiling(
            self._withdrawable(account, worker_id), summary.total_deductions)

    def create(
        self,
        worker_id: UUID,
        requested_amount: Decimal,
        notes: Optional[str] = None,
        is_advance: bool = False,
        enforce_ceiling: Optional[bool] = None
    ) -> PaymentRequest:
        """
        Opens a payment request with a snapshot of earnings and deductions.

        Raises:
            InvalidAmount: requested_amount is not greater than 0.
            DuplicatePendingRequest: the worker already has a pending request.
            InsufficientNetEarnings: the amount is above earnings net of
                deductions (only when the ceiling is enforced).
            AdvanceNotAllowed: an advance above the cap, or for a worker who
                has already earned more than the advance threshold.
            StaleWriteError: the account changed concurrently; retry.
        """
        requested_amount = positive_amount(requested_amount)
        if enforce_ceiling is None:
            enforce_ceiling = settings.ENFORCE_NET_EARNINGS_CEILING

        try:
            with atomic(self.session):
                account = self._get_account(worker_id)
                if self._pending_for(worker_id):
                    raise DuplicatePendingRequest(
                        "You already have a pending payment request", worker_id=worker_id)

                summary = self.deductions.calculate_deductions(worker_id)
                ceiling = calculate_payout_ceiling(
                    self._withdrawable(account, worker_id), summary.total_deductions)
                if is_advance:
                    assert_can_request_advance(requested_amount, ceiling.total_earnings)
                elif enforce_ceiling:
                    assert_within_ceiling(requested_amount, ceiling)

                self._claim_account(account, worker_id)
                payment_request = PaymentRequest(
                    worker_id=worker_id,
                    requested_amount=requested_amount,
                    total_earnings_snapshot=ceiling.total_earnings,
                    material_deductions=summary.material_deductions,
                    tool_deductions=summary.tool_deductions,
                    is_advance=is_advance,
                    notes=notes,
                )
                self.session.add(payment_request)
        except (StaleWriteError, SQLIntegrityError) as e:
            if self._pending_for(worker_id):
                raise DuplicatePendingRequest(
                    "You already have a pending payment request", worker_id=worker_id) from e
            if isinstance(e, StaleWriteError):
                raise
            raise StaleWriteError(
                f"Account of worker {worker_id} was modified concurrently",
                worker_id=worker_id) from e

        self.session.refresh(payment_request)
        logger.info(
            "Payment request %s created for worker %s: %s%s",
            payment_request.id, worker_id, requested_amount,
            " (advance)" if is_advance else "")
        return payment_request

    def _get_request(self, request_id: UUID) -> PaymentRequest:
        payment_request = self.session.get(PaymentRequest, request_id)
        if not payment_request:
            raise PaymentRequestNotFound(
                f"Payment request {request_id} not found", request_id=request_id)
        return payment_request

    def get(self, request_id: UUID) -> PaymentRequest:
        return self._get_request(request_id)

    def list_for_worker(self, worker_id: UUID) -> List[PaymentRequest]:
        statement = (
            select(PaymentRequest)
            .where(PaymentRequest.worker_id == worker_id)
            .order_by(PaymentRequest.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def _check_transition(self, payment_request: PaymentRequest, target: PaymentRequestStatus):
        if target not in ALLOWED_TRANSITIONS[payment_request.status]:
            raise InvalidTransition(
                f"Payment request {payment_request.id} is {payment_request.status.value}, "
                f"cannot move to {target.value}",
                request_id=payment_request.id)

    def _transition(self, request_id: UUID, actor_id: UUID, action: str,
                    target: PaymentRequestStatus, guard=None, **values) -> PaymentRequest:
        if not self.authorizer.is_authorized(actor_id, action):
            raise PermissionDenied(
                f"User {actor_id} is not allowed to {action} payment requests")

        try:
            with atomic(self.session):
                payment_request = self._get_request(request_id)
                self._check_transition(payment_request, target)
                if guard is not None:
                    values.update(guard(payment_request))
                swapped = compare_and_swap(
                    self.session, PaymentRequest, payment_request.version,
                    PaymentRequest.id == request_id,
                    PaymentRequest.status == payment_request.status,
                    status=target, **values)
                if not swapped:
                    raise StaleWriteError(
                        f"Payment request {request_id} was modified concurrently",
                        request_id=request_id)
                if target == PaymentRequestStatus.PAID:
                    self.earnings.record_payout(
                        payment_request.worker_id, payment_request.payable_amount,
                        payment_request_id=request_id)
        except StaleWriteError:
            payment_request = self._get_request(request_id)
            self.session.refresh(payment_request)
            self._check_transition(payment_request, target)
            raise

        payment_request = self._get_request(request_id)
        self.session.refresh(payment_request)
        logger.info(
            "Payment request %s %s by %s", request_id, target.value, actor_id)
        return payment_request

    def approve(self, request_id: UUID, approver_id: UUID,
                admin_notes: Optional[str] = None,
                approved_amount: Optional[Decimal] = None) -> PaymentRequest:
        """
        Approves a pending request, optionally for less than was requested.
        The approved amount is what a later payout transfers.

        Raises:
            InvalidAmount: approved_amount is not greater than 0 or exceeds
                the requested amount.
        """
        if approved_amount is not None:
            approved_amount = positive_amount(approved_amount)

        def approved_values(payment_request: PaymentRequest) -> dict:
            if approved_amount is None:
                return {"approved_amount": payment_request.requested_amount}
            if approved_amount > payment_request.requested_amount:
                raise InvalidAmount(
                    f"Approved amount {approved_amount} exceeds the requested "
                    f"{payment_request.requested_amount}", request_id=request_id)
            return {"approved_amount": approved_amount}

        values = {"approver_id": approver_id, "approval_timestamp": datetime.utcnow()}
        if admin_notes is not None:
            values["admin_notes"] = admin_notes
        return self._transition(request_id, approver_id, APPROVE,
                                PaymentRequestStatus.APPROVED,
                                guard=approved_values, **values)

    def reject(self, request_id: UUID, approver_id: UUID,
               admin_notes: Optional[str] = None) -> PaymentRequest:
        values = {"approver_id": approver_id, "approval_timestamp": datetime.utcnow()}
        if admin_notes is not None:
            values["admin_notes"] = admin_notes
        return self._transition(request_id, approver_id, REJECT,
                                PaymentRequestStatus.REJECTED, **values)

    def pay(self, request_id: UUID, approver_id: UUID,
            payment_reference: Optional[str] = None,
            payment_method: Optional[str] = None) -> PaymentRequest:
        values = {"paid_at": datetime.utcnow()}
        if payment_reference is not None:
            values["payment_reference"] = payment_reference
        if payment_method is not None:
            values["payment_method"] = payment_method
        return self._transition(request_id, approver_id, PAY,
                                PaymentRequestStatus.PAID, **values)

    def cancel(self, request_id: UUID, worker_id: UUID) -> None:
        """The owner withdraws a request that nobody has reviewed yet."""
        with atomic(self.session):
            payment_request = self._get_request(request_id)
            if payment_request.worker_id != worker_id:
                raise PermissionDenied("You can only cancel your own payment requests")
            if payment_request.status != PaymentRequestStatus.PENDING:
                raise CannotCancelProcessedRequest(
                    "Only pending payment requests can be cancelled", request_id=request_id)
            result = self.session.execute(
                delete(PaymentRequest)
                .where(
                    PaymentRequest.id == request_id,
                    PaymentRequest.status == PaymentRequestStatus.PENDING,
                    PaymentRequest.version == payment_request.version,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise CannotCancelProcessedRequest(
                    "Payment request was processed while cancelling", request_id=request_id)
            self.session.expunge(payment_request)
        logger.info("Payment request %s cancelled by worker %s", request_id, worker_id)
