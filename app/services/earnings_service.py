from typing import List, NamedTuple, Optional
from decimal import Decimal
from sqlmodel import select, Session
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from app.models.worker_account import WorkerAccount, WorkerEarningsRead
from app.models.earnings_transaction import EarningsTransaction, EarningsTransactionType
from app.models.check_in import CheckIn
from app.core.transactions import atomic, compare_and_swap
from app.core.exceptions import StaleWriteError, ValidationError
from app.services.commission_service import compute_breakdown, compute_worker_earnings
from app.services.job_source import JobSource, CheckInJobSource
from app.utils.money import positive_amount, ZERO
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class JobCredit(NamedTuple):
    job_id: UUID
    worker_id: UUID
    total_earned: Decimal
    company_income: Decimal


class EarningsService:
    """
    Lifetime earnings per washer.

    total_earned only grows. Every change is written to earnings_transaction;
    a job can appear there once, which is what makes crediting a job safe to
    repeat.
    """

    def __init__(self, session: Session, job_source: Optional[JobSource] = None):
        self.session = session
        self.job_source = job_source or CheckInJobSource(session)

    def _get_account(self, worker_id: UUID) -> Optional[WorkerAccount]:
        return self.session.get(WorkerAccount, worker_id)

    def _applied_credit(self, job_id: UUID) -> Optional[EarningsTransaction]:
        return self.session.exec(
            select(EarningsTransaction).where(EarningsTransaction.job_id == job_id)
        ).first()

    def _add_to_account(self, worker_id: UUID, **increments) -> WorkerAccount:
        """
        Adds the increments to the account inside the current transaction,
        creating the account on first use.

        Raises:
            StaleWriteError: another transaction changed the account first.
        """
        account = self._get_account(worker_id)
        if account is None:
            account = WorkerAccount(worker_id=worker_id, **increments)
            self.session.add(account)
            self.session.flush()
            return account

        values = {field: getattr(account, field) + amount
                  for field, amount in increments.items()}
        swapped = compare_and_swap(
            self.session, WorkerAccount, account.version,
            WorkerAccount.worker_id == worker_id, **values)
        if not swapped:
            raise StaleWriteError(
                f"Earnings of worker {worker_id} were modified concurrently",
                worker_id=worker_id)
        return account

    def _apply_credit(self, worker_id: UUID, amount: Decimal, job_id: Optional[UUID],
                      description: Optional[str]) -> bool:
        """
        Writes the account increment and its ledger row inside the caller's
        transaction. Returns False when the job was already credited.
        """
        if job_id is not None and self._applied_credit(job_id):
            logger.info("Job %s already credited, skipping", job_id)
            return False
        self._add_to_account(worker_id, total_earned=amount)
        self.session.add(EarningsTransaction(
            worker_id=worker_id,
            type=(EarningsTransactionType.COMMISSION if job_id
                  else EarningsTransactionType.ADJUSTMENT),
            income=amount,
            job_id=job_id,
            description=description,
        ))
        self.session.flush()
        return True

    def _lost_credit(self, error: Exception, worker_id: UUID, job_id: Optional[UUID]):
        """
        Called after a credit transaction rolled back. Returns quietly when a
        concurrent credit of the same job won, otherwise raises.
        """
        if job_id is not None and self._applied_credit(job_id):
            logger.info("Job %s was credited concurrently, skipping", job_id)
            return
        if isinstance(error, StaleWriteError):
            raise error
        raise StaleWriteError(
            f"Earnings of worker {worker_id} were modified concurrently",
            worker_id=worker_id) from error

    def credit(self, worker_id: UUID, amount: Decimal, job_id: Optional[UUID] = None,
               description: Optional[str] = None) -> Decimal:
        """
        Adds `amount` to the worker's lifetime earnings and returns the new total.

        With a job_id the credit is applied at most once: crediting the same
        job again leaves the total unchanged and returns it.
        """
        amount = positive_amount(amount)
        try:
            with atomic(self.session):
                applied = self._apply_credit(worker_id, amount, job_id, description)
        except (StaleWriteError, SQLIntegrityError) as e:
            # A concurrent credit of the same job is the only acceptable loser
            self._lost_credit(e, worker_id, job_id)
            return self.current_total(worker_id)

        total = self.current_total(worker_id)
        if applied:
            logger.info(
                "Credited %s to worker %s (job %s), total earned %s",
                amount, worker_id, job_id, total)
        return total

    def credit_job(self, job_id: UUID) -> JobCredit:
        """
        Credits the assigned washer with the commission of a completed job
        and stores the company's share on the check-in, in one transaction.
        """
        job = self.job_source.get_completed_job(job_id)
        worker_id = job.assigned_worker_id
        if worker_id is None:
            raise ValidationError(f"Check-in {job_id} has no assigned worker", job_id=job_id)

        worker_total = compute_worker_earnings(job)
        breakdown = compute_breakdown(job)
        if worker_total == ZERO:
            # Nothing to credit for a job without services
            return JobCredit(job.id, worker_id, self.current_total(worker_id),
                             breakdown.company_total)

        applied = False
        try:
            with atomic(self.session):
                applied = self._apply_credit(
                    worker_id, worker_total, job.id,
                    f"Commission for check-in {job.id}")
                check_in = self.session.get(CheckIn, job.id)
                if check_in is not None and check_in.company_income != breakdown.company_total:
                    check_in.company_income = breakdown.company_total
                    self.session.add(check_in)
        except (StaleWriteError, SQLIntegrityError) as e:
            self._lost_credit(e, worker_id, job.id)

        total = self.current_total(worker_id)
        if applied:
            logger.info(
                "Credited %s to worker %s for check-in %s, company income %s, total earned %s",
                worker_total, worker_id, job.id, breakdown.company_total, total)
        return JobCredit(job.id, worker_id, total, breakdown.company_total)

    def current_total(self, worker_id: UUID) -> Decimal:
        account = self._get_account(worker_id)
        if account is None:
            return ZERO
        self.session.refresh(account)
        return account.total_earned

    def record_payout(self, worker_id: UUID, amount: Decimal,
                      payment_request_id: Optional[UUID] = None) -> WorkerAccount:
        """
        Adds a realized payout to the account. Runs inside the caller's
        transaction; the caller commits.
        """
        amount = positive_amount(amount)
        account = self._add_to_account(worker_id, total_paid_out=amount)
        self.session.add(EarningsTransaction(
            worker_id=worker_id,
            type=EarningsTransactionType.PAYOUT,
            expense=amount,
            payment_request_id=payment_request_id,
            description=(f"Payout of payment request {payment_request_id}"
                         if payment_request_id else "Payout"),
        ))
        return account

    def available_balance(self, worker_id: UUID) -> Decimal:
        """Earned and not yet paid out. Negative after an advance larger than earnings."""
        account = self._get_account(worker_id)
        if account is None:
            return ZERO
        self.session.refresh(account)
        return account.total_earned - account.total_paid_out

    def get_summary(self, worker_id: UUID) -> WorkerEarningsRead:
        account = self._get_account(worker_id)
        if account is None:
            return WorkerEarningsRead(
                worker_id=worker_id, total_earned=ZERO,
                total_paid_out=ZERO, available_balance=ZERO)
        self.session.refresh(account)
        return WorkerEarningsRead(
            worker_id=worker_id,
            total_earned=account.total_earned,
            total_paid_out=account.total_paid_out,
            available_balance=account.total_earned - account.total_paid_out,
        )

    def list_transactions(self, worker_id: UUID) -> List[EarningsTransaction]:
        statement = (
            select(EarningsTransaction)
            .where(EarningsTransaction.worker_id == worker_id)
            .order_by(EarningsTransaction.created_at.desc())
        )
        return list(self.session.exec(statement).all())
