"""
Late-payment interest on overdue invoices.

Simple daily interest: amount_due x daily rate x days past due, rounded
half-up to cents once at the end. Each calculation on an overdue invoice
appends an InvoiceInterest row; nothing is posted to the ledger.
"""
import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from ..exceptions import BookkeepingError, NotFoundError, ValidationError
from ..models import Company, Invoice, InvoiceInterest
from ..models.invoice import OPEN_STATUSES
from ..money import ZERO, fit_field, round_money, to_decimal
from .audit_helper import log_action
from .invoicing import overdue_invoices
from .locking import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterestResult:
    invoice_id: int
    invoice_number: str
    due_date: datetime.date
    as_of: datetime.date
    days_overdue: int
    principal: Decimal
    rate: Decimal
    daily_interest: Decimal
    interest: Decimal
    total_with_interest: Decimal
    currency: str
    record: Optional[InvoiceInterest] = None


@dataclass
class BatchInterestResult:
    results: List[InterestResult] = field(default_factory=list)
    # (invoice id, error message)
    failures: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def total_interest(self):
        return sum((r.interest for r in self.results), ZERO)


def validate_rate(rate) -> Decimal:
    rate = to_decimal(rate, "interest rate")
    maximum = Decimal(settings.BOOKKEEPING_MAX_DAILY_INTEREST_RATE)
    if rate < 0:
        raise ValidationError("Interest rate cannot be negative")
    if rate > maximum:
        raise ValidationError(f"Interest rate exceeds maximum allowed ({maximum} daily)")
    return fit_field(rate, "interest rate", 10, 8)


def _company_rate(ctx):
    # re-read so a rate changed by another request is picked up
    return (
        Company.objects.using(ctx.using)
        .values_list("late_payment_interest_rate", flat=True)
        .get(pk=ctx.company.pk)
    )


def _calculate(ctx, invoice, rate, as_of):
    principal = invoice.amount_due
    result = dict(
        invoice_id=invoice.pk,
        invoice_number=invoice.invoice_number,
        due_date=invoice.due_date,
        as_of=as_of,
        principal=principal,
        rate=rate,
        currency=ctx.company.currency_code,
    )
    # paid, void, draft and not-yet-due invoices earn nothing and leave no trace
    if invoice.status not in OPEN_STATUSES or as_of <= invoice.due_date or principal <= 0:
        return InterestResult(
            days_overdue=0,
            daily_interest=ZERO,
            interest=ZERO,
            total_with_interest=principal,
            **result,
        )

    days = (as_of - invoice.due_date).days
    interest = round_money(principal * rate * days)
    with unit_of_work(ctx):
        record = InvoiceInterest.objects.db_manager(ctx.using).create(
            company=ctx.company,
            invoice=invoice,
            calculated_at=as_of,
            days_overdue=days,
            principal_amount=principal,
            interest_rate=rate,
            interest_amount=interest,
            total_with_interest=principal + interest,
        )
    return InterestResult(
        days_overdue=days,
        daily_interest=round_money(principal * rate),
        interest=interest,
        total_with_interest=principal + interest,
        record=record,
        **result,
    )


def calculate_interest(ctx, invoice_id, daily_rate=None, as_of: Optional[datetime.date] = None) -> InterestResult:
    """Interest owed on one invoice as of ``as_of`` (default today)."""
    try:
        invoice = ctx.scoped(Invoice).get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    rate = validate_rate(_company_rate(ctx) if daily_rate is None else daily_rate)
    return _calculate(ctx, invoice, rate, as_of or timezone.localdate())


def calculate_interest_for_overdue_invoices(
    ctx, daily_rate=None, as_of: Optional[datetime.date] = None
) -> BatchInterestResult:
    """
    Best-effort batch over every open invoice past its due date.

    Each invoice is calculated in its own transaction; a failure is logged
    and collected, and the batch moves on.
    """
    as_of = as_of or timezone.localdate()
    rate = validate_rate(_company_rate(ctx) if daily_rate is None else daily_rate)
    batch = BatchInterestResult()

    for invoice in overdue_invoices(ctx, as_of=as_of).iterator():
        try:
            batch.results.append(_calculate(ctx, invoice, rate, as_of))
        except BookkeepingError as exc:
            logger.warning("Interest failed for invoice %s: %s", invoice.invoice_number, exc)
            batch.failures.append((invoice.pk, exc.message or str(exc)))
        except Exception as exc:
            logger.exception("Interest failed for invoice %s", invoice.invoice_number)
            batch.failures.append((invoice.pk, str(exc)))

    logger.info(
        "Interest batch for company %s as of %s: %s calculated, %s failed, total %s",
        ctx.company.pk, as_of, len(batch.results), len(batch.failures), batch.total_interest,
    )
    return batch


def interest_history(ctx, invoice_id):
    """All calculations for an invoice, newest first."""
    if not ctx.scoped(Invoice).filter(pk=invoice_id).exists():
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return ctx.scoped(InvoiceInterest).filter(invoice_id=invoice_id).order_by("-calculated_at", "-id")


def latest_interest(ctx, invoice_id) -> Optional[InvoiceInterest]:
    return interest_history(ctx, invoice_id).first()


def update_interest_rate(ctx, rate) -> Company:
    rate = validate_rate(rate)
    with unit_of_work(ctx):
        company = Company.objects.using(ctx.using).select_for_update().get(pk=ctx.company.pk)
        old = company.late_payment_interest_rate
        company.late_payment_interest_rate = rate
        company.save(update_fields=["late_payment_interest_rate"])
        log_action(
            action="update_interest_rate",
            instance=company,
            user=ctx.actor,
            company=company,
            changes={"from": str(old), "to": str(rate)},
            using=ctx.using,
        )
    logger.info("Company %s interest rate %s -> %s", company.pk, old, rate)
    return company
