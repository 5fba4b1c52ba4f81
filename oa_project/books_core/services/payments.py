"""
Payment allocation.

A payment's amount is fixed at creation; allocations spend it against
invoices of the matching direction. Every allocation locks the payment and
then the invoice, re-checks both balances, posts the cash entry and moves
the invoice status, all in one unit of work.
"""
import datetime
import logging
from typing import Optional

from django.db.models import DecimalField, F, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from ..exceptions import (InsufficientPaymentBalanceError,
                          InvalidStateTransitionError, NotFoundError,
                          OverpaymentError, ValidationError)
from ..models import Account, Contact, Invoice, Payment, PaymentAllocation
from ..models.invoice import OPEN_STATUSES
from ..models.payment import INVOICE_TYPE_FOR_PAYMENT, PAYMENT_METHODS
from ..money import ZERO, fit_field, is_whole_cents, to_decimal
from . import invoicing as default_invoicing
from . import ledger as default_ledger
from .accounts import resolve_account
from .audit_helper import log_action
from .contracts import InvoiceLifecycle, Ledger
from .ledger import PostingLine
from .locking import lock_row, unit_of_work
from .sequences import next_number

logger = logging.getLogger(__name__)

VALID_METHODS = {value for value, _ in PAYMENT_METHODS}


def _positive_amount(amount, label="Amount"):
    amount = to_decimal(amount, label.lower())
    # must also fit DecimalField(18, 2)
    if amount <= 0:
        raise ValidationError(f"{label} must be greater than zero")
    if not is_whole_cents(amount):
        raise ValidationError(f"{label} {amount} is finer than the currency unit")
    return fit_field(amount, label.lower(), 18, 2)


def create_payment(
    ctx,
    *,
    payment_type: str,
    amount,
    payment_date: Optional[datetime.date] = None,
    contact=None,
    payment_method: str = "bank_transfer",
    reference: str = "",
    notes: str = "",
    cash_account=None,
    allocations=None,
    ledger: Ledger = default_ledger,
    invoicing: InvoiceLifecycle = default_invoicing,
) -> Payment:
    """
    Record money received or paid.

    ``allocations`` is an optional list of ``(invoice_id, amount)`` applied
    in the same unit of work; if any of them fails the payment is not
    recorded either.
    """
    if payment_type not in INVOICE_TYPE_FOR_PAYMENT:
        raise ValidationError(f"Unknown payment type {payment_type!r}")
    if payment_method not in VALID_METHODS:
        raise ValidationError(f"Unknown payment method {payment_method!r}")
    amount = _positive_amount(amount, "Payment amount")

    # Optional references must belong to the same company
    if contact is not None:
        contact_id = getattr(contact, "pk", contact)
        try:
            contact = ctx.scoped(Contact).get(pk=contact_id)
        except Contact.DoesNotExist:
            raise ValidationError(f"Contact {contact_id} does not belong to this company")
    if cash_account is not None:
        account_id = getattr(cash_account, "pk", cash_account)
        try:
            cash_account = ctx.scoped(Account).get(pk=account_id)
        except Account.DoesNotExist:
            raise ValidationError(f"Account {account_id} does not belong to this company")

    with unit_of_work(ctx):
        # number is drawn inside the unit, so a rollback frees it
        payment = Payment.objects.db_manager(ctx.using).create(
            company=ctx.company,
            payment_type=payment_type,
            payment_number=next_number(ctx, f"payment:{payment_type}"),
            contact=contact,
            payment_date=payment_date or timezone.localdate(),
            amount=amount,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            cash_account=cash_account,
            created_by=ctx.actor,
        )
        log_action(
            action="create",
            instance=payment,
            user=ctx.actor,
            company=ctx.company,
            changes={"number": payment.payment_number, "amount": str(amount)},
            using=ctx.using,
        )
        # nested units join this one; any failure discards the payment too
        for invoice_id, alloc_amount in allocations or []:
            allocate_to_invoice(
                ctx, payment.pk, invoice_id, alloc_amount, ledger=ledger, invoicing=invoicing
            )

    logger.info("Recorded %s payment %s amount=%s", payment_type, payment.payment_number, amount)
    return payment


def _cash_movement_lines(ctx, payment, invoice, amount):
    """RECEIVED: Dr cash / Cr receivable.  MADE: Dr payable / Cr cash."""
    # explicit bank/cash account, else the company's cash role
    cash = payment.cash_account or resolve_account(ctx, "cash")
    memo = f"{payment.payment_number} -> {invoice.invoice_number}"
    links = {"description": memo, "invoice": invoice, "payment": payment}
    if payment.payment_type == "received":
        return [
            PostingLine.dr(cash, amount, **links),
            PostingLine.cr(resolve_account(ctx, "receivable"), amount, **links),
        ]
    return [
        PostingLine.dr(resolve_account(ctx, "payable"), amount, **links),
        PostingLine.cr(cash, amount, **links),
    ]


def allocate_to_invoice(
    ctx,
    payment_id,
    invoice_id,
    amount,
    *,
    ledger: Ledger = default_ledger,
    invoicing: InvoiceLifecycle = default_invoicing,
) -> PaymentAllocation:
    """
    Apply part (or all) of a payment to an invoice.

    Checks, in order: positive amount, matching direction, the payment's
    unallocated balance, the invoice's amount due, and that the invoice is
    open. Allocation row, ledger entry and invoice status commit together.
    """
    amount = _positive_amount(amount, "Allocation amount")

    with unit_of_work(ctx):
        # fixed lock order: payment, then invoice, then accounts (in the ledger)
        payment = lock_row(ctx.scoped(Payment), "Payment", payment_id)
        invoice = lock_row(ctx.scoped(Invoice), "Invoice", invoice_id)

        expected = INVOICE_TYPE_FOR_PAYMENT[payment.payment_type]
        if invoice.invoice_type != expected:
            raise ValidationError(
                f"A {payment.payment_type} payment can only be allocated to {expected} invoices"
            )

        # both balances re-read under the locks, never trusted from the caller
        unallocated = payment.amount_unallocated
        if amount > unallocated:
            raise InsufficientPaymentBalanceError(
                f"Payment {payment.payment_number} has only {unallocated} unallocated, cannot allocate {amount}"
            )
        if amount > invoice.amount_due:
            raise OverpaymentError(
                f"Invoice {invoice.invoice_number} has {invoice.amount_due} due, cannot allocate {amount}"
            )
        # drafts have no receivable yet; void and paid are terminal
        if invoice.status not in OPEN_STATUSES:
            raise InvalidStateTransitionError(
                f"Invoice {invoice.invoice_number} is {invoice.status} and cannot receive payments"
            )

        # Cash entry first; its id goes on the allocation row
        entry = ledger.post_entry(
            ctx,
            _cash_movement_lines(ctx, payment, invoice, amount),
            date=payment.payment_date,
            description=f"Payment {payment.payment_number} allocated to {invoice.invoice_number}",
            reference=payment.payment_number,
            source_type="payment",
            source_id=payment.pk,
        )
        # The allocation row links payment, invoice and its entry
        allocation = PaymentAllocation.objects.db_manager(ctx.using).create(
            company=ctx.company,
            payment=payment,
            invoice=invoice,
            amount=amount,
            journal_entry_id=getattr(entry, "pk", None),
            created_by=ctx.actor,
        )
        # amount_paid and status move together with the row above
        invoice = invoicing.record_allocation(ctx, invoice, amount)

        log_action(
            action="allocate",
            instance=payment,
            user=ctx.actor,
            company=ctx.company,
            changes={
                "invoice": invoice.invoice_number,
                "amount": str(amount),
                "invoice_status": invoice.status,
            },
            using=ctx.using,
        )
    logger.info(
        "Allocated %s of %s to %s (now %s)",
        amount, payment.payment_number, invoice.invoice_number, invoice.status,
    )
    return allocation


def _with_allocated(qs):
    # payments with no allocations count as zero allocated
    return qs.annotate(
        allocated=Coalesce(
            Sum("allocations__amount"),
            Value(ZERO),
            output_field=DecimalField(max_digits=18, decimal_places=2),
        )
    )


def get_unallocated_payments(ctx, payment_type: Optional[str] = None):
    """Payments with money left to allocate, oldest first."""
    qs = ctx.scoped(Payment)
    if payment_type:
        qs = qs.filter(payment_type=payment_type)
    return (
        _with_allocated(qs)
        .filter(amount__gt=F("allocated"))
        .select_related("contact")
        .order_by("payment_date", "id")
    )


def get_payment(ctx, payment_id) -> Payment:
    try:
        return ctx.scoped(Payment).prefetch_related("allocations__invoice").get(pk=payment_id)
    except Payment.DoesNotExist:
        raise NotFoundError(f"Payment {payment_id} not found")


def list_payments(ctx, *, payment_type=None, contact=None, date_from=None, date_to=None):
    qs = ctx.scoped(Payment).select_related("contact")
    if payment_type:
        qs = qs.filter(payment_type=payment_type)
    if contact:
        qs = qs.filter(contact_id=getattr(contact, "pk", contact))
    if date_from:
        qs = qs.filter(payment_date__gte=date_from)
    if date_to:
        qs = qs.filter(payment_date__lte=date_to)
    return qs.order_by("-payment_date", "-payment_number")
