"""
Invoice lifecycle: draft -> sent -> partially_paid / paid, or -> void.

Sending posts the receivable (sales) or payable (purchase) entry through
the ledger; voiding reverses it. Payment status only ever moves through
``record_allocation``, which the payment workflow calls.
"""
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from django.db.models import F, Q
from django.utils import timezone

from ..exceptions import (InvalidStateTransitionError, NotFoundError,
                          OverpaymentError, ValidationError)
from ..models import Account, Contact, Invoice, InvoiceLine
from ..models.invoice import OPEN_STATUSES
from ..money import ZERO, fit_field, to_decimal
from . import ledger as default_ledger
from .accounts import resolve_account
from .audit_helper import log_action
from .contracts import Ledger
from .ledger import PostingLine
from .locking import lock_row, unit_of_work
from .sequences import next_number

logger = logging.getLogger(__name__)

INVOICE_TYPES = ("sales", "purchase")


@dataclass
class InvoiceLineInput:
    description: str = ""
    quantity: Any = Decimal("1")
    unit_price: Any = ZERO
    tax_rate: Any = ZERO  # percent
    discount_percent: Any = ZERO
    account: Any = None  # Account or pk; role default when empty


def _parse_line(idx, line):
    if isinstance(line, dict):
        try:
            line = InvoiceLineInput(**line)
        except TypeError as exc:
            raise ValidationError(f"Line {idx}: {exc}") from exc
    quantity = to_decimal(line.quantity, f"line {idx} quantity")
    unit_price = to_decimal(line.unit_price, f"line {idx} unit_price")
    tax_rate = to_decimal(line.tax_rate or ZERO, f"line {idx} tax_rate")
    discount = to_decimal(line.discount_percent or ZERO, f"line {idx} discount_percent")

    if quantity <= 0:
        raise ValidationError(f"Line {idx}: quantity must be greater than zero")
    if unit_price < 0:
        raise ValidationError(f"Line {idx}: unit price cannot be negative")
    if tax_rate < 0:
        raise ValidationError(f"Line {idx}: tax rate cannot be negative")
    if discount < 0 or discount > 100:
        raise ValidationError(f"Line {idx}: discount must be between 0 and 100 percent")
    # column widths of InvoiceLine
    quantity = fit_field(quantity, f"line {idx} quantity", 14, 4)
    unit_price = fit_field(unit_price, f"line {idx} unit_price", 18, 4)
    tax_rate = fit_field(tax_rate, f"line {idx} tax_rate", 7, 4)
    discount = fit_field(discount, f"line {idx} discount_percent", 5, 2)

    return InvoiceLineInput(
        description=line.description or "",
        quantity=quantity,
        unit_price=unit_price,
        tax_rate=tax_rate,
        discount_percent=discount,
        account=getattr(line.account, "pk", line.account),
    )


def create_invoice(
    ctx,
    *,
    contact,
    lines,
    invoice_type: str = "sales",
    issue_date: Optional[datetime.date] = None,
    due_date: Optional[datetime.date] = None,
    reference: str = "",
    notes: str = "",
) -> Invoice:
    """Create a DRAFT invoice, number it, and derive its totals from the lines."""
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"Unknown invoice type {invoice_type!r}")
    if not lines:
        raise ValidationError("Invoice must have at least one line")
    parsed = [_parse_line(idx, line) for idx, line in enumerate(lines, start=1)]

    contact_id = getattr(contact, "pk", contact)
    try:
        contact = ctx.scoped(Contact).get(pk=contact_id)
    except Contact.DoesNotExist:
        raise ValidationError(f"Contact {contact_id} does not belong to this company")

    account_ids = {line.account for line in parsed if line.account is not None}
    if account_ids:
        found = set(ctx.scoped(Account).filter(pk__in=account_ids).values_list("pk", flat=True))
        if account_ids - found:
            raise ValidationError(f"Account {sorted(account_ids - found)[0]} does not belong to this company")

    issue_date = issue_date or timezone.localdate()
    if due_date is None:
        due_date = issue_date + datetime.timedelta(days=contact.payment_terms_days)
    if due_date < issue_date:
        raise ValidationError("Due date cannot be before the issue date")

    with unit_of_work(ctx):
        invoice = Invoice.objects.db_manager(ctx.using).create(
            company=ctx.company,
            invoice_type=invoice_type,
            invoice_number=next_number(ctx, f"invoice:{invoice_type}"),
            contact=contact,
            issue_date=issue_date,
            due_date=due_date,
            reference=reference,
            notes=notes,
            created_by=ctx.actor,
        )
        for idx, line in enumerate(parsed, start=1):
            InvoiceLine.objects.db_manager(ctx.using).create(
                company=ctx.company,
                invoice=invoice,
                line_number=idx,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_percent=line.discount_percent,
                tax_rate=line.tax_rate,
                account_id=line.account,
            )
        invoice.recalc_totals()
        invoice.save(update_fields=["subtotal", "tax_amount", "total", "updated_at"])

        log_action(
            action="create",
            instance=invoice,
            user=ctx.actor,
            company=ctx.company,
            changes={"number": invoice.invoice_number, "total": str(invoice.total)},
            using=ctx.using,
        )
    logger.info("Created %s invoice %s total=%s", invoice_type, invoice.invoice_number, invoice.total)
    return invoice


def _recognition_lines(ctx, invoice):
    """Lines of the entry that books a sent invoice.

    SALES:    Dr receivable (total) / Cr income per line account / Cr output tax
    PURCHASE: Dr expense per line account / Dr input tax / Cr payable (total)
    """
    if invoice.invoice_type == "sales":
        control = resolve_account(ctx, "receivable")
        tax_role, default_role = "output_tax", "sales"
    else:
        control = resolve_account(ctx, "payable")
        tax_role, default_role = "input_tax", "purchases"
    default_account = None

    # aggregate line subtotals per income/expense account, first-seen order
    per_account = {}
    for line in invoice.lines.all():
        if not line.line_subtotal:
            continue
        account_id = line.account_id
        if account_id is None:
            if default_account is None:
                default_account = resolve_account(ctx, default_role)
            account_id = default_account.pk
        per_account[account_id] = per_account.get(account_id, ZERO) + line.line_subtotal

    memo = f"{invoice.invoice_number} {invoice.contact.name}"
    if invoice.invoice_type == "sales":
        lines = [PostingLine.dr(control, invoice.total, description=memo, invoice=invoice)]
        lines += [
            PostingLine.cr(account_id, amount, description=memo, invoice=invoice)
            for account_id, amount in per_account.items()
        ]
        if invoice.tax_amount:
            lines.append(
                PostingLine.cr(resolve_account(ctx, tax_role), invoice.tax_amount,
                               description=f"Tax {invoice.invoice_number}", invoice=invoice)
            )
    else:
        lines = [
            PostingLine.dr(account_id, amount, description=memo, invoice=invoice)
            for account_id, amount in per_account.items()
        ]
        if invoice.tax_amount:
            lines.append(
                PostingLine.dr(resolve_account(ctx, tax_role), invoice.tax_amount,
                               description=f"Tax {invoice.invoice_number}", invoice=invoice)
            )
        lines.append(PostingLine.cr(control, invoice.total, description=memo, invoice=invoice))
    return lines


def send_invoice(ctx, invoice_id, *, ledger: Ledger = default_ledger) -> Invoice:
    """
    DRAFT -> SENT, posting the recognition entry in the same unit.
    If posting fails nothing is kept and the invoice stays DRAFT.
    """
    with unit_of_work(ctx):
        invoice = lock_row(ctx.scoped(Invoice), "Invoice", invoice_id)
        invoice.transition_to("sent")
        if invoice.total <= 0:
            raise ValidationError(f"Invoice {invoice.invoice_number} has a zero total and cannot be sent")

        entry = ledger.post_entry(
            ctx,
            _recognition_lines(ctx, invoice),
            date=invoice.issue_date,
            description=f"{invoice.get_invoice_type_display()} invoice {invoice.invoice_number}",
            reference=invoice.invoice_number,
            source_type="invoice",
            source_id=invoice.pk,
        )
        invoice.journal_entry_id = getattr(entry, "pk", None)
        invoice.sent_at = timezone.now()
        invoice.save(update_fields=["status", "journal_entry", "sent_at", "updated_at"])

        log_action(
            action="send",
            instance=invoice,
            user=ctx.actor,
            company=ctx.company,
            changes={"status": "sent", "journal_entry": invoice.journal_entry_id},
            using=ctx.using,
        )
    logger.info("Sent invoice %s", invoice.invoice_number)
    return invoice


def record_allocation(ctx, invoice, amount) -> Invoice:
    """
    Add ``amount`` to amount_paid and move the status to PARTIALLY_PAID or
    PAID. Called by the payment workflow with the invoice already locked.
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationError("Allocation amount must be greater than zero")

    with unit_of_work(ctx):
        if not isinstance(invoice, Invoice):
            invoice = lock_row(ctx.scoped(Invoice), "Invoice", invoice)
        if invoice.status not in OPEN_STATUSES:
            raise InvalidStateTransitionError(
                f"Invoice {invoice.invoice_number} is {invoice.status} and cannot receive payments"
            )

        new_paid = invoice.amount_paid + amount
        if new_paid > invoice.total:
            raise OverpaymentError(
                f"Invoice {invoice.invoice_number}: paying {amount} exceeds amount due {invoice.amount_due}"
            )
        new_status = invoice.status_for_amount_paid(new_paid)
        if new_status != invoice.status:
            invoice.transition_to(new_status)
        invoice.amount_paid = new_paid
        invoice.save(update_fields=["amount_paid", "status", "updated_at"])
    return invoice


def void_invoice(ctx, invoice_id, reason: str = "", *, ledger: Ledger = default_ledger) -> Invoice:
    """Any non-PAID, non-VOID invoice -> VOID; reverses its entry if posted."""
    with unit_of_work(ctx):
        invoice = lock_row(ctx.scoped(Invoice), "Invoice", invoice_id)
        invoice.transition_to("void")

        if invoice.journal_entry_id:
            ledger.reverse_entry(
                ctx,
                invoice.journal_entry_id,
                reason=f"Void invoice {invoice.invoice_number}" + (f": {reason}" if reason else ""),
            )
        invoice.voided_at = timezone.now()
        invoice.void_reason = reason
        invoice.save(update_fields=["status", "voided_at", "void_reason", "updated_at"])

        log_action(
            action="void",
            instance=invoice,
            user=ctx.actor,
            company=ctx.company,
            changes={"status": "void", "reason": reason},
            using=ctx.using,
        )
    logger.info("Voided invoice %s", invoice.invoice_number)
    return invoice


def get_invoice(ctx, invoice_id) -> Invoice:
    try:
        return (
            ctx.scoped(Invoice)
            .select_related("contact", "journal_entry")
            .prefetch_related("lines")
            .get(pk=invoice_id)
        )
    except Invoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_id} not found")


def list_invoices(
    ctx,
    *,
    invoice_type=None,
    status=None,
    contact=None,
    date_from=None,
    date_to=None,
    search=None,
):
    """Filtered invoices, newest first."""
    qs = ctx.scoped(Invoice).select_related("contact")
    if invoice_type:
        qs = qs.filter(invoice_type=invoice_type)
    if status:
        qs = qs.filter(status=status)
    if contact:
        qs = qs.filter(contact_id=getattr(contact, "pk", contact))
    if date_from:
        qs = qs.filter(issue_date__gte=date_from)
    if date_to:
        qs = qs.filter(issue_date__lte=date_to)
    if search:
        qs = qs.filter(
            Q(invoice_number__icontains=search)
            | Q(reference__icontains=search)
            | Q(notes__icontains=search)
            | Q(contact__name__icontains=search)
        )
    return qs.order_by("-issue_date", "-invoice_number")


def overdue_invoices(ctx, as_of: Optional[datetime.date] = None):
    """Open invoices past their due date with money still owed."""
    as_of = as_of or timezone.localdate()
    return (
        ctx.scoped(Invoice)
        .filter(status__in=OPEN_STATUSES, due_date__lt=as_of, total__gt=F("amount_paid"))
        .order_by("due_date", "id")
    )
