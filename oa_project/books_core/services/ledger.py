"""
Double-entry ledger: the only code that writes JournalEntry/JournalLine rows.

Invoicing and payments describe the lines they need as ``PostingLine``
values and hand them to ``post_entry``; corrections go through
``reverse_entry``. Balances are summed from lines on every read.
"""
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from django.utils import timezone

from ..exceptions import (AlreadyVoidedError, ImbalancedEntryError,
                          InvalidLineError, InvalidStateTransitionError,
                          NotFoundError, ValidationError)
from ..models import Account, JournalEntry, JournalLine
from ..models.journal import check_line_amounts
from ..money import ZERO, fit_field, round_money, to_decimal
from .audit_helper import log_action
from .locking import lock_row, lock_rows, unit_of_work
from .sequences import next_number

logger = logging.getLogger(__name__)


def _pk(value):
    return getattr(value, "pk", value)


@dataclass(frozen=True)
class PostingLine:
    """One debit or credit a caller wants posted."""

    account: Any  # Account or its pk
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""
    invoice: Any = None
    payment: Any = None

    @classmethod
    def dr(cls, account, amount, **kwargs):
        return cls(account=account, debit=amount, **kwargs)

    @classmethod
    def cr(cls, account, amount, **kwargs):
        return cls(account=account, credit=amount, **kwargs)


def _normalize_lines(lines: Iterable[PostingLine]) -> List[PostingLine]:
    """Coerce amounts to Decimal and apply the per-line rules."""
    normalized = []
    for idx, line in enumerate(lines, start=1):
        if _pk(line.account) is None:
            raise ValidationError(f"Line {idx} has no account")
        debit = to_decimal(line.debit or ZERO, f"line {idx} debit")
        credit = to_decimal(line.credit or ZERO, f"line {idx} credit")
        check_line_amounts(debit, credit)
        debit = fit_field(debit, f"line {idx} debit", 18, 2)
        credit = fit_field(credit, f"line {idx} credit", 18, 2)
        normalized.append(
            PostingLine(
                account=_pk(line.account),
                debit=debit,
                credit=credit,
                description=line.description or "",
                invoice=_pk(line.invoice),
                payment=_pk(line.payment),
            )
        )
    return normalized


def validate_lines(lines: Iterable[PostingLine]) -> List[PostingLine]:
    """
    Full posting check without touching the database.

    - at least two lines
    - each line has exactly one positive side, in whole cents
    - sum(debits) == sum(credits), exactly
    """
    normalized = _normalize_lines(lines)
    if len(normalized) < 2:
        raise InvalidLineError(
            f"Journal entry needs at least two lines, got {len(normalized)}"
        )
    total_debit = sum((line.debit for line in normalized), ZERO)
    total_credit = sum((line.credit for line in normalized), ZERO)
    if total_debit != total_credit:
        raise ImbalancedEntryError(
            f"Journal not balanced: debits={total_debit}, credits={total_credit}"
        )
    return normalized


def _lock_accounts(ctx, lines, allow_inactive=False):
    """Lock every account the lines touch, in pk order."""
    wanted = {line.account for line in lines}
    accounts = {
        acc.pk: acc
        for acc in lock_rows(ctx.scoped(Account).filter(pk__in=wanted))
    }
    missing = wanted - set(accounts)
    if missing:
        raise NotFoundError(f"Account {sorted(missing)[0]} not found")
    if not allow_inactive:
        inactive = sorted(acc.code for acc in accounts.values() if not acc.is_active)
        if inactive:
            raise ValidationError(f"Account {inactive[0]} is inactive and cannot receive postings")
    return accounts


def _create_entry(ctx, lines, *, date, description, reference, source_type, source_id):
    entry = JournalEntry.objects.db_manager(ctx.using).create(
        company=ctx.company,
        entry_number=next_number(ctx, "journal"),
        date=date or timezone.localdate(),
        description=description,
        reference=reference,
        source_type=source_type,
        source_id=source_id,
        created_by=ctx.actor,
    )
    for idx, line in enumerate(lines, start=1):
        JournalLine.objects.db_manager(ctx.using).create(
            company=ctx.company,
            journal=entry,
            line_number=idx,
            account_id=line.account,
            description=line.description,
            debit=line.debit,
            credit=line.credit,
            invoice_id=line.invoice,
            payment_id=line.payment,
        )
    return entry


def post_entry(
    ctx,
    lines: Iterable[PostingLine],
    *,
    date: Optional[datetime.date] = None,
    description: str = "",
    reference: str = "",
    source_type: str = "manual",
    source_id: Optional[int] = None,
) -> JournalEntry:
    """
    Validate and post a balanced entry in one atomic unit.

    Raises InvalidLineError / ImbalancedEntryError before anything is
    written. Inside a caller's unit of work the entry joins that unit.
    """
    normalized = validate_lines(lines)
    with unit_of_work(ctx):
        _lock_accounts(ctx, normalized)
        entry = _create_entry(
            ctx,
            normalized,
            date=date,
            description=description,
            reference=reference,
            source_type=source_type,
            source_id=source_id,
        )
        entry = entry.post(user=ctx.actor)
    logger.info(
        "Posted %s (%s) for company %s: %s lines",
        entry.entry_number, source_type, ctx.company.pk, len(normalized),
    )
    return entry


def create_draft_entry(
    ctx,
    lines: Iterable[PostingLine],
    *,
    date: Optional[datetime.date] = None,
    description: str = "",
    reference: str = "",
) -> JournalEntry:
    """Save a manual journal as DRAFT; balance is only enforced on posting."""
    normalized = _normalize_lines(lines)
    with unit_of_work(ctx):
        _lock_accounts(ctx, normalized)
        return _create_entry(
            ctx,
            normalized,
            date=date,
            description=description,
            reference=reference,
            source_type="manual",
            source_id=None,
        )


def post_draft_entry(ctx, entry_id) -> JournalEntry:
    """Post a DRAFT entry. Re-posting an unchanged posted entry is a no-op."""
    with unit_of_work(ctx):
        entry = lock_row(ctx.scoped(JournalEntry), "Journal entry", entry_id)
        lines = list(entry.lines.all())
        if entry.status == "draft":
            _lock_accounts(ctx, [PostingLine(account=line.account_id) for line in lines])
        entry = entry.post(user=ctx.actor)
    logger.info("Posted draft %s for company %s", entry.entry_number, ctx.company.pk)
    return entry


def reverse_entry(ctx, entry_id, reason: str = "", date: Optional[datetime.date] = None) -> JournalEntry:
    """
    Cancel a posted entry by posting its mirror image.

    The original keeps its lines, becomes VOID and points at the reversal
    through ``reversed_by``. Returns the new reversing entry.
    """
    with unit_of_work(ctx):
        entry = lock_row(ctx.scoped(JournalEntry), "Journal entry", entry_id)
        if entry.status == "void" or entry.reversed_by_id:
            raise AlreadyVoidedError(f"Journal entry {entry.entry_number} is already reversed")
        if entry.status != "posted":
            raise InvalidStateTransitionError(
                f"Only posted entries can be reversed; {entry.entry_number} is {entry.status}"
            )
        if entry.is_reversal:
            raise InvalidStateTransitionError(
                f"{entry.entry_number} is itself a reversal and cannot be reversed"
            )

        mirrored = [
            PostingLine(
                account=line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                invoice=line.invoice_id,
                payment=line.payment_id,
            )
            for line in entry.lines.all()
        ]
        # accounts may have been deactivated since; reversing must still work
        _lock_accounts(ctx, mirrored, allow_inactive=True)
        reversal = _create_entry(
            ctx,
            mirrored,
            date=date,
            description=f"Reversal of {entry.entry_number}" + (f": {reason}" if reason else ""),
            reference=entry.reference,
            source_type="reversal",
            source_id=entry.pk,
        )
        reversal = reversal.post(user=ctx.actor)

        entry.transition_to("void")
        entry.reversed_by = reversal
        entry.voided_at = timezone.now()
        entry.void_reason = reason
        entry.save(update_fields=["status", "reversed_by", "voided_at", "void_reason"])

        log_action(
            action="reverse",
            instance=entry,
            user=ctx.actor,
            company=ctx.company,
            changes={"reversed_by": reversal.entry_number, "reason": reason},
            using=ctx.using,
        )
    logger.info("Reversed %s with %s", entry.entry_number, reversal.entry_number)
    return reversal


def get_entry(ctx, entry_id) -> JournalEntry:
    try:
        return ctx.scoped(JournalEntry).prefetch_related("lines").get(pk=entry_id)
    except JournalEntry.DoesNotExist:
        raise NotFoundError(f"Journal entry {entry_id} not found")


def get_account_balance(ctx, account_id, as_of: Optional[datetime.date] = None) -> Decimal:
    """
    Signed sum of effective lines dated up to ``as_of`` (inclusive),
    positive on the account's normal side.
    """
    try:
        account = ctx.scoped(Account).get(pk=_pk(account_id))
    except Account.DoesNotExist:
        raise NotFoundError(f"Account {_pk(account_id)} not found")

    lines = ctx.scoped(JournalLine).filter(account=account).effective()
    if as_of is not None:
        lines = lines.filter(journal__date__lte=as_of)
    debit, credit = lines.debit_credit_totals()

    if account.normal_balance == "debit":
        return round_money(debit - credit)
    return round_money(credit - debit)
