from django.db import IntegrityError, transaction

from ..models import DocumentSequence
from .locking import lock_rows

# sequence name -> number prefix
PREFIXES = {
    "journal": "JE",
    "invoice:sales": "INV",
    "invoice:purchase": "BILL",
    "payment:received": "PMT",
    "payment:made": "OUT",
}


def _next_company_sequence(ctx, name):
    """
    Allocate the next value for a company/name pair.
    Uses select_for_update to avoid concurrent duplicates; must run inside
    the caller's transaction so a rollback hands the number back.

    Every posting in a company draws from the one "journal" row, so this
    lock waits instead of failing fast. The holder takes no further locks
    after drawing its number, which rules out a wait cycle.
    """
    qs = DocumentSequence.objects.db_manager(ctx.using).filter(company=ctx.company, name=name)
    rows = lock_rows(qs, nowait=False)
    if rows:
        seq = rows[0]
    else:
        try:
            # savepoint so a lost creation race doesn't poison the outer transaction
            with transaction.atomic(using=ctx.using):
                seq = DocumentSequence.objects.db_manager(ctx.using).create(
                    company=ctx.company, name=name, next_value=1
                )
        except IntegrityError:
            seq = lock_rows(qs, nowait=False)[0]

    value = seq.next_value
    seq.next_value = value + 1
    seq.save(update_fields=["next_value"])
    return value


def next_number(ctx, name):
    """Formatted document number, e.g. ``INV-00042``."""
    return f"{PREFIXES[name]}-{_next_company_sequence(ctx, name):05d}"
