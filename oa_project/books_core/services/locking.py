import logging
from contextlib import contextmanager

from django.conf import settings
from django.core.exceptions import ValidationError as ModelValidationError
from django.db import OperationalError, transaction

from ..exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _nowait():
    return getattr(settings, "BOOKKEEPING_LOCK_NOWAIT", True)


@contextmanager
def unit_of_work(ctx):
    """One atomic unit on the tenant's database.

    Lock failures (NOWAIT conflicts, deadlocks, SQLite "database is locked")
    come out as ConflictError; the whole unit has been rolled back by then,
    so callers may simply retry.
    Model validation raised by full_clean() on save comes out as our
    ValidationError.
    """
    try:
        with transaction.atomic(using=ctx.using):
            yield
    except OperationalError as exc:
        logger.warning("Lock conflict for company %s: %s", ctx.company.pk, exc)
        raise ConflictError(f"Concurrent update, retry the operation: {exc}") from exc
    except ModelValidationError as exc:
        raise ValidationError("; ".join(exc.messages)) from exc


def lock_row(queryset, label, pk):
    """Fetch one row with SELECT ... FOR UPDATE, or raise NotFoundError."""
    try:
        return queryset.select_for_update(nowait=_nowait()).get(pk=pk)
    except queryset.model.DoesNotExist:
        raise NotFoundError(f"{label} {pk} not found")
    except OperationalError as exc:
        raise ConflictError(f"{label} {pk} is being modified by another request") from exc


def lock_rows(queryset, nowait=None):
    """Lock every row of ``queryset`` in primary-key order (no lock cycles).

    ``nowait`` overrides BOOKKEEPING_LOCK_NOWAIT for this call.
    """
    if nowait is None:
        nowait = _nowait()
    try:
        return list(queryset.select_for_update(nowait=nowait).order_by("pk"))
    except OperationalError as exc:
        raise ConflictError("Rows are being modified by another request") from exc
