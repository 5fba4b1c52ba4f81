"""Chart of accounts setup and lookup."""
import logging

from django.conf import settings
from django.core.exceptions import ValidationError as ModelValidationError

from ..exceptions import NotFoundError, ValidationError
from ..models import Account
from ..models.account import AC_TYPES, normal_balance_for
from .locking import unit_of_work

logger = logging.getLogger(__name__)

VALID_TYPES = {value for value, _ in AC_TYPES}


def create_account(ctx, code, name, ac_type, normal_balance=None, parent=None):
    if ac_type not in VALID_TYPES:
        raise ValidationError(f"Unknown account type {ac_type!r}")
    if not code or not name:
        raise ValidationError("Account code and name are required")

    accounts = ctx.scoped(Account)
    if accounts.filter(code=code).exists():
        raise ValidationError(f"Account code {code} already exists")
    if parent is not None and not accounts.filter(pk=getattr(parent, "pk", parent)).exists():
        raise NotFoundError(f"Parent account {getattr(parent, 'pk', parent)} not found")

    try:
        account = accounts.create(
            company=ctx.company,
            code=code,
            name=name,
            ac_type=ac_type,
            normal_balance=normal_balance or normal_balance_for(ac_type),
            parent_id=getattr(parent, "pk", parent),
        )
    except ModelValidationError as exc:
        raise ValidationError("; ".join(exc.messages)) from exc
    logger.info("Created account %s %s for company %s", code, name, ctx.company.pk)
    return account


def deactivate_account(ctx, account_id):
    """Stop new postings to an unused account."""
    try:
        account = ctx.scoped(Account).get(pk=account_id)
    except Account.DoesNotExist:
        raise NotFoundError(f"Account {account_id} not found")
    account.is_active = False
    try:
        account.save(update_fields=["is_active"])
    except ModelValidationError as exc:
        raise ValidationError("; ".join(exc.messages)) from exc
    return account


def set_up_default_chart(ctx):
    """Create any missing account of the configured default chart."""
    created = []
    with unit_of_work(ctx):
        existing = set(ctx.scoped(Account).values_list("code", flat=True))
        for code, name, ac_type in settings.BOOKKEEPING_DEFAULT_CHART:
            if code in existing:
                continue
            created.append(create_account(ctx, code, name, ac_type))
    return created


def resolve_account(ctx, role):
    """Account playing ``role`` ("receivable", "sales", ...) for this tenant."""
    code = settings.BOOKKEEPING_ACCOUNT_ROLES.get(role)
    if code is None:
        raise ValidationError(f"No account code configured for role {role!r}")
    try:
        return ctx.scoped(Account).get(code=code)
    except Account.DoesNotExist:
        raise ValidationError(
            f"Company has no {role} account (code {code}); set up the chart of accounts first"
        )
