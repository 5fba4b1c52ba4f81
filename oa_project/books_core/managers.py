from decimal import Decimal

from django.db import models


# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a company
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_company(self, company):
        return self.filter(company=company)

    def active(self, company):
        return self.filter(company=company, is_active=True)


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    """Every tenant-owned model gets ``.for_company()`` / ``.active()``.

    Works with ``db_manager(alias)`` so service code can target the
    tenant's data partition:
        Invoice.objects.db_manager(ctx.using).for_company(ctx.company)
    """

    use_in_migrations = True


class PostedLineQuerySet(TenantQuerySet):
    # Lines that contribute to balances: posted entries and voided ones
    # (a voided entry is cancelled by its reversal, which is posted)
    def effective(self):
        return self.filter(journal__status__in=["posted", "void"])

    def debit_credit_totals(self):
        aggs = self.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )


class JournalLineManager(models.Manager.from_queryset(PostedLineQuerySet)):
    use_in_migrations = True
