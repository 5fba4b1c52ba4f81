from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .company import Company

# Choice Lists
AC_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("income", "Income"),
    ("expense", "Expense"),
]

# Define whether the account normally increases
# on the debit side or credit side
NORMAL_BALANCE = [
    ("debit", "Debit"),
    ("credit", "Credit"),
]

# Assets/Expenses -> Debit, Liabilities/Equity/Income -> Credit
DEBIT_NORMAL_TYPES = {"asset", "expense"}


def normal_balance_for(ac_type):
    return "debit" if ac_type in DEBIT_NORMAL_TYPES else "credit"


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per company
    - ac_type: Balance Sheet vs P&L classification
    - normal_balance: the side a balance is reported on

    The balance itself is never stored; it is summed from journal lines.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=200)
    ac_type = models.CharField(max_length=10, choices=AC_TYPES)
    normal_balance = models.CharField(
        max_length=6, choices=NORMAL_BALANCE, default="debit"
    )
    # Optional hierarchy (1000 Cash -> 1001 Petty Cash)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # you can't delete a parent if children exist
    )
    # "soft deactivate" accounts (stop new postings) without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "ac_type"], name="account_company_type_idx"),
            models.Index(fields=["company", "code"], name="account_company_code_idx"),
        ]
        # Codes repeat across companies but must be unique within one
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"], name="uq_company_account_code"
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    def clean(self):
        if self.parent and self.parent.company_id != self.company_id:
            raise ValidationError(
                "Parent & child accounts must belong to the same company"
            )
        if self.normal_balance != normal_balance_for(self.ac_type):
            # contra accounts are allowed, but only on balance sheet types
            if self.ac_type in ("income", "expense"):
                raise ValidationError(
                    f"{self.get_ac_type_display()} accounts must have a "
                    f"{normal_balance_for(self.ac_type)} normal balance"
                )

    def save(self, *args, **kwargs):
        """Can't disable accounts used in journal lines."""
        if self.pk:
            old = Account.objects.using(self._state.db).filter(pk=self.pk).first()
            if old and old.is_active and not self.is_active:
                from .journal import JournalLine

                if JournalLine.objects.using(self._state.db).filter(account=self).exists():
                    raise ValidationError(
                        "Cannot disable an account that is used in journal lines."
                    )
        self.full_clean()
        return super().save(*args, **kwargs)
