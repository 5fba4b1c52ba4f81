import hashlib
import json
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (AlreadyPostedDifferentPayload, ImbalancedEntryError,
                          InvalidLineError, InvalidStateTransitionError)
from ..managers import JournalLineManager, TenantManager
from ..money import is_whole_cents
from .account import Account
from .company import Company

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized, lines immutable
    ("void", "Void"),  # cancelled by a reversing entry, lines kept for audit
]

# Once posted, the only way out is a reversal
ALLOWED_TRANSITIONS = {
    "draft": ["posted"],
    "posted": ["void"],
    "void": [],
}


def check_line_amounts(debit, credit):
    """Exactly one side positive, the other zero, both in whole cents."""
    if debit < 0 or credit < 0:
        raise InvalidLineError(
            f"Journal line amounts cannot be negative: debit={debit}, credit={credit}"
        )
    if debit and credit:
        raise InvalidLineError(
            f"Journal line cannot have both debit and credit: debit={debit}, credit={credit}"
        )
    if not debit and not credit:
        raise InvalidLineError("Journal line must have a non-zero debit or credit")
    if not is_whole_cents(debit) or not is_whole_cents(credit):
        raise InvalidLineError(
            f"Journal line amount is finer than the currency unit: debit={debit}, credit={credit}"
        )


# ---------- Journal (Header) & JournalLine ----------
class JournalEntry(models.Model):
    """One accounting transaction: a balanced set of debit/credit lines."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # tenant-sequential, e.g. "JE-00001"
    entry_number = models.CharField(max_length=32)
    date = models.DateField()
    reference = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=JOURNAL_STATUS, default="draft")
    posted_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL
    )
    # Where the entry came from ("invoice", "payment", "reversal", "manual")
    source_type = models.CharField(max_length=50, blank=True, default="")
    source_id = models.BigIntegerField(null=True, blank=True)
    # Fingerprint-based idempotency (safe to post twice if nothing has changed)
    posting_fingerprint = models.CharField(max_length=64, blank=True, default="")

    # Forward pointer to the entry that cancels this one.
    # The reversing entry sees this one as `reversal_of`.
    reversed_by = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversal_of",
    )
    voided_at = models.DateTimeField(null=True, blank=True)
    void_reason = models.CharField(max_length=400, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "date"], name="je_company_date_idx"),
            models.Index(fields=["company", "status"], name="je_company_status_idx"),
            models.Index(fields=["company", "source_type", "source_id"], name="je_company_source_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "entry_number"], name="uq_je_company_number"
            )
        ]
        verbose_name_plural = "journal entries"

    def __str__(self):
        return f"{self.entry_number} {self.date} [{self.status}]"

    @property
    def is_reversal(self):
        return self.source_type == "reversal"

    def compute_totals(self):
        """Return debits, credits sums for lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def _posting_payload(self):
        """Deterministic JSON snapshot of what matters for posting.

        Same lines, same date -> same string, so a repeated post of an
        unchanged entry can be recognised and skipped.
        """
        lines = [
            {
                "acct": line.account_id,
                "debit": str(line.debit),
                "credit": str(line.credit),
                "desc": line.description or "",
            }
            for line in self.lines.order_by("line_number", "id")
        ]
        payload = {
            "company": self.company_id,
            "date": self.date.isoformat(),
            "lines": lines,
        }
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def _fingerprint(self):
        return hashlib.sha256(self._posting_payload().encode()).hexdigest()

    def post(self, user=None):
        """
        Validate and post the entry inside one database transaction.

        Raises InvalidLineError for fewer than two lines or a malformed line,
        ImbalancedEntryError when debits and credits differ. Posting an
        already posted entry is a no-op if its lines are unchanged.
        """
        db = self._state.db or "default"
        with transaction.atomic(using=db):
            # Lock the header so two posts of the same draft serialize
            je = JournalEntry.objects.db_manager(db).select_for_update().get(pk=self.pk)
            lines = list(je.lines.order_by("line_number", "id"))

            if len(lines) < 2:
                raise InvalidLineError(
                    f"Journal entry needs at least two lines, got {len(lines)}"
                )
            for line in lines:
                check_line_amounts(line.debit, line.credit)
                if line.company_id != je.company_id or line.account.company_id != je.company_id:
                    raise ValidationError(
                        "All journal lines must belong to same company as journal."
                    )

            td, tc = je.compute_totals()
            if td != tc:
                raise ImbalancedEntryError(
                    f"Journal not balanced: debits={td}, credits={tc}"
                )

            fp = je._fingerprint()

            """ Idempotency & immutability """
            if je.status in ("posted", "void"):
                if je.posting_fingerprint == fp:
                    return je
                raise AlreadyPostedDifferentPayload(
                    "Journal already posted with different payload."
                )

            je.status = "posted"
            je.posted_at = timezone.now()
            if user is not None and je.created_by_id is None:
                je.created_by = user
            je.posting_fingerprint = fp
            je.save(update_fields=["status", "posted_at", "created_by", "posting_fingerprint"])

        self.status = je.status
        self.posted_at = je.posted_at
        self.posting_fingerprint = je.posting_fingerprint
        return je

    def transition_to(self, new_status):
        if new_status not in ALLOWED_TRANSITIONS.get(self.status, []):
            raise InvalidStateTransitionError(
                f"Cannot go from {self.status} to {new_status}"
            )
        self.status = new_status

    def clean(self):
        """Don't modify posted journals"""
        if not self.pk:
            return
        orig = JournalEntry.objects.using(self._state.db).filter(pk=self.pk).first()
        if orig is None or orig.status == "draft":
            return
        for f in ("date", "company_id", "entry_number"):
            if getattr(orig, f) != getattr(self, f):
                raise ValidationError(
                    "Cannot modify a posted JournalEntry. It is immutable."
                )

    def save(self, *args, **kwargs):
        if self.pk:
            orig = JournalEntry.objects.using(self._state.db).filter(pk=self.pk).first()
            if orig is not None:
                if orig.status == "posted" and self.status == "draft":
                    raise ValidationError("Cannot unpost a posted journal")
                if orig.status == "void" and self.status != "void":
                    raise ValidationError("A voided journal cannot change status")
        self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.status != "draft":
            raise ValidationError("Posted journal entries cannot be deleted; reverse them.")
        return super().delete(*args, **kwargs)


class JournalLine(models.Model):
    """
    One debit or credit against a GL account.
    Optional links back to the invoice/payment that caused it.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    journal = models.ForeignKey(
        JournalEntry, on_delete=models.CASCADE, related_name="lines"
    )
    line_number = models.PositiveIntegerField(default=1)
    # can't delete account if lines exist
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    description = models.CharField(max_length=400, blank=True, default="")
    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Link each posting line back to the business object that caused it
    invoice = models.ForeignKey(
        "Invoice", null=True, blank=True, on_delete=models.PROTECT,
        related_name="journal_lines",
    )
    payment = models.ForeignKey(
        "Payment", null=True, blank=True, on_delete=models.PROTECT,
        related_name="journal_lines",
    )

    objects = JournalLineManager()

    class Meta:
        ordering = ["journal_id", "line_number", "id"]
        indexes = [
            models.Index(fields=["company", "account"], name="jl_company_account_idx"),
            models.Index(fields=["company", "journal"], name="jl_company_journal_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jl_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=models.Q(debit__gt=0) | models.Q(credit__gt=0),
                name="jl_debit_or_credit_nonzero",
            ),
            models.CheckConstraint(
                condition=models.Q(debit=0) | models.Q(credit=0),
                name="jl_not_both_debit_and_credit",
            ),
        ]

    def __str__(self):
        side = f"Dr {self.debit}" if self.debit else f"Cr {self.credit}"
        return f"{self.account_id} {side}"

    def clean(self):
        if self.debit and self.credit:
            raise ValidationError("Line cannot have both debit and credit.")
        if not self.debit and not self.credit:
            raise ValidationError("Line must have a debit or credit amount.")

        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company as line.")
        if self.journal_id and self.journal.company_id != self.company_id:
            raise ValidationError("Journal must belong to the same company as line.")

        # Lines of a posted or void journal are frozen
        if self.journal_id and self.journal.status != "draft":
            raise ValidationError("Cannot add or edit lines of a posted journal.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.journal.status != "draft":
            raise ValidationError("Cannot delete lines of a posted journal.")
        return super().delete(*args, **kwargs)
