from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..exceptions import InvalidStateTransitionError
from ..managers import TenantManager
from ..money import ZERO, round_money
from .account import Account
from .company import Company
from .contact import Contact
from .journal import JournalEntry

INVOICE_TYPES = [
    ("sales", "Sales"),  # we bill a customer (AR)
    ("purchase", "Purchase"),  # a supplier bills us (AP)
]

INV_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("sent", "Sent"),
    ("partially_paid", "Partially Paid"),
    ("paid", "Paid"),
    ("void", "Void"),
]
""" Workflow:
    draft = lines still editable, nothing in the ledger.
    sent = receivable/payable recognised in the ledger.
    partially_paid / paid = driven only by allocation totals.
    void = terminal, ledger entry reversed. """

ALLOWED_TRANSITIONS = {
    "draft": ["sent", "void"],
    "sent": ["partially_paid", "paid", "void"],
    "partially_paid": ["partially_paid", "paid", "void"],
    "paid": [],
    "void": [],
}

# Statuses that can still receive money and accrue interest
OPEN_STATUSES = ("sent", "partially_paid")

HUNDRED = Decimal("100")


def calculate_line_amounts(quantity, unit_price, discount_percent, tax_rate):
    """(subtotal, tax, total) for one line, each rounded half-up to cents."""
    gross = quantity * unit_price
    subtotal = round_money(gross * (HUNDRED - discount_percent) / HUNDRED)
    tax = round_money(subtotal * tax_rate / HUNDRED)
    return subtotal, tax, subtotal + tax


class Invoice(models.Model):
    """Sales invoice or purchase bill; totals always derived from lines."""

    # Invoice belongs to one company (multi-tenant)
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    invoice_type = models.CharField(max_length=10, choices=INVOICE_TYPES, default="sales")
    # assigned once at creation ("INV-00001" / "BILL-00001"), never reused
    invoice_number = models.CharField(max_length=32)
    contact = models.ForeignKey(
        Contact,
        on_delete=models.PROTECT,  # prevent deleting contact who has an invoice
        related_name="invoices",
    )
    issue_date = models.DateField()
    # payment deadline (defaults from the contact's payment terms)
    due_date = models.DateField()
    # moves only through ALLOWED_TRANSITIONS
    status = models.CharField(max_length=16, choices=INV_STATUS_CHOICES, default="draft")
    reference = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    # Derived from the lines by recalc_totals(), frozen once sent
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    # Sum of allocations, kept in step by the allocation workflow
    amount_paid = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)

    # Entry that recognised the receivable/payable when the invoice was sent
    journal_entry = models.ForeignKey(
        JournalEntry,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    # who created it (kept if the user is deleted)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL
    )
    # lifecycle timestamps, set by the invoicing service
    sent_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    void_reason = models.CharField(max_length=400, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        ordering = ["-issue_date", "-invoice_number"]
        # last one serves the overdue scan
        indexes = [
            models.Index(fields=["company", "invoice_number"], name="inv_company_number_idx"),
            models.Index(fields=["company", "contact"], name="inv_company_contact_idx"),
            models.Index(fields=["company", "status", "due_date"], name="inv_company_status_due_idx"),
        ]
        constraints = [
            # Within one company, each invoice number must be unique
            models.UniqueConstraint(
                fields=["company", "invoice_number"], name="uq_invoice_company_number"
            ),
            # Never overpaid, even if a service check is bypassed
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0) & models.Q(amount_paid__lte=models.F("total")),
                name="inv_amount_paid_within_total",
            ),
        ]

    def __str__(self):
        return self.invoice_number or f"Invoice {self.pk}"

    @property
    def amount_due(self):
        return self.total - self.amount_paid

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def allocated_total(self):
        """Sum of allocation rows, straight from the database."""
        return self.allocations.aggregate(total=models.Sum("amount"))["total"] or ZERO

    def recalc_totals(self):
        """Recompute subtotal / tax / total from the lines."""
        subtotal = tax = ZERO
        for line in self.lines.all():
            # line amounts are already rounded, so the sums stay in cents
            subtotal += line.line_subtotal
            tax += line.line_tax
        self.subtotal = subtotal
        self.tax_amount = tax
        self.total = subtotal + tax

    def status_for_amount_paid(self, amount_paid):
        # nothing paid yet: keep the current status
        if amount_paid <= 0:
            return self.status
        if amount_paid >= self.total:
            return "paid"
        # anything in between is a partial payment
        return "partially_paid"

    def transition_to(self, new_status):
        # Current state vs. allowed next states
        if new_status not in ALLOWED_TRANSITIONS.get(self.status, []):
            raise InvalidStateTransitionError(
                f"Invoice {self.invoice_number} cannot go from {self.status} to {new_status}"
            )
        # caller persists the change inside its unit of work
        self.status = new_status

    def clean(self):
        # Ensure the contact belongs to the same company
        if self.contact_id and self.contact.company_id != self.company_id:
            raise ValidationError("Contact must belong to the same company.")
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValidationError("Due date cannot be before the issue date.")
        if self.amount_paid > self.total:
            raise ValidationError("Amount paid cannot exceed the invoice total.")

        # Compare against the stored row for edits
        if self.pk:
            orig = Invoice.objects.using(self._state.db).filter(pk=self.pk).first()
            if orig is not None:
                if orig.invoice_number != self.invoice_number:
                    raise ValidationError("Invoice number cannot be changed once assigned.")
                # Amounts freeze when the invoice leaves draft
                if orig.status != "draft":
                    changed = [
                        f for f in ("total", "subtotal", "tax_amount", "contact_id", "invoice_type")
                        if getattr(orig, f) != getattr(self, f)
                    ]
                    if changed:
                        raise ValidationError(
                            f"Cannot modify {changed} on a {orig.get_status_display().lower()} invoice."
                        )

    def save(self, *args, **kwargs):
        self.full_clean()  # will trigger clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # Void an issued invoice instead of deleting it outright
        if self.allocations.exists():
            raise ValidationError("Cannot delete an invoice with applied payments.")
        if self.status != "draft":
            raise ValidationError("Only draft invoices can be deleted; void it instead.")
        return super().delete(*args, **kwargs)


class InvoiceLine(models.Model):
    """One priced line; amounts are computed on save."""

    # Line belongs to both company and parent invoice
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    line_number = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=400, blank=True, default="")

    # Core pricing: quantity x unit_price, less discount, plus tax
    quantity = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("1"))
    unit_price = models.DecimalField(max_digits=18, decimal_places=4, default=ZERO)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    # percent, e.g. 15.00 for 15% VAT
    tax_rate = models.DecimalField(max_digits=7, decimal_places=4, default=ZERO)

    # Computed by recalc() on every save, rounded half-up to cents
    line_subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    line_tax = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    line_total = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)

    # Income (sales) or expense (purchase) account; role default when empty
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        related_name="invoice_lines",
    )

    objects = TenantManager()

    class Meta:
        ordering = ["invoice_id", "line_number", "id"]
        indexes = [
            # all lines for one invoice
            models.Index(fields=["company", "invoice"], name="invl_company_invoice_idx"),
        ]
        constraints = [
            # Quantity positive, price and tax never negative
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(unit_price__gte=0) & models.Q(tax_rate__gte=0),
                name="invl_positive_quantity_non_negative_price",
            ),
            models.CheckConstraint(
                condition=models.Q(discount_percent__gte=0) & models.Q(discount_percent__lte=100),
                name="invl_discount_percent_range",
            ),
        ]

    def __str__(self):
        return f"{self.invoice_id}#{self.line_number} {self.description} {self.line_total}"

    def recalc(self):
        self.line_subtotal, self.line_tax, self.line_total = calculate_line_amounts(
            self.quantity, self.unit_price, self.discount_percent, self.tax_rate
        )

    def clean(self):
        if self.quantity is not None and self.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        if self.unit_price is not None and self.unit_price < 0:
            raise ValidationError("Unit price cannot be negative.")
        if self.invoice_id and self.invoice.company_id != self.company_id:
            raise ValidationError("Invoice line must belong to the invoice's company.")
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Line account must belong to the same company.")
        # Lines are frozen once the invoice leaves draft
        if self.invoice_id and self.invoice.status != "draft":
            raise ValidationError("Cannot change lines of an invoice that is no longer a draft.")

    def save(self, *args, **kwargs):
        self.recalc()
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.invoice.status != "draft":
            raise ValidationError("Cannot delete lines of an invoice that is no longer a draft.")
        return super().delete(*args, **kwargs)
