from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from ..money import ZERO
from .account import Account
from .company import Company
from .contact import Contact
from .invoice import Invoice
from .journal import JournalEntry

PAYMENT_TYPES = [
    ("received", "Received"),  # money in from a customer
    ("made", "Made"),  # money out to a supplier
]

PAYMENT_METHODS = [
    ("bank_transfer", "Bank Transfer"),
    ("cash", "Cash"),
    ("card", "Card"),
    ("cheque", "Cheque"),
    ("other", "Other"),
]

# Which invoices a payment may settle
INVOICE_TYPE_FOR_PAYMENT = {
    "received": "sales",
    "made": "purchase",
}


class Payment(models.Model):
    """Money received or paid. The amount is fixed at creation; allocations
    accumulate against it and may never exceed it."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    payment_type = models.CharField(max_length=10, choices=PAYMENT_TYPES)
    # "PMT-00001" for received, "OUT-00001" for made
    payment_number = models.CharField(max_length=32)
    contact = models.ForeignKey(
        Contact, null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    payment_date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHODS, default="bank_transfer")
    reference = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    # Bank/cash account the money moved through; cash role when empty
    cash_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ["-payment_date", "-payment_number"]
        indexes = [
            models.Index(fields=["company", "payment_type", "payment_date"], name="pmt_company_type_date_idx"),
            models.Index(fields=["company", "contact"], name="pmt_company_contact_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "payment_number"], name="uq_payment_company_number"
            ),
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="payment_amount_positive"),
        ]

    def __str__(self):
        return f"{self.payment_number} {self.amount}"

    @property
    def amount_allocated(self):
        return self.allocations.aggregate(total=models.Sum("amount"))["total"] or ZERO

    @property
    def amount_unallocated(self):
        return self.amount - self.amount_allocated

    def clean(self):
        if self.contact_id and self.contact.company_id != self.company_id:
            raise ValidationError("Contact must belong to the same company.")
        if self.cash_account_id and self.cash_account.company_id != self.company_id:
            raise ValidationError("Cash account must belong to the same company.")
        if self.pk:
            orig = Payment.objects.using(self._state.db).filter(pk=self.pk).first()
            if orig is not None and (orig.amount != self.amount or orig.payment_type != self.payment_type):
                raise ValidationError("Payment amount and type are fixed at creation.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.allocations.exists():
            raise ValidationError("Cannot delete a payment that has allocations.")
        return super().delete(*args, **kwargs)


class PaymentAllocation(models.Model):
    """Part of a payment applied to one invoice. Permanent once written."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="allocations")
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="allocations")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    # cash movement entry posted for this allocation
    journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True, on_delete=models.PROTECT, related_name="allocations"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["company", "payment"], name="alloc_company_payment_idx"),
            models.Index(fields=["company", "invoice"], name="alloc_company_invoice_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="allocation_amount_positive"),
        ]

    def __str__(self):
        return f"{self.payment_id} -> {self.invoice_id}: {self.amount}"

    def clean(self):
        if self.payment.company_id != self.company_id or self.invoice.company_id != self.company_id:
            raise ValidationError("Payment, invoice and allocation must share a company.")

    def save(self, *args, **kwargs):
        # no updates: allocations are only ever superseded by new ones
        if self.pk:
            raise ValidationError("Payment allocations are immutable.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Payment allocations are permanent and cannot be deleted.")
