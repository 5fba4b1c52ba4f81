from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .company import Company
from .invoice import Invoice


class InvoiceInterest(models.Model):
    """One point-in-time late-interest estimate for an invoice.

    Append-only: every calculation run adds a row, a later run on another
    date adds another. Nothing here is posted to the ledger.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="interest_history")
    calculated_at = models.DateField()  # the as-of date of the estimate
    days_overdue = models.PositiveIntegerField()
    principal_amount = models.DecimalField(max_digits=18, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=10, decimal_places=8)
    interest_amount = models.DecimalField(max_digits=18, decimal_places=2)
    total_with_interest = models.DecimalField(max_digits=18, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        ordering = ["-calculated_at", "-id"]
        indexes = [models.Index(fields=["company", "invoice", "calculated_at"], name="interest_company_inv_date_idx")]
        verbose_name_plural = "invoice interest history"

    def __str__(self):
        return f"{self.invoice_id} @ {self.calculated_at}: {self.interest_amount}"

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Interest history rows are never updated.")
        self.full_clean()
        return super().save(*args, **kwargs)
