from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .company import Company

CONTACT_TYPES = [
    ("customer", "Customer"),
    ("supplier", "Supplier"),
    ("both", "Customer & Supplier"),
]


def default_payment_terms():
    return settings.BOOKKEEPING_DEFAULT_PAYMENT_TERMS_DAYS


# ---------- Contact ----------
# Counterparty on invoices and payments (customer, supplier, or both)
class Contact(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    contact_type = models.CharField(max_length=10, choices=CONTACT_TYPES, default="customer")
    email = models.EmailField(blank=True, default="")
    # Standard credit terms: due date = issue date + terms
    payment_terms_days = models.PositiveIntegerField(default=default_payment_terms)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["company", "name"], name="contact_company_name_idx")]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_contact_name"
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.payment_terms_days is not None and self.payment_terms_days > 365:
            raise ValidationError("Payment terms cannot exceed 365 days.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
