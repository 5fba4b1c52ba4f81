from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager


def default_interest_rate():
    return Decimal(settings.BOOKKEEPING_DEFAULT_INTEREST_RATE)


# ---------- Tenant / Company ----------
class Company(models.Model):
    """Tenant / Organization"""

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=80, unique=True)
    # all journal entries and invoices are kept in this currency
    currency_code = models.CharField(max_length=10, default="USD")

    # Simple daily rate applied to overdue invoices (0.0005 = 0.05% per day)
    late_payment_interest_rate = models.DecimalField(
        max_digits=10, decimal_places=8, default=default_interest_rate
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name


# ---------- EntityMembership ----------
class EntityMembership(models.Model):
    """Bridge between a user and the companies they may act for."""

    ROLE_CHOICES = [
        ("owner", "Owner"),
        ("admin", "Admin"),
        ("accountant", "Accountant"),
        ("viewer", "Viewer"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    company = models.ForeignKey(
        Company, on_delete=models.CASCADE, related_name="memberships"
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default="viewer")
    # company picked when the session has not selected one
    is_default = models.BooleanField(default=False)
    # suspend access without deleting the record
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "company"], name="uq_user_company_membership"
            ),
        ]
        indexes = [
            models.Index(fields=["company", "user"], name="membership_company_user_idx"),
        ]

    def __str__(self):
        return f"{self.user} @ {self.company} ({self.role})"

    def clean(self):
        # only one default company per user
        if self.is_default and self.user_id:
            others = EntityMembership.objects.filter(
                user_id=self.user_id, is_default=True
            ).exclude(pk=self.pk)
            if others.exists():
                raise ValidationError("User already has a default company.")

    def save(self, *args, **kwargs):
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
