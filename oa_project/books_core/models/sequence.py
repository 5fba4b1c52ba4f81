from django.db import models

from ..managers import TenantManager
from .company import Company


class DocumentSequence(models.Model):
    """Per-company counter behind invoice, payment and journal numbers.

    Rows are locked with select_for_update while a number is taken, so
    numbers are gap-free within a committed history and never reused.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # "invoice:sales", "invoice:purchase", "payment:received", "journal", ...
    name = models.CharField(max_length=50)
    next_value = models.PositiveBigIntegerField(default=1)

    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_sequence_name"
            ),
        ]

    def __str__(self):
        return f"{self.company_id}:{self.name}={self.next_value}"
