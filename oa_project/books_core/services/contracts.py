"""
Capability sets the workflows depend on.

Invoicing and payments receive their collaborators as arguments typed with
these protocols; the real implementations are the ``ledger`` and
``invoicing`` modules, and tests pass stubs with the same functions.
"""
import datetime
from decimal import Decimal
from typing import Iterable, Optional, Protocol


class Ledger(Protocol):
    def post_entry(
        self,
        ctx,
        lines: Iterable,
        *,
        date: Optional[datetime.date] = None,
        description: str = "",
        reference: str = "",
        source_type: str = "manual",
        source_id: Optional[int] = None,
    ): ...

    def reverse_entry(self, ctx, entry_id, reason: str = "", date: Optional[datetime.date] = None): ...


class InvoiceLifecycle(Protocol):
    def record_allocation(self, ctx, invoice, amount: Decimal): ...
