from .account import Account
from .auditlog import AuditLog
from .company import Company, EntityMembership
from .contact import Contact
from .interest import InvoiceInterest
from .invoice import Invoice, InvoiceLine
from .journal import JournalEntry, JournalLine
from .payment import Payment, PaymentAllocation
from .sequence import DocumentSequence
