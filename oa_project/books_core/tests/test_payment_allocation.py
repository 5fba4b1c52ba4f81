import datetime
import threading
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as ModelValidationError
from django.db import OperationalError, connection

from ..context import BookContext
from ..exceptions import (ConflictError, InsufficientPaymentBalanceError,
                          InvalidStateTransitionError, NotFoundError,
                          OverpaymentError, ValidationError)
from ..models import (AuditLog, Company, Contact, Invoice, JournalEntry, Payment,
                      PaymentAllocation)
from ..services import accounts, invoicing, ledger, payments
from .base import BooksTestCase, BooksTransactionTestCase

D = Decimal


class LockedLedger:
    """Ledger that always loses the lock race."""

    def post_entry(self, ctx, lines, **kwargs):
        raise OperationalError("could not obtain lock on row in relation \"books_core_account\"")

    def reverse_entry(self, ctx, entry_id, reason="", date=None):
        raise OperationalError("could not obtain lock")


class PaymentAllocationTests(BooksTestCase):

    def receive(self, amount, payment_date=datetime.date(2024, 1, 15), **kwargs):
        return payments.create_payment(
            self.ctx,
            payment_type="received",
            amount=amount,
            payment_date=payment_date,
            contact=self.customer,
            **kwargs,
        )

    def test_partial_then_full_payment(self):
        invoice = self.make_invoice(amount="1000.00")
        first = self.receive(D("600.00"))

        payments.allocate_to_invoice(self.ctx, first.pk, invoice.pk, D("600.00"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, "partially_paid")
        self.assertEqual(invoice.amount_due, D("400.00"))

        second = self.receive(D("400.00"))
        payments.allocate_to_invoice(self.ctx, second.pk, invoice.pk, D("400.00"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, "paid")
        self.assertEqual(invoice.amount_paid, D("1000.00"))
        self.assertEqual(invoice.allocated_total(), D("1000.00"))

        third = self.receive(D("1.00"))
        with self.assertRaises(OverpaymentError):
            payments.allocate_to_invoice(self.ctx, third.pk, invoice.pk, D("1.00"))

        # AR fully settled, cash holds the two payments
        self.assertEqual(ledger.get_account_balance(self.ctx, self.receivable.pk), D("0.00"))
        self.assertEqual(ledger.get_account_balance(self.ctx, self.cash.pk), D("1000.00"))

    def test_allocation_posts_cash_entry_linked_to_both_documents(self):
        invoice = self.make_invoice(amount="250.00")
        payment = self.receive(D("250.00"))

        allocation = payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, "250.00")

        entry = allocation.journal_entry
        self.assertEqual(entry.status, "posted")
        self.assertEqual(entry.source_type, "payment")
        self.assertEqual(entry.date, payment.payment_date)
        for line in entry.lines.all():
            self.assertEqual(line.invoice_id, invoice.pk)
            self.assertEqual(line.payment_id, payment.pk)
        self.assertTrue(AuditLog.objects.filter(action="allocate", object_id=str(payment.pk)).exists())

    def test_allocation_beyond_payment_balance(self):
        invoice = self.make_invoice(amount="1000.00")
        payment = self.receive(D("300.00"))

        with self.assertRaises(InsufficientPaymentBalanceError):
            payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, D("300.01"))

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, "sent")
        self.assertEqual(PaymentAllocation.objects.count(), 0)

    def test_one_payment_split_across_invoices(self):
        first = self.make_invoice(amount="100.00")
        second = self.make_invoice(amount="200.00")
        payment = self.receive(D("250.00"))

        payments.allocate_to_invoice(self.ctx, payment.pk, first.pk, D("100.00"))
        payments.allocate_to_invoice(self.ctx, payment.pk, second.pk, D("150.00"))

        payment.refresh_from_db()
        self.assertEqual(payment.amount_allocated, D("250.00"))
        self.assertEqual(payment.amount_unallocated, D("0.00"))
        with self.assertRaises(InsufficientPaymentBalanceError):
            payments.allocate_to_invoice(self.ctx, payment.pk, second.pk, D("0.01"))

    def test_sequential_allocations_cannot_overpay(self):
        invoice = self.make_invoice(amount="1000.00")
        a = self.receive(D("700.00"))
        b = self.receive(D("700.00"))

        payments.allocate_to_invoice(self.ctx, a.pk, invoice.pk, D("700.00"))
        with self.assertRaises(OverpaymentError):
            payments.allocate_to_invoice(self.ctx, b.pk, invoice.pk, D("700.00"))

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, D("700.00"))
        self.assertLessEqual(invoice.amount_paid, invoice.total)

    def test_direction_must_match(self):
        bill = self.make_invoice(amount="100.00", invoice_type="purchase")
        payment = self.receive(D("100.00"))
        with self.assertRaises(ValidationError):
            payments.allocate_to_invoice(self.ctx, payment.pk, bill.pk, D("100.00"))

    def test_payment_made_settles_bill(self):
        bill = self.make_invoice(amount="80.00", invoice_type="purchase")
        payment = payments.create_payment(
            self.ctx, payment_type="made", amount="80.00", contact=self.supplier,
            payment_date=datetime.date(2024, 1, 5),
        )
        self.assertEqual(payment.payment_number, "OUT-00001")

        payments.allocate_to_invoice(self.ctx, payment.pk, bill.pk, D("80.00"))

        bill.refresh_from_db()
        self.assertEqual(bill.status, "paid")
        self.assertEqual(ledger.get_account_balance(self.ctx, self.payable.pk), D("0.00"))
        # money left the bank
        self.assertEqual(ledger.get_account_balance(self.ctx, self.cash.pk), D("-80.00"))

    def test_draft_and_void_invoices_cannot_receive_allocations(self):
        draft = self.make_invoice(amount="100.00", send=False)
        voided = self.make_invoice(amount="100.00")
        invoicing.void_invoice(self.ctx, voided.pk)
        payment = self.receive(D("100.00"))

        for invoice in (draft, voided):
            with self.assertRaises(InvalidStateTransitionError):
                payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, D("10.00"))

    def test_invalid_amounts(self):
        invoice = self.make_invoice(amount="100.00")
        payment = self.receive(D("100.00"))
        for amount in (D("0"), D("-5.00"), D("1.001"), "abc", "1234567890123456789"):
            with self.assertRaises(ValidationError):
                payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, amount)

    def test_missing_rows_are_not_found(self):
        invoice = self.make_invoice(amount="100.00")
        payment = self.receive(D("100.00"))
        with self.assertRaises(NotFoundError):
            payments.allocate_to_invoice(self.ctx, 987654, invoice.pk, D("10.00"))
        with self.assertRaises(NotFoundError):
            payments.allocate_to_invoice(self.ctx, payment.pk, 987654, D("10.00"))

    def test_lock_conflict_surfaces_as_conflict_and_rolls_back(self):
        invoice = self.make_invoice(amount="100.00")
        payment = self.receive(D("100.00"))

        with self.assertRaises(ConflictError):
            payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, D("50.00"), ledger=LockedLedger())

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, D("0.00"))
        self.assertEqual(invoice.status, "sent")
        self.assertEqual(PaymentAllocation.objects.count(), 0)


class CreatePaymentTests(BooksTestCase):

    def test_create_with_allocations(self):
        first = self.make_invoice(amount="100.00")
        second = self.make_invoice(amount="300.00")

        payment = payments.create_payment(
            self.ctx,
            payment_type="received",
            amount=D("350.00"),
            contact=self.customer,
            allocations=[(first.pk, D("100.00")), (second.pk, "250.00")],
        )

        self.assertEqual(payment.payment_number, "PMT-00001")
        self.assertEqual(payment.amount_unallocated, D("0.00"))
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, "paid")
        self.assertEqual(second.status, "partially_paid")

    def test_failed_allocation_discards_payment(self):
        invoice = self.make_invoice(amount="100.00")
        with self.assertRaises(OverpaymentError):
            payments.create_payment(
                self.ctx,
                payment_type="received",
                amount=D("500.00"),
                allocations=[(invoice.pk, D("500.00"))],
            )
        self.assertEqual(Payment.objects.count(), 0)
        # only the invoice's own entry exists
        self.assertEqual(JournalEntry.objects.count(), 1)

    def test_explicit_cash_account(self):
        petty = accounts.create_account(self.ctx, "1010", "Petty Cash", "asset")
        invoice = self.make_invoice(amount="20.00")
        payments.create_payment(
            self.ctx,
            payment_type="received",
            amount="20.00",
            payment_method="cash",
            cash_account=petty,
            allocations=[(invoice.pk, "20.00")],
        )
        self.assertEqual(ledger.get_account_balance(self.ctx, petty.pk), D("20.00"))
        self.assertEqual(ledger.get_account_balance(self.ctx, self.cash.pk), D("0.00"))

    def test_validation(self):
        with self.assertRaises(ValidationError):
            payments.create_payment(self.ctx, payment_type="refund", amount="10.00")
        with self.assertRaises(ValidationError):
            payments.create_payment(self.ctx, payment_type="received", amount="0")
        with self.assertRaises(ValidationError):
            payments.create_payment(self.ctx, payment_type="received", amount=10.0)
        with self.assertRaises(ValidationError):
            payments.create_payment(self.ctx, payment_type="received", amount="10000000000000000.00")
        with self.assertRaises(ValidationError):
            payments.create_payment(self.ctx, payment_type="received", amount="10.00", payment_method="barter")
        self.assertEqual(Payment.objects.count(), 0)

    def test_amount_is_fixed_after_creation(self):
        payment = payments.create_payment(self.ctx, payment_type="received", amount="10.00")
        payment.amount = D("20.00")
        with self.assertRaises(ModelValidationError):
            payment.save()

    def test_allocations_are_permanent(self):
        invoice = self.make_invoice(amount="10.00")
        payment = payments.create_payment(
            self.ctx, payment_type="received", amount="10.00", allocations=[(invoice.pk, "10.00")]
        )
        allocation = payment.allocations.get()
        with self.assertRaises(ModelValidationError):
            allocation.delete()
        with self.assertRaises(ModelValidationError):
            allocation.save()


class UnallocatedPaymentTests(BooksTestCase):

    def test_oldest_first_and_fully_allocated_excluded(self):
        invoice = self.make_invoice(amount="50.00")
        late = payments.create_payment(
            self.ctx, payment_type="received", amount="10.00", payment_date=datetime.date(2024, 2, 1)
        )
        early = payments.create_payment(
            self.ctx, payment_type="received", amount="30.00", payment_date=datetime.date(2024, 1, 1)
        )
        spent = payments.create_payment(
            self.ctx, payment_type="received", amount="50.00", payment_date=datetime.date(2023, 12, 1),
            allocations=[(invoice.pk, "50.00")],
        )
        outgoing = payments.create_payment(
            self.ctx, payment_type="made", amount="5.00", payment_date=datetime.date(2023, 6, 1)
        )

        received = list(payments.get_unallocated_payments(self.ctx, "received"))
        self.assertEqual(received, [early, late])
        self.assertNotIn(spent, received)
        self.assertEqual(received[0].allocated, D("0.00"))

        everything = list(payments.get_unallocated_payments(self.ctx))
        self.assertEqual(everything, [outgoing, early, late])

    def test_partially_allocated_payment_is_listed(self):
        invoice = self.make_invoice(amount="50.00")
        payment = payments.create_payment(
            self.ctx, payment_type="received", amount="80.00", allocations=[(invoice.pk, "50.00")]
        )
        [listed] = payments.get_unallocated_payments(self.ctx)
        self.assertEqual(listed, payment)
        self.assertEqual(listed.amount - listed.allocated, D("30.00"))


@pytest.mark.django_db
def test_allocation_cannot_cross_companies():
    other = Company.objects.create(name="Other Co", slug="other-co")
    home = Company.objects.create(name="Home Co", slug="home-co")
    other_ctx = BookContext(company=other)
    home_ctx = BookContext(company=home)
    accounts.set_up_default_chart(other_ctx)
    accounts.set_up_default_chart(home_ctx)

    customer = Contact.objects.create(company=other, name="Foreign Customer")
    invoice = invoicing.create_invoice(other_ctx, contact=customer, lines=[{"unit_price": "10.00"}])
    invoicing.send_invoice(other_ctx, invoice.pk)
    payment = payments.create_payment(home_ctx, payment_type="received", amount="10.00")

    with pytest.raises(NotFoundError):
        payments.allocate_to_invoice(home_ctx, payment.pk, invoice.pk, "10.00")
    assert Invoice.objects.get(pk=invoice.pk).amount_paid == D("0.00")


class ConcurrentAllocationTests(BooksTransactionTestCase):
    """Two requests race to settle the same invoice on separate connections."""

    def test_only_one_of_two_racing_allocations_lands(self):
        invoice = self.make_invoice(amount="1000.00")
        racers = [
            payments.create_payment(self.ctx, payment_type="received", amount="700.00")
            for _ in range(2)
        ]
        barrier = threading.Barrier(len(racers))
        outcomes = []

        def allocate(payment):
            try:
                barrier.wait(timeout=5)
                payments.allocate_to_invoice(self.ctx, payment.pk, invoice.pk, D("700.00"))
                outcomes.append("allocated")
            except (OverpaymentError, ConflictError) as exc:
                outcomes.append(type(exc).__name__)
            finally:
                connection.close()

        threads = [threading.Thread(target=allocate, args=(payment,)) for payment in racers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        # the loser either queued and saw 300 due, or hit the write lock
        self.assertEqual(len(outcomes), 2)
        self.assertEqual(outcomes.count("allocated"), 1)
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, D("700.00"))
        self.assertEqual(invoice.status, "partially_paid")
        self.assertEqual(PaymentAllocation.objects.count(), 1)
