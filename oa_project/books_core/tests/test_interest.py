import datetime
from decimal import Decimal
from unittest import mock

from django.test import override_settings

from ..exceptions import NotFoundError, ValidationError
from ..models import AuditLog, InvoiceInterest
from ..services import interest, invoicing, payments
from .base import BooksTestCase

D = Decimal

DUE = datetime.date(2024, 1, 1)


class CalculateInterestTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        self.invoice = self.make_invoice(amount="1000.00", due_date=DUE)

    def pay(self, amount):
        payments.create_payment(
            self.ctx,
            payment_type="received",
            amount=amount,
            payment_date=datetime.date(2023, 12, 20),
            allocations=[(self.invoice.pk, amount)],
        )

    def test_interest_on_remaining_balance(self):
        self.pay("600.00")

        result = interest.calculate_interest(
            self.ctx, self.invoice.pk, daily_rate="0.0005", as_of=datetime.date(2024, 1, 31)
        )

        self.assertEqual(result.days_overdue, 30)
        self.assertEqual(result.principal, D("400.00"))
        self.assertEqual(result.interest, D("6.00"))
        self.assertEqual(result.total_with_interest, D("406.00"))
        self.assertEqual(result.daily_interest, D("0.20"))
        self.assertEqual(result.currency, "USD")

        record = InvoiceInterest.objects.get(invoice=self.invoice)
        self.assertEqual(record, result.record)
        self.assertEqual(record.days_overdue, 30)
        self.assertEqual(record.principal_amount, D("400.00"))
        self.assertEqual(record.interest_rate, D("0.0005"))
        self.assertEqual(record.interest_amount, D("6.00"))
        self.assertEqual(record.calculated_at, datetime.date(2024, 1, 31))

    def test_company_rate_is_the_default(self):
        # default company rate is 0.0005 per day
        result = interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 1, 11))
        self.assertEqual(result.rate, D("0.0005"))
        self.assertEqual(result.interest, D("5.00"))

    def test_interest_rounds_half_up_once(self):
        # 333.33 x 0.0003 x 5 = 0.499995 -> 0.50
        invoice = self.make_invoice(amount="333.33", due_date=DUE)
        result = interest.calculate_interest(self.ctx, invoice.pk, daily_rate="0.0003", as_of=datetime.date(2024, 1, 6))
        self.assertEqual(result.interest, D("0.50"))

    def test_not_overdue_records_nothing(self):
        for as_of in (datetime.date(2023, 12, 31), DUE):
            result = interest.calculate_interest(self.ctx, self.invoice.pk, as_of=as_of)
            self.assertEqual(result.days_overdue, 0)
            self.assertEqual(result.interest, D("0.00"))
            self.assertEqual(result.total_with_interest, D("1000.00"))
            self.assertIsNone(result.record)
        self.assertFalse(InvoiceInterest.objects.exists())

    def test_paid_invoice_accrues_nothing(self):
        self.pay("1000.00")
        result = interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 6, 1))
        self.assertEqual(result.interest, D("0.00"))
        self.assertEqual(result.principal, D("0.00"))
        self.assertFalse(InvoiceInterest.objects.exists())

    def test_void_and_draft_invoices_accrue_nothing(self):
        draft = self.make_invoice(send=False, due_date=DUE)
        invoicing.void_invoice(self.ctx, self.invoice.pk)
        for invoice in (draft, self.invoice):
            result = interest.calculate_interest(self.ctx, invoice.pk, as_of=datetime.date(2024, 6, 1))
            self.assertEqual(result.interest, D("0.00"))
        self.assertFalse(InvoiceInterest.objects.exists())

    def test_repeat_calculation_appends_history(self):
        interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 1, 11))
        interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 1, 21))
        interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 1, 21))

        history = list(interest.interest_history(self.ctx, self.invoice.pk))
        self.assertEqual(len(history), 3)
        self.assertEqual(history[0].calculated_at, datetime.date(2024, 1, 21))
        self.assertEqual(history[-1].interest_amount, D("5.00"))
        self.assertEqual(interest.latest_interest(self.ctx, self.invoice.pk).interest_amount, D("10.00"))

    def test_interest_is_not_posted(self):
        entries_before = self.invoice.company.journalentry_set.count()
        interest.calculate_interest(self.ctx, self.invoice.pk, as_of=datetime.date(2024, 2, 1))
        self.assertEqual(self.invoice.company.journalentry_set.count(), entries_before)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total, D("1000.00"))

    def test_rate_validation(self):
        for rate in ("-0.0001", "0.0101", 0.0005, "x", "0.000123456"):
            with self.assertRaises(ValidationError):
                interest.calculate_interest(self.ctx, self.invoice.pk, daily_rate=rate, as_of=datetime.date(2024, 2, 1))
        self.assertFalse(InvoiceInterest.objects.exists())

    def test_upper_bound_is_inclusive(self):
        result = interest.calculate_interest(
            self.ctx, self.invoice.pk, daily_rate="0.01", as_of=datetime.date(2024, 1, 2)
        )
        self.assertEqual(result.interest, D("10.00"))

    def test_missing_invoice(self):
        with self.assertRaises(NotFoundError):
            interest.calculate_interest(self.ctx, 987654)
        with self.assertRaises(NotFoundError):
            interest.interest_history(self.ctx, 987654)


class BatchInterestTests(BooksTestCase):

    def test_batch_covers_overdue_invoices_only(self):
        late = self.make_invoice(amount="100.00", due_date=DUE)
        later = self.make_invoice(amount="200.00", due_date=datetime.date(2024, 1, 11))
        self.make_invoice(amount="300.00", due_date=datetime.date(2024, 3, 1))

        batch = interest.calculate_interest_for_overdue_invoices(
            self.ctx, daily_rate="0.001", as_of=datetime.date(2024, 1, 21)
        )

        self.assertEqual(
            {r.invoice_id: r.interest for r in batch.results},
            {late.pk: D("2.00"), later.pk: D("2.00")},
        )
        self.assertEqual(batch.failures, [])
        self.assertEqual(batch.total_interest, D("4.00"))
        self.assertEqual(InvoiceInterest.objects.count(), 2)

    def test_one_failure_does_not_stop_the_batch(self):
        broken = self.make_invoice(amount="100.00", due_date=DUE)
        fine = self.make_invoice(amount="100.00", due_date=DUE)
        real_calculate = interest._calculate

        def flaky(ctx, invoice, rate, as_of):
            if invoice.pk == broken.pk:
                raise ValidationError("principal could not be read")
            return real_calculate(ctx, invoice, rate, as_of)

        with mock.patch.object(interest, "_calculate", side_effect=flaky):
            batch = interest.calculate_interest_for_overdue_invoices(self.ctx, as_of=datetime.date(2024, 1, 11))

        self.assertEqual([r.invoice_id for r in batch.results], [fine.pk])
        self.assertEqual(batch.failures, [(broken.pk, "principal could not be read")])
        self.assertEqual(list(InvoiceInterest.objects.values_list("invoice_id", flat=True)), [fine.pk])

    def test_unexpected_errors_are_collected(self):
        invoice = self.make_invoice(amount="100.00", due_date=DUE)
        with mock.patch.object(interest, "_calculate", side_effect=RuntimeError("boom")):
            batch = interest.calculate_interest_for_overdue_invoices(self.ctx, as_of=datetime.date(2024, 1, 11))
        self.assertEqual(batch.failures, [(invoice.pk, "boom")])

    def test_invalid_batch_rate_fails_up_front(self):
        self.make_invoice(amount="100.00", due_date=DUE)
        with self.assertRaises(ValidationError):
            interest.calculate_interest_for_overdue_invoices(self.ctx, daily_rate="1")


class InterestRateTests(BooksTestCase):

    def test_update_rate(self):
        company = interest.update_interest_rate(self.ctx, "0.0007")
        self.assertEqual(company.late_payment_interest_rate, D("0.0007"))

        invoice = self.make_invoice(amount="1000.00", due_date=DUE)
        result = interest.calculate_interest(self.ctx, invoice.pk, as_of=datetime.date(2024, 1, 11))
        self.assertEqual(result.interest, D("7.00"))

        log = AuditLog.objects.get(action="update_interest_rate")
        self.assertEqual(log.changes["to"], "0.0007")

    def test_rate_above_maximum_rejected(self):
        with self.assertRaises(ValidationError):
            interest.update_interest_rate(self.ctx, "0.02")
        self.company.refresh_from_db()
        self.assertEqual(self.company.late_payment_interest_rate, D("0.0005"))

    @override_settings(BOOKKEEPING_MAX_DAILY_INTEREST_RATE="0.001")
    def test_maximum_comes_from_settings(self):
        with self.assertRaises(ValidationError):
            interest.validate_rate("0.002")
        self.assertEqual(interest.validate_rate("0.001"), D("0.001"))
