import json
from decimal import Decimal
from unittest import mock

from django.test import RequestFactory

from .. import views
from ..exceptions import ConflictError
from ..services import payments
from .base import BooksTestCase


class ViewTests(BooksTestCase):

    def setUp(self):
        super().setUp()
        self.factory = RequestFactory()

    def get(self, view, path="/", data=None, **kwargs):
        request = self.factory.get(path, data or {})
        request.book = self.ctx
        return view(request, **kwargs)

    def post(self, view, body=None, **kwargs):
        request = self.factory.post("/", data=json.dumps(body or {}), content_type="application/json")
        request.book = self.ctx
        return view(request, **kwargs)

    def test_create_and_list_invoices(self):
        response = self.post(
            views.invoice_list,
            {
                "contact": self.customer.pk,
                "issue_date": "2024-01-01",
                "due_date": "2024-01-31",
                "lines": [{"description": "Hours", "quantity": 2.5, "unit_price": 80.1, "tax_rate": "10"}],
            },
        )
        self.assertEqual(response.status_code, 201)
        created = json.loads(response.content)
        # 2.5 x 80.1 = 200.25, tax 20.03
        self.assertEqual(created["subtotal"], "200.25")
        self.assertEqual(created["total"], "220.28")
        self.assertEqual(created["status"], "draft")

        listing = json.loads(self.get(views.invoice_list, data={"status": "draft"}).content)
        self.assertEqual([row["number"] for row in listing], ["INV-00001"])

    def test_send_then_send_again_conflicts(self):
        invoice = self.make_invoice(send=False)

        response = self.post(views.invoice_send, invoice_id=invoice.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content)["status"], "sent")

        response = self.post(views.invoice_send, invoice_id=invoice.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)["error"], "InvalidStateTransitionError")

    def test_void(self):
        invoice = self.make_invoice()
        response = self.post(views.invoice_void, {"reason": "duplicate"}, invoice_id=invoice.pk)
        self.assertEqual(json.loads(response.content)["status"], "void")

    def test_allocate_and_error_statuses(self):
        invoice = self.make_invoice(amount="100.00")
        payment = payments.create_payment(self.ctx, payment_type="received", amount="150.00")

        response = self.post(views.payment_allocate, {"invoice": invoice.pk, "amount": "60.00"}, payment_id=payment.pk)
        self.assertEqual(response.status_code, 201)
        body = json.loads(response.content)
        self.assertEqual(body["invoice_status"], "partially_paid")
        self.assertEqual(body["invoice_amount_due"], "40.00")

        response = self.post(views.payment_allocate, {"invoice": invoice.pk, "amount": "50.00"}, payment_id=payment.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)["error"], "OverpaymentError")

        response = self.post(views.payment_allocate, {"invoice": invoice.pk, "amount": "-1"}, payment_id=payment.pk)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)["error"], "ValidationError")

        response = self.post(views.payment_allocate, {"invoice": 987654, "amount": "1.00"}, payment_id=payment.pk)
        self.assertEqual(response.status_code, 404)

    def test_conflict_is_marked_retryable(self):
        with mock.patch.object(payments, "allocate_to_invoice", side_effect=ConflictError("busy")):
            response = self.post(views.payment_allocate, {"invoice": 1, "amount": "1.00"}, payment_id=1)
        self.assertEqual(response.status_code, 409)
        body = json.loads(response.content)
        self.assertTrue(body["retryable"])
        self.assertEqual(body["message"], "busy")

    def test_unallocated_payments(self):
        payments.create_payment(self.ctx, payment_type="received", amount="10.00")
        payments.create_payment(self.ctx, payment_type="made", amount="5.00")

        rows = json.loads(self.get(views.unallocated_payments, data={"type": "made"}).content)
        self.assertEqual([(row["number"], row["unallocated"]) for row in rows], [("OUT-00001", "5.00")])

    def test_account_balance(self):
        self.make_invoice(amount="75.00")
        response = self.get(views.account_balance, data={"as_of": "2024-12-31"}, account_id=self.receivable.pk)
        self.assertEqual(json.loads(response.content)["balance"], "75.00")

        response = self.get(views.account_balance, data={"as_of": "31/12/2024"}, account_id=self.receivable.pk)
        self.assertEqual(response.status_code, 400)

    def test_interest_calculate_and_history(self):
        invoice = self.make_invoice(amount="400.00")

        response = self.post(views.invoice_interest, {"rate": "0.0005", "as_of": "2024-01-31"}, invoice_id=invoice.pk)
        result = json.loads(response.content)
        self.assertEqual(result["interest"], "6.00")
        self.assertTrue(result["recorded"])

        history = json.loads(self.get(views.invoice_interest, invoice_id=invoice.pk).content)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["days_overdue"], 30)

    def test_invalid_json_is_bad_request(self):
        request = self.factory.post("/", data="{nope", content_type="application/json")
        request.book = self.ctx
        response = views.invoice_list(request)
        self.assertEqual(response.status_code, 400)

    def test_request_without_company_is_forbidden(self):
        request = self.factory.get("/")
        request.book = None
        response = views.invoice_list(request)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(json.loads(response.content)["error"], "NoCompany")

    def test_wrong_method_is_rejected(self):
        request = self.factory.get("/")
        request.book = self.ctx
        self.assertEqual(views.invoice_send(request, invoice_id=1).status_code, 405)

    def test_float_amounts_arrive_as_decimal(self):
        invoice = self.make_invoice(amount="10.10")
        payment = payments.create_payment(self.ctx, payment_type="received", amount=Decimal("10.10"))
        request = self.factory.post(
            "/", data='{"invoice": %d, "amount": 10.10}' % invoice.pk, content_type="application/json"
        )
        request.book = self.ctx
        response = views.payment_allocate(request, payment_id=payment.pk)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(json.loads(response.content)["amount"], "10.10")

    def test_json_body_must_be_an_object(self):
        invoice = self.make_invoice()
        for body in ("[]", '"void"', "3"):
            request = self.factory.post("/", data=body, content_type="application/json")
            request.book = self.ctx
            response = views.invoice_void(request, invoice_id=invoice.pk)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(json.loads(response.content)["error"], "ValidationError")
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, "sent")

    def test_unit_price_finer_than_the_column_is_bad_request(self):
        response = self.post(
            views.invoice_list,
            {"contact": self.customer.pk, "lines": [{"quantity": "1", "unit_price": "1.123456"}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)["error"], "ValidationError")

    def test_oversized_amount_is_bad_request(self):
        invoice = self.make_invoice(amount="100.00")
        payment = payments.create_payment(self.ctx, payment_type="received", amount="100.00")
        response = self.post(
            views.payment_allocate, {"invoice": invoice.pk, "amount": "1234567890123456789.00"}, payment_id=payment.pk
        )
        self.assertEqual(response.status_code, 400)

    def test_invoice_detail(self):
        invoice = self.make_invoice(amount="75.00")
        body = json.loads(self.get(views.invoice_detail, invoice_id=invoice.pk).content)
        self.assertEqual(body["number"], invoice.invoice_number)
        self.assertEqual(body["journal_entry"], invoice.journal_entry_id)
        self.assertEqual([line["total"] for line in body["lines"]], ["75.00"])

        self.assertEqual(self.get(views.invoice_detail, invoice_id=987654).status_code, 404)

    def test_journal_entry_detail(self):
        invoice = self.make_invoice(amount="75.00")
        body = json.loads(self.get(views.journal_entry_detail, entry_id=invoice.journal_entry_id).content)
        self.assertEqual(body["status"], "posted")
        self.assertEqual(
            sorted((line["account"], line["debit"], line["credit"]) for line in body["lines"]),
            sorted([(self.receivable.pk, "75.00", "0.00"), (self.sales.pk, "0.00", "75.00")]),
        )

        self.assertEqual(self.get(views.journal_entry_detail, entry_id=987654).status_code, 404)
