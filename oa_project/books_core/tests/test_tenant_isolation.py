import datetime
from decimal import Decimal

import pytest
from django.test import TestCase

from ..context import BookContext
from ..exceptions import NotFoundError
from ..models import Company, Contact, EntityMembership, Invoice
from ..services import accounts, interest, invoicing, ledger


class TenantIsolationManagerTests(TestCase):
    def setUp(self):
        self.company_a = Company.objects.create(name="Company A", slug="com-a")
        self.company_b = Company.objects.create(name="Company B", slug="com-b")
        self.ctx_a = BookContext(company=self.company_a)
        self.ctx_b = BookContext(company=self.company_b)
        accounts.set_up_default_chart(self.ctx_a)
        accounts.set_up_default_chart(self.ctx_b)

        customer_a = Contact.objects.create(company=self.company_a, name="Customer A")
        customer_b = Contact.objects.create(company=self.company_b, name="Customer B")

        # one invoice per company
        self.inv_a = invoicing.create_invoice(
            self.ctx_a, contact=customer_a, lines=[{"unit_price": "200.00"}],
            issue_date=datetime.date(2024, 1, 1), due_date=datetime.date(2024, 1, 15),
        )
        self.inv_b = invoicing.create_invoice(
            self.ctx_b, contact=customer_b, lines=[{"unit_price": "100.00"}],
            issue_date=datetime.date(2024, 1, 1), due_date=datetime.date(2024, 1, 15),
        )

    def test_for_company_returns_only_that_company_objects(self):
        """Compare invoice primary keys"""
        self.assertListEqual(
            list(
                Invoice.objects.for_company(self.company_a)
                .order_by("id")
                .values_list("pk", flat=True)
            ),
            [self.inv_a.pk],
        )
        self.assertListEqual(
            list(self.ctx_b.scoped(Invoice).values_list("pk", flat=True)),
            [self.inv_b.pk],
        )

    def test_numbering_is_per_company(self):
        # both tenants start their own sequence
        self.assertEqual(self.inv_a.invoice_number, "INV-00001")
        self.assertEqual(self.inv_b.invoice_number, "INV-00001")

    def test_services_cannot_reach_other_company_rows(self):
        with self.assertRaises(NotFoundError):
            invoicing.get_invoice(self.ctx_a, self.inv_b.pk)
        with self.assertRaises(NotFoundError):
            invoicing.send_invoice(self.ctx_a, self.inv_b.pk)
        with self.assertRaises(NotFoundError):
            interest.calculate_interest(self.ctx_a, self.inv_b.pk)

        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_b.status, "draft")

        entry_b = invoicing.send_invoice(self.ctx_b, self.inv_b.pk).journal_entry_id
        with self.assertRaises(NotFoundError):
            ledger.get_entry(self.ctx_a, entry_b)

    def test_balances_are_per_company(self):
        invoicing.send_invoice(self.ctx_a, self.inv_a.pk)
        invoicing.send_invoice(self.ctx_b, self.inv_b.pk)

        receivable_a = accounts.resolve_account(self.ctx_a, "receivable")
        self.assertEqual(ledger.get_account_balance(self.ctx_a, receivable_a.pk), Decimal("200.00"))
        with self.assertRaises(NotFoundError):
            ledger.get_account_balance(self.ctx_b, receivable_a.pk)


@pytest.mark.django_db
def test_invoice_list_returns_only_tenant_data(client, django_user_model):
    c1 = Company.objects.create(name="Company A", slug="com-a")
    c2 = Company.objects.create(name="Company B", slug="com-b")
    u1 = django_user_model.objects.create_user(username="alice", password="pw")
    EntityMembership.objects.create(user=u1, company=c1, role="accountant", is_default=True)

    for company, name in ((c1, "C1 customer"), (c2, "C2 customer")):
        ctx = BookContext(company=company)
        accounts.set_up_default_chart(ctx)
        contact = Contact.objects.create(company=company, name=name)
        invoicing.create_invoice(ctx, contact=contact, lines=[{"unit_price": "100.00"}])

    client.force_login(u1)
    response = client.get("/api/invoices/")

    assert response.status_code == 200
    contacts = {row["contact"] for row in response.json()}
    assert contacts == {Contact.objects.get(name="C1 customer").pk}


@pytest.mark.django_db
def test_session_cannot_select_company_without_membership(client, django_user_model):
    own = Company.objects.create(name="Own", slug="own")
    foreign = Company.objects.create(name="Foreign", slug="foreign")
    user = django_user_model.objects.create_user(username="bob", password="pw")
    EntityMembership.objects.create(user=user, company=own, role="owner", is_default=True)

    client.force_login(user)
    session = client.session
    session["active_company_id"] = foreign.pk
    session.save()

    response = client.get("/api/invoices/")
    assert response.status_code == 403
    assert response.json()["error"] == "NoCompany"


@pytest.mark.django_db
def test_anonymous_request_has_no_company(client):
    response = client.get("/api/invoices/")
    assert response.status_code == 403
