import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from books_core.context import BookContext
from books_core.exceptions import BookkeepingError
from books_core.models import Company, Contact, EntityMembership
from books_core.services import accounts, invoicing, payments

User = get_user_model()


class Command(BaseCommand):
    help = (
        "Create a demo tenant (company), user, chart of accounts and a sent "
        "invoice with a partial payment."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--company-name",
            default="Demo Company",
            help="Name of the demo company to create.",
        )
        parser.add_argument("--username", default="demo", help="Username for the demo user.")
        parser.add_argument("--password", default="demo123", help="Password for the demo user.")

    @staticmethod
    def unique_slug_for_company(name, max_tries=100):
        # "Test Ltd" -> "test-ltd" -> "test-ltd-1" -> ...
        base = slugify(name) or "company"
        slug = base
        i = 1
        while Company.objects.filter(slug=slug).exists():
            slug = f"{base}-{i}"
            i += 1
            if i > max_tries:
                raise CommandError("Couldn't generate unique slug")
        return slug

    @transaction.atomic
    def handle(self, *args, **options):
        company_name = options["company_name"]
        username = options["username"]
        password = options["password"]

        # 1. Company
        company, created = Company.objects.get_or_create(
            name=company_name,
            defaults={"slug": self.unique_slug_for_company(company_name)},
        )
        self.stdout.write(self.style.SUCCESS(f"{'Created' if created else 'Using'} company: {company}"))

        # 2. User + membership
        user, created = User.objects.get_or_create(
            username=username, defaults={"email": f"{username}@example.com"}
        )
        if created:
            user.set_password(password)
            user.save()
        EntityMembership.objects.get_or_create(
            user=user,
            company=company,
            defaults={"role": "owner", "is_default": not user.memberships.filter(is_default=True).exists()},
        )
        self.stdout.write(self.style.SUCCESS(f"User: {user.username} (pw={password})"))

        ctx = BookContext(company=company, user=user)
        try:
            # 3. Chart of accounts
            new_accounts = accounts.set_up_default_chart(ctx)
            self.stdout.write(self.style.SUCCESS(f"Created {len(new_accounts)} accounts"))

            # 4. Customer + invoice
            customer, _ = Contact.objects.get_or_create(
                company=company, name=f"{company_name} Customer", defaults={"contact_type": "customer"}
            )
            issue_date = timezone.localdate() - datetime.timedelta(days=30)
            invoice = invoicing.create_invoice(
                ctx,
                contact=customer,
                issue_date=issue_date,
                lines=[
                    invoicing.InvoiceLineInput(
                        description="Consulting", quantity=Decimal("8"),
                        unit_price=Decimal("125.00"), tax_rate=Decimal("0"),
                    ),
                ],
            )
            invoicing.send_invoice(ctx, invoice.pk)
            self.stdout.write(self.style.SUCCESS(f"Created and sent invoice: {invoice.invoice_number}"))

            # 5. Partial payment
            payment = payments.create_payment(
                ctx,
                payment_type="received",
                amount=Decimal("600.00"),
                contact=customer,
                payment_date=issue_date + datetime.timedelta(days=5),
                allocations=[(invoice.pk, Decimal("600.00"))],
            )
        except BookkeepingError as exc:
            raise CommandError(exc.message or str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f"Recorded payment {payment.payment_number}"))
        self.stdout.write(self.style.SUCCESS("Demo tenant setup complete!"))
