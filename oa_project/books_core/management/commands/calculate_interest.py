import datetime

from django.core.management.base import BaseCommand, CommandError

from books_core.context import BookContext
from books_core.exceptions import BookkeepingError
from books_core.models import Company
from books_core.services.interest import calculate_interest_for_overdue_invoices


class Command(BaseCommand):
    help = "Calculate late-payment interest for overdue invoices of one or all companies."

    def add_arguments(self, parser):
        parser.add_argument("--company", help="Slug of the company (default: all companies).")
        parser.add_argument("--as-of", help="Calculation date, YYYY-MM-DD (default: today).")
        parser.add_argument("--rate", help="Daily rate override, e.g. 0.0005.")

    def handle(self, *args, **options):
        as_of = None
        if options["as_of"]:
            try:
                as_of = datetime.date.fromisoformat(options["as_of"])
            except ValueError:
                raise CommandError("--as-of must be YYYY-MM-DD")

        companies = Company.objects.order_by("pk")
        if options["company"]:
            companies = companies.filter(slug=options["company"])
            if not companies.exists():
                raise CommandError(f"Company {options['company']!r} not found")

        for company in companies:
            try:
                batch = calculate_interest_for_overdue_invoices(
                    BookContext(company=company), daily_rate=options["rate"], as_of=as_of
                )
            except BookkeepingError as exc:
                raise CommandError(exc.message or str(exc)) from exc

            self.stdout.write(
                f"{company.slug}: {len(batch.results)} invoices, "
                f"interest {batch.total_interest}, {len(batch.failures)} failed"
            )
            for invoice_id, message in batch.failures:
                self.stderr.write(self.style.WARNING(f"  invoice {invoice_id}: {message}"))
