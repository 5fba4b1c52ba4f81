import decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import books_core.managers
import books_core.models.company
import books_core.models.contact


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("currency_code", models.CharField(default="USD", max_length=10)),
                ("late_payment_interest_rate", models.DecimalField(decimal_places=8, default=books_core.models.company.default_interest_rate, max_digits=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name_plural": "companies",
            },
        ),
        migrations.CreateModel(
            name="EntityMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=[("owner", "Owner"), ("admin", "Admin"), ("accountant", "Accountant"), ("viewer", "Viewer")], default="viewer", max_length=20)),
                ("is_default", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="memberships", to="books_core.company")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="memberships", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [models.Index(fields=["company", "user"], name="membership_company_user_idx")],
                "constraints": [models.UniqueConstraint(fields=("user", "company"), name="uq_user_company_membership")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32)),
                ("name", models.CharField(max_length=200)),
                ("ac_type", models.CharField(choices=[("asset", "Asset"), ("liability", "Liability"), ("equity", "Equity"), ("income", "Income"), ("expense", "Expense")], max_length=10)),
                ("normal_balance", models.CharField(choices=[("debit", "Debit"), ("credit", "Credit")], default="debit", max_length=6)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="books_core.account")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "ac_type"], name="account_company_type_idx"),
                    models.Index(fields=["company", "code"], name="account_company_code_idx"),
                ],
                "constraints": [models.UniqueConstraint(fields=("company", "code"), name="uq_company_account_code")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entry_number", models.CharField(max_length=32)),
                ("date", models.DateField()),
                ("reference", models.CharField(blank=True, default="", max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=[("draft", "Draft"), ("posted", "Posted"), ("void", "Void")], default="draft", max_length=10)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("source_type", models.CharField(blank=True, default="", max_length=50)),
                ("source_id", models.BigIntegerField(blank=True, null=True)),
                ("posting_fingerprint", models.CharField(blank=True, default="", max_length=64)),
                ("voided_at", models.DateTimeField(blank=True, null=True)),
                ("void_reason", models.CharField(blank=True, default="", max_length=400)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ("reversed_by", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversal_of", to="books_core.journalentry")),
            ],
            options={
                "verbose_name_plural": "journal entries",
                "indexes": [
                    models.Index(fields=["company", "date"], name="je_company_date_idx"),
                    models.Index(fields=["company", "status"], name="je_company_status_idx"),
                    models.Index(fields=["company", "source_type", "source_id"], name="je_company_source_idx"),
                ],
                "constraints": [models.UniqueConstraint(fields=("company", "entry_number"), name="uq_je_company_number")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="Contact",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("contact_type", models.CharField(choices=[("customer", "Customer"), ("supplier", "Supplier"), ("both", "Customer & Supplier")], default="customer", max_length=10)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("payment_terms_days", models.PositiveIntegerField(default=books_core.models.contact.default_payment_terms)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "name"], name="contact_company_name_idx")],
                "constraints": [models.UniqueConstraint(fields=("company", "name"), name="uq_company_contact_name")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="DocumentSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=50)),
                ("next_value", models.PositiveBigIntegerField(default=1)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
            ],
            options={
                "constraints": [models.UniqueConstraint(fields=("company", "name"), name="uq_company_sequence_name")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_type", models.CharField(choices=[("sales", "Sales"), ("purchase", "Purchase")], default="sales", max_length=10)),
                ("invoice_number", models.CharField(max_length=32)),
                ("issue_date", models.DateField()),
                ("due_date", models.DateField()),
                ("status", models.CharField(choices=[("draft", "Draft"), ("sent", "Sent"), ("partially_paid", "Partially Paid"), ("paid", "Paid"), ("void", "Void")], default="draft", max_length=16)),
                ("reference", models.CharField(blank=True, default="", max_length=200)),
                ("notes", models.TextField(blank=True, default="")),
                ("subtotal", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("total", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("voided_at", models.DateTimeField(blank=True, null=True)),
                ("void_reason", models.CharField(blank=True, default="", max_length=400)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("contact", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="books_core.contact")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="books_core.journalentry")),
            ],
            options={
                "ordering": ["-issue_date", "-invoice_number"],
                "indexes": [
                    models.Index(fields=["company", "invoice_number"], name="inv_company_number_idx"),
                    models.Index(fields=["company", "contact"], name="inv_company_contact_idx"),
                    models.Index(fields=["company", "status", "due_date"], name="inv_company_status_due_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "invoice_number"), name="uq_invoice_company_number"),
                    models.CheckConstraint(condition=models.Q(("amount_paid__gte", 0), ("amount_paid__lte", models.F("total"))), name="inv_amount_paid_within_total"),
                ],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="InvoiceLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(blank=True, default="", max_length=400)),
                ("quantity", models.DecimalField(decimal_places=4, default=decimal.Decimal("1"), max_digits=14)),
                ("unit_price", models.DecimalField(decimal_places=4, default=decimal.Decimal("0.00"), max_digits=18)),
                ("discount_percent", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=5)),
                ("tax_rate", models.DecimalField(decimal_places=4, default=decimal.Decimal("0.00"), max_digits=7)),
                ("line_subtotal", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("line_tax", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("line_total", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="invoice_lines", to="books_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="books_core.invoice")),
            ],
            options={
                "ordering": ["invoice_id", "line_number", "id"],
                "indexes": [models.Index(fields=["company", "invoice"], name="invl_company_invoice_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0), ("unit_price__gte", 0), ("tax_rate__gte", 0)), name="invl_positive_quantity_non_negative_price"),
                    models.CheckConstraint(condition=models.Q(("discount_percent__gte", 0), ("discount_percent__lte", 100)), name="invl_discount_percent_range"),
                ],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("payment_type", models.CharField(choices=[("received", "Received"), ("made", "Made")], max_length=10)),
                ("payment_number", models.CharField(max_length=32)),
                ("payment_date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("payment_method", models.CharField(choices=[("bank_transfer", "Bank Transfer"), ("cash", "Cash"), ("card", "Card"), ("cheque", "Cheque"), ("other", "Other")], default="bank_transfer", max_length=20)),
                ("reference", models.CharField(blank=True, default="", max_length=200)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("cash_account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="books_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("contact", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="books_core.contact")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-payment_date", "-payment_number"],
                "indexes": [
                    models.Index(fields=["company", "payment_type", "payment_date"], name="pmt_company_type_date_idx"),
                    models.Index(fields=["company", "contact"], name="pmt_company_contact_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "payment_number"), name="uq_payment_company_number"),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_amount_positive"),
                ],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="PaymentAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="allocations", to="books_core.invoice")),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="allocations", to="books_core.journalentry")),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="allocations", to="books_core.payment")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["company", "payment"], name="alloc_company_payment_idx"),
                    models.Index(fields=["company", "invoice"], name="alloc_company_invoice_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="allocation_amount_positive"),
                ],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="InvoiceInterest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("calculated_at", models.DateField()),
                ("days_overdue", models.PositiveIntegerField()),
                ("principal_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("interest_rate", models.DecimalField(decimal_places=8, max_digits=10)),
                ("interest_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("total_with_interest", models.DecimalField(decimal_places=2, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="interest_history", to="books_core.invoice")),
            ],
            options={
                "verbose_name_plural": "invoice interest history",
                "ordering": ["-calculated_at", "-id"],
                "indexes": [models.Index(fields=["company", "invoice", "calculated_at"], name="interest_company_inv_date_idx")],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("object_type", models.CharField(max_length=100)),
                ("object_id", models.CharField(max_length=100)),
                ("changes", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="books_core.company")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["company", "user"], name="audit_company_user_idx"),
                    models.Index(fields=["company", "created_at"], name="audit_company_created_idx"),
                    models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
                ],
            },
            managers=[
                ("objects", books_core.managers.TenantManager()),
            ],
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(blank=True, default="", max_length=400)),
                ("debit", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=18)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="books_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="books_core.company")),
                ("invoice", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="journal_lines", to="books_core.invoice")),
                ("journal", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="books_core.journalentry")),
                ("payment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="journal_lines", to="books_core.payment")),
            ],
            options={
                "ordering": ["journal_id", "line_number", "id"],
                "indexes": [
                    models.Index(fields=["company", "account"], name="jl_company_account_idx"),
                    models.Index(fields=["company", "journal"], name="jl_company_journal_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="jl_non_negative_amounts"),
                    models.CheckConstraint(condition=models.Q(("debit__gt", 0), ("credit__gt", 0), _connector="OR"), name="jl_debit_or_credit_nonzero"),
                    models.CheckConstraint(condition=models.Q(("debit", 0), ("credit", 0), _connector="OR"), name="jl_not_both_debit_and_credit"),
                ],
            },
            managers=[
                ("objects", books_core.managers.JournalLineManager()),
            ],
        ),
    ]
