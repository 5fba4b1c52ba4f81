from django.urls import path

from . import views

urlpatterns = [
    path("invoices/", views.invoice_list, name="invoice-list"),
    path("invoices/<int:invoice_id>/", views.invoice_detail, name="invoice-detail"),
    path("invoices/<int:invoice_id>/send/", views.invoice_send, name="invoice-send"),
    path("invoices/<int:invoice_id>/void/", views.invoice_void, name="invoice-void"),
    path("invoices/<int:invoice_id>/interest/", views.invoice_interest, name="invoice-interest"),
    path("payments/unallocated/", views.unallocated_payments, name="payment-unallocated"),
    path("payments/<int:payment_id>/allocate/", views.payment_allocate, name="payment-allocate"),
    path("accounts/<int:account_id>/balance/", views.account_balance, name="account-balance"),
    path("journal/<int:entry_id>/", views.journal_entry_detail, name="journal-entry-detail"),
]
