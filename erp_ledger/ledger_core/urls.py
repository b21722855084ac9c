from django.urls import path

from . import views

app_name = "ledger_core"

urlpatterns = [
    # Posting surface
    path("entries/", views.create_entry_view, name="entry-create"),
    path("entries/<int:entry_id>/", views.entry_detail_view, name="entry-detail"),
    path("entries/<int:entry_id>/post/", views.post_entry_view, name="entry-post"),
    path("entries/<int:entry_id>/cancel/", views.cancel_entry_view, name="entry-cancel"),
    path("entries/<int:entry_id>/reverse/", views.reverse_entry_view, name="entry-reverse"),
    # Fiscal calendar
    path("fiscal-years/", views.open_year_view, name="year-open"),
    path("fiscal-years/<int:year_id>/close/", views.close_year_view, name="year-close"),
    # Invoice surface
    path("invoices/", views.invoices_view, name="invoices"),
    path("invoices/<int:invoice_id>/", views.update_invoice_view, name="invoice-update"),
    path("invoices/<int:invoice_id>/send/", views.send_invoice_view, name="invoice-send"),
    path("invoices/<int:invoice_id>/cancel/", views.cancel_invoice_view, name="invoice-cancel"),
    # Payment surface
    path("payments/", views.record_payment_view, name="payment-create"),
    path("payments/<int:payment_id>/allocate/", views.allocate_view, name="payment-allocate"),
    path("allocations/<int:allocation_id>/unallocate/", views.unallocate_view, name="allocation-remove"),
    # Reporting surface
    path("reports/trial-balance/", views.trial_balance_view, name="trial-balance"),
    path("reports/balance-sheet/", views.balance_sheet_view, name="balance-sheet"),
    path("reports/income-statement/", views.income_statement_view, name="income-statement"),
    path("reports/general-ledger/<int:account_id>/", views.general_ledger_view, name="general-ledger"),
]
