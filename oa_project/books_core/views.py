import datetime
import functools
import json
from decimal import Decimal

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import exceptions
from .services import interest, invoicing, ledger, payments

# error kind -> HTTP status
STATUS_FOR_ERROR = {
    exceptions.ValidationError: 400,
    exceptions.InvalidLineError: 400,
    exceptions.ImbalancedEntryError: 400,
    exceptions.NotFoundError: 404,
    exceptions.InvalidStateTransitionError: 409,
    exceptions.OverpaymentError: 409,
    exceptions.InsufficientPaymentBalanceError: 409,
    exceptions.AlreadyVoidedError: 409,
    exceptions.AlreadyPostedDifferentPayload: 409,
    exceptions.ConflictError: 409,
}


def error_response(exc):
    status = STATUS_FOR_ERROR.get(type(exc), 400)
    body = {"ok": False, "error": type(exc).__name__, "message": exc.message or str(exc)}
    if isinstance(exc, exceptions.ConflictError):
        body["retryable"] = True
    return JsonResponse(body, status=status)


def book_view(view):
    """Require a resolved company and turn bookkeeping errors into JSON."""

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        if getattr(request, "book", None) is None:
            return JsonResponse({"ok": False, "error": "NoCompany", "message": "No active company"}, status=403)
        try:
            return view(request, *args, **kwargs)
        except exceptions.BookkeepingError as exc:
            return error_response(exc)

    return wrapper


def _body(request):
    # decimals stay decimals: never let money pass through float
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}", parse_float=Decimal)
        except ValueError:
            raise exceptions.ValidationError("Request body is not valid JSON")
        if not isinstance(data, dict):
            raise exceptions.ValidationError("Request body must be a JSON object")
        return data
    return request.POST.dict()


def _date(value, field):
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise exceptions.ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def _invoice_json(inv):
    return {
        "id": inv.pk,
        "number": inv.invoice_number,
        "type": inv.invoice_type,
        "status": inv.status,
        "contact": inv.contact_id,
        "issue_date": inv.issue_date.isoformat(),
        "due_date": inv.due_date.isoformat(),
        "reference": inv.reference,
        "subtotal": str(inv.subtotal),
        "tax_amount": str(inv.tax_amount),
        "total": str(inv.total),
        "amount_paid": str(inv.amount_paid),
        "amount_due": str(inv.amount_due),
    }


def _payment_json(pmt):
    data = {
        "id": pmt.pk,
        "number": pmt.payment_number,
        "type": pmt.payment_type,
        "contact": pmt.contact_id,
        "date": pmt.payment_date.isoformat(),
        "amount": str(pmt.amount),
    }
    allocated = getattr(pmt, "allocated", None)
    if allocated is not None:
        data["unallocated"] = str(pmt.amount - allocated)
    return data


@require_http_methods(["GET", "POST"])
@book_view
def invoice_list(request):
    if request.method == "POST":
        data = _body(request)
        inv = invoicing.create_invoice(
            request.book,
            contact=data.get("contact"),
            lines=data.get("lines") or [],
            invoice_type=data.get("type", "sales"),
            issue_date=_date(data.get("issue_date"), "issue_date"),
            due_date=_date(data.get("due_date"), "due_date"),
            reference=data.get("reference", ""),
            notes=data.get("notes", ""),
        )
        return JsonResponse(_invoice_json(inv), status=201)

    params = request.GET
    qs = invoicing.list_invoices(
        request.book,
        invoice_type=params.get("type"),
        status=params.get("status"),
        contact=params.get("contact"),
        date_from=_date(params.get("from"), "from"),
        date_to=_date(params.get("to"), "to"),
        search=params.get("search"),
    )
    return JsonResponse([_invoice_json(inv) for inv in qs], safe=False)


@require_GET
@book_view
def invoice_detail(request, invoice_id):
    inv = invoicing.get_invoice(request.book, invoice_id)
    data = _invoice_json(inv)
    data["journal_entry"] = inv.journal_entry_id
    data["lines"] = [
        {
            "description": line.description,
            "quantity": str(line.quantity),
            "unit_price": str(line.unit_price),
            "discount_percent": str(line.discount_percent),
            "tax_rate": str(line.tax_rate),
            "total": str(line.line_total),
        }
        for line in inv.lines.all()
    ]
    return JsonResponse(data)


@require_POST
@book_view
def invoice_send(request, invoice_id):
    inv = invoicing.send_invoice(request.book, invoice_id)
    return JsonResponse(_invoice_json(inv))


@require_POST
@book_view
def invoice_void(request, invoice_id):
    inv = invoicing.void_invoice(request.book, invoice_id, reason=_body(request).get("reason", ""))
    return JsonResponse(_invoice_json(inv))


@require_POST
@book_view
def payment_allocate(request, payment_id):
    data = _body(request)
    allocation = payments.allocate_to_invoice(
        request.book, payment_id, data.get("invoice"), data.get("amount")
    )
    inv = allocation.invoice
    return JsonResponse(
        {
            "ok": True,
            "allocation": allocation.pk,
            "amount": str(allocation.amount),
            "invoice_status": inv.status,
            "invoice_amount_due": str(inv.amount_due),
        },
        status=201,
    )


@require_GET
@book_view
def unallocated_payments(request):
    qs = payments.get_unallocated_payments(request.book, request.GET.get("type"))
    return JsonResponse([_payment_json(p) for p in qs], safe=False)


@require_GET
@book_view
def account_balance(request, account_id):
    as_of = _date(request.GET.get("as_of"), "as_of")
    balance = ledger.get_account_balance(request.book, account_id, as_of)
    return JsonResponse({"account": account_id, "as_of": as_of and as_of.isoformat(), "balance": str(balance)})


@require_GET
@book_view
def journal_entry_detail(request, entry_id):
    entry = ledger.get_entry(request.book, entry_id)
    return JsonResponse(
        {
            "id": entry.pk,
            "number": entry.entry_number,
            "date": entry.date.isoformat(),
            "status": entry.status,
            "description": entry.description,
            "reversed_by": entry.reversed_by_id,
            "lines": [
                {"account": line.account_id, "debit": str(line.debit), "credit": str(line.credit)}
                for line in entry.lines.all()
            ],
        }
    )


@require_http_methods(["GET", "POST"])
@book_view
def invoice_interest(request, invoice_id):
    if request.method == "POST":
        data = _body(request)
        result = interest.calculate_interest(
            request.book,
            invoice_id,
            daily_rate=data.get("rate"),
            as_of=_date(data.get("as_of"), "as_of"),
        )
        return JsonResponse(
            {
                "invoice": result.invoice_id,
                "days_overdue": result.days_overdue,
                "principal": str(result.principal),
                "rate": str(result.rate),
                "interest": str(result.interest),
                "total_with_interest": str(result.total_with_interest),
                "recorded": result.record is not None,
            }
        )

    history = interest.interest_history(request.book, invoice_id)
    return JsonResponse(
        [
            {
                "calculated_at": row.calculated_at.isoformat(),
                "days_overdue": row.days_overdue,
                "principal": str(row.principal_amount),
                "rate": str(row.interest_rate),
                "interest": str(row.interest_amount),
                "total_with_interest": str(row.total_with_interest),
            }
            for row in history
        ],
        safe=False,
    )
