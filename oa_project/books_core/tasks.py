import logging

from celery import shared_task

from .exceptions import ConflictError

logger = logging.getLogger(__name__)


# Retries only on lock conflicts; validation errors are never retried
@shared_task(
    autoretry_for=(ConflictError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def calculate_overdue_interest(company_id, as_of=None):
    """Run the overdue-interest batch for one company. Returns a summary dict."""
    # import lazily to avoid circular imports at module import time
    import datetime

    from .context import BookContext
    from .models import Company
    from .services.interest import calculate_interest_for_overdue_invoices

    company = Company.objects.get(pk=company_id)
    as_of_date = datetime.date.fromisoformat(as_of) if as_of else None
    batch = calculate_interest_for_overdue_invoices(BookContext(company=company), as_of=as_of_date)
    return {
        "company": company.slug,
        "calculated": len(batch.results),
        "failed": len(batch.failures),
        "total_interest": str(batch.total_interest),
    }


@shared_task
def calculate_overdue_interest_all(as_of=None):
    """Fan out one interest batch per company."""
    from .models import Company

    company_ids = list(Company.objects.values_list("pk", flat=True))
    for company_id in company_ids:
        calculate_overdue_interest.delay(company_id, as_of=as_of)
    logger.info("Queued interest batches for %s companies", len(company_ids))
    return len(company_ids)
