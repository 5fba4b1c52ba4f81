# Celery instance is defined in oa_project/celery.py
# Importing it here makes shared_task bind to this app when Django starts
from .celery import celery_app

__all__ = ("celery_app",)

""" Run workers with "celery -A oa_project worker -l info".
    Interest batches can be scheduled with celery beat against
    books_core.tasks.calculate_overdue_interest_all """
