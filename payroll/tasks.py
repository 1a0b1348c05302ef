"""
PAYROLL App - Celery Tasks

Scheduled on the 1st of each month to open the previous month's run.
"""

import logging
from celery import shared_task
from datetime import date
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def create_monthly_payroll_draft(self, year: int = None, month: int = None):
    """
    Create the draft payroll run for a period.

    Args:
        year: Period year (default: previous month's year)
        month: Period month (default: previous month)
    """
    from payroll.models import PayrollRun
    from payroll.services import PayrollService

    # Default to previous month
    if year is None or month is None:
        previous_month = date.today() - relativedelta(months=1)
        year = previous_month.year
        month = previous_month.month

    existing = PayrollRun.objects.filter(period_year=year, period_month=month).first()
    if existing:
        logger.info(f"[CELERY] Payroll {existing.payroll_number} already exists, skipping")
        return {'year': year, 'month': month, 'created': False, 'payroll_number': existing.payroll_number}

    try:
        run = PayrollService.create_run(year, month)
    except Exception as e:
        logger.error(f"[CELERY] Failed to create payroll draft for {year}/{month}: {e}")
        raise self.retry(exc=e)

    logger.info(f"[CELERY] Payroll draft {run.payroll_number} created")
    return {'year': year, 'month': month, 'created': True, 'payroll_number': run.payroll_number}
