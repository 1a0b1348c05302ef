"""
PERFORMANCE App - Celery Tasks

Badges are awarded nightly; milestones are checked hourly.
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def award_performance_badges(self):
    """Award the current period badges to the top performers."""
    from performance.services import PerformanceService

    try:
        awarded = PerformanceService.award_badges()
    except Exception as e:
        logger.error(f"[CELERY] Badge awarding failed: {e}")
        raise self.retry(exc=e)

    logger.info(f"[CELERY] {awarded} badge(s) awarded")
    return {'awarded': awarded}


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def check_employee_milestones(self):
    """Record milestones reached since the last run."""
    from performance.services import PerformanceService

    try:
        created = PerformanceService.check_milestones()
    except Exception as e:
        logger.error(f"[CELERY] Milestone check failed: {e}")
        raise self.retry(exc=e)

    if created:
        logger.info(f"[CELERY] {len(created)} new milestone(s) recorded")
    return {'milestones': len(created)}
