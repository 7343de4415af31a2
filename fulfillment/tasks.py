"""
Celery 定时任务：巡检过期处方
由 Celery beat 按 EXPIRY_SWEEP_SECONDS 周期触发，读路径上另有惰性过期
"""
import logging
import time

from celery import shared_task

from fulfillment.lifecycle import expire_overdue
from fulfillment.statsd_metrics import (
    expiry_sweep_duration_seconds,
    expiry_sweep_failure,
    prescriptions_expired,
)

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def expire_overdue_prescriptions_task(self):
    """
    把 valid_until 已过、仍处于 pending / partially_filled 的处方置为 expired
    失败时指数退避重试：2^retries 秒
    """
    start = time.perf_counter()
    try:
        count = expire_overdue()
    except Exception as exc:
        expiry_sweep_failure()
        if self.request.retries >= self.max_retries:
            logger.exception("Expiry sweep failed, giving up")
            raise
        logger.warning("Expiry sweep failed, retrying: %s", exc)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)

    prescriptions_expired(count)
    expiry_sweep_duration_seconds(time.perf_counter() - start)
    return count
