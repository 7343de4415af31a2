"""
处方生命周期状态机
pending → partially_filled / filled（发药提交）→ ready_for_delivery（配送创建）→ delivered（配送完成）
pending / partially_filled / filled → cancelled（人工取消）
pending / partially_filled → expired（过了 valid_until，读取时或定时巡检触发）
delivered / cancelled / expired 为终态
"""
import logging

from django.db.models import F
from django.utils import timezone

from pharmacy_fill.exceptions import ConcurrentModification, InvalidState

from .metrics import PRESCRIPTION_CANCELLED, PRESCRIPTION_EXPIRED, PRESCRIPTION_TRANSITION
from .models import Prescription, PrescriptionStatus

logger = logging.getLogger(__name__)

S = PrescriptionStatus

TRANSITIONS = {
    S.PENDING: {S.PARTIALLY_FILLED, S.FILLED, S.CANCELLED, S.EXPIRED},
    S.PARTIALLY_FILLED: {S.PARTIALLY_FILLED, S.FILLED, S.READY_FOR_DELIVERY, S.CANCELLED, S.EXPIRED},
    S.FILLED: {S.READY_FOR_DELIVERY, S.CANCELLED},
    S.READY_FOR_DELIVERY: {S.DELIVERED},
    S.DELIVERED: set(),
    S.CANCELLED: set(),
    S.EXPIRED: set(),
}

FILLABLE_STATUSES = (S.PENDING, S.PARTIALLY_FILLED)
TERMINAL_STATUSES = (S.DELIVERED, S.CANCELLED, S.EXPIRED)


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def ensure_transition(prescription, target):
    """不允许的流转抛 InvalidState"""
    if not can_transition(prescription.status, target):
        raise InvalidState(
            message=f"Prescription cannot move from {prescription.status} to {target}",
            detail={"current_status": prescription.status, "target_status": str(target)},
        )


def ensure_fillable(prescription):
    if prescription.status not in FILLABLE_STATUSES:
        raise InvalidState(
            message="Prescription cannot be filled",
            detail={"current_status": prescription.status},
        )


def apply_transition(prescription, target, **fields):
    """
    带版本号的条件更新：version 不一致说明被别人改过，抛 ConcurrentModification
    成功后 prescription 刷新为最新数据
    """
    ensure_transition(prescription, target)
    updated = Prescription.objects.filter(
        pk=prescription.pk,
        version=prescription.version,
        status=prescription.status,
    ).update(
        status=target,
        version=F('version') + 1,
        updated_at=timezone.now(),
        **fields,
    )
    if not updated:
        raise ConcurrentModification(detail={"prescription_id": prescription.pk})
    PRESCRIPTION_TRANSITION.labels(source=prescription.status, target=str(target)).inc()
    prescription.refresh_from_db()
    return prescription


# ---------------------------------------------------------------------------
# 过期
# ---------------------------------------------------------------------------

def is_overdue(prescription, today=None):
    if today is None:
        today = timezone.localdate()
    return (
        prescription.valid_until is not None
        and prescription.valid_until < today
        and prescription.status in FILLABLE_STATUSES
    )


def expire_if_due(prescription, today=None):
    """
    读取时惰性判断过期，返回是否发生了过期
    并发下别人先改了也无所谓，刷新后以数据库为准
    """
    if not is_overdue(prescription, today):
        return False
    updated = Prescription.objects.filter(
        pk=prescription.pk,
        status__in=FILLABLE_STATUSES,
    ).update(
        status=S.EXPIRED,
        version=F('version') + 1,
        updated_at=timezone.now(),
    )
    prescription.refresh_from_db()
    if updated:
        PRESCRIPTION_EXPIRED.inc()
        logger.info("Prescription %s expired (valid until %s)", prescription.prescription_number, prescription.valid_until)
    return bool(updated)


def expire_overdue(today=None):
    """批量过期：valid_until 已过且仍可发药的处方，返回过期数量"""
    if today is None:
        today = timezone.localdate()
    count = Prescription.objects.filter(
        status__in=FILLABLE_STATUSES,
        valid_until__lt=today,
    ).update(
        status=S.EXPIRED,
        version=F('version') + 1,
        updated_at=timezone.now(),
    )
    if count:
        PRESCRIPTION_EXPIRED.inc(count)
        logger.info("Expired %d overdue prescriptions", count)
    return count


# ---------------------------------------------------------------------------
# 人工 / 外部协作方触发的流转
# ---------------------------------------------------------------------------

def cancel(prescription, reason=""):
    """取消处方，原因追加到 notes"""
    notes = prescription.notes or ""
    if reason:
        notes = f"{notes} | Cancelled: {reason}" if notes else f"Cancelled: {reason}"
    apply_transition(prescription, S.CANCELLED, notes=notes)
    PRESCRIPTION_CANCELLED.inc()
    logger.info("Prescription %s cancelled: %s", prescription.prescription_number, reason or "-")
    return prescription


def mark_ready_for_delivery(prescription):
    """配送单创建后调用：需已发药（filled / partially_filled）"""
    return apply_transition(prescription, S.READY_FOR_DELIVERY)


def mark_delivered(prescription):
    """配送完成后调用"""
    return apply_transition(prescription, S.DELIVERED)
