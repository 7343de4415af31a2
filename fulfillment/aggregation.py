"""
汇总：一张处方所有行 → 整体状态 + 小计 / 税 / 合计
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

from pharmacy_fill.exceptions import IncompleteDraft, NothingDispensed

from .models import LineStatus, PrescriptionStatus

CENT = Decimal("0.01")
DEFAULT_TAX_RATE = Decimal("0.10")


@dataclass(frozen=True)
class FulfillmentSummary:
    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def get_tax_rate():
    return Decimal(str(getattr(settings, "FULFILLMENT_TAX_RATE", DEFAULT_TAX_RATE)))


def combine_statuses(statuses, dispensed_any):
    """
    行状态集合 → 处方整体状态
    全部 filled → filled；有发出的药 → partially_filled；一粒没发 → NothingDispensed
    """
    statuses = list(statuses)
    if not statuses:
        raise IncompleteDraft(message="Draft has no lines")
    if all(s == LineStatus.FILLED for s in statuses):
        return PrescriptionStatus.FILLED
    if dispensed_any:
        return PrescriptionStatus.PARTIALLY_FILLED
    raise NothingDispensed()


def compute_totals(line_totals, tax_rate=None):
    """小计、税（四舍五入到分）、合计"""
    if tax_rate is None:
        tax_rate = get_tax_rate()
    subtotal = sum(line_totals, Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)
    tax = (subtotal * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return subtotal, tax, subtotal + tax


def aggregate(lines, tax_rate=None):
    """
    汇总草稿行，返回 FulfillmentSummary
    有 pending 行时抛 IncompleteDraft，指出第一行未处理的药品
    """
    lines = list(lines)
    for line in lines:
        if line.status == LineStatus.PENDING:
            raise IncompleteDraft(
                message=f"{line.item.medication_name} has not been resolved",
                detail={"line_id": line.line_id, "medication_name": line.item.medication_name},
            )

    status = combine_statuses(
        (line.status for line in lines),
        any(line.quantity_dispensed > 0 for line in lines),
    )
    subtotal, tax, total = compute_totals((line.line_total for line in lines), tax_rate)
    return FulfillmentSummary(status=status, subtotal=subtotal, tax=tax, total=total)
