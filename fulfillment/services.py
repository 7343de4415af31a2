"""
业务逻辑：处方查询、发药提交（草稿 → 汇总 → 原子落库）、生命周期流转
"""
import logging
import math
from dataclasses import replace
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from pharmacy_fill.exceptions import (
    BlockError,
    ConcurrentModification,
    ExceedsPrescribed,
    IncompleteDraft,
    OutOfRange,
    ValidationError,
)

from . import lifecycle
from .aggregation import aggregate, combine_statuses
from .catalog import get_catalog
from .drafting import (
    MAX_AMOUNT,
    MAX_UNIT_PRICE,
    EditQuantityOrPrice,
    ManualEntry,
    MarkUnavailable,
    PrescribedItemInfo,
    SelectInventory,
    new_draft,
    resolve,
    status_for_quantity,
    to_money,
)
from .matching import find_candidates
from .metrics import FILL_AMOUNT, FILL_COMMITTED, PRESCRIPTION_ISSUED
from .models import (
    FulfillmentRound,
    LineOutcome,
    LineStatus,
    PrescribedItem,
    Prescription,
    PrescriptionStatus,
    SourceKind,
)
from .serializers import (
    serialize_inventory_entry,
    serialize_prescription,
    serialize_prescription_summary,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_STATS_PERIOD_DAYS = 3650
INVENTORY_SEARCH_LIMIT = 50


# ---------------------------------------------------------------------------
# 开具 / 查询
# ---------------------------------------------------------------------------

def issue_prescription(data):
    """
    创建处方及药品明细（data 已经过 validate_issue_prescription_data）
    """
    with transaction.atomic():
        prescription = Prescription.objects.create(
            prescription_number=data.get('prescription_number') or '',
            patient_name=data['patient_name'],
            prescriber_name=data['prescriber_name'],
            issued_date=data.get('issued_date') or timezone.localdate(),
            valid_until=data.get('valid_until'),
            delivery_required=data.get('delivery_required', False),
            delivery_address=data.get('delivery_address', ''),
            notes=data.get('notes', ''),
        )
        PrescribedItem.objects.bulk_create([
            PrescribedItem(prescription=prescription, **item)
            for item in data['items']
        ])

    PRESCRIPTION_ISSUED.inc()
    logger.info(
        "Issued prescription %s with %d items",
        prescription.prescription_number,
        len(data['items']),
    )
    return {"success": True, "data": serialize_prescription(prescription)}


def get_prescription(prescription_id):
    """
    取处方，不存在抛 404
    顺带做惰性过期判断
    """
    try:
        prescription = Prescription.objects.get(id=prescription_id)
    except Prescription.DoesNotExist:
        raise BlockError(
            message="Prescription not found",
            code="NOT_FOUND",
            detail={"prescription_id": prescription_id},
            http_status=404,
        )
    lifecycle.expire_if_due(prescription)
    return prescription


def dispensed_quantities(prescription):
    """每个 PrescribedItem 历次已发数量之和：{item_id: quantity}"""
    rows = (
        LineOutcome.objects
        .filter(fulfillment_round__prescription=prescription)
        .values('prescribed_item_id')
        .annotate(total=Sum('quantity_dispensed'))
    )
    return {row['prescribed_item_id']: row['total'] or 0 for row in rows}


def remaining_quantities(prescription, dispensed=None):
    """每个 PrescribedItem 还可发的数量：{item_id: quantity}"""
    if dispensed is None:
        dispensed = dispensed_quantities(prescription)
    return {
        item.id: max(0, item.quantity_prescribed - dispensed.get(item.id, 0))
        for item in prescription.items.all()
    }


def get_prescription_detail(prescription_id):
    prescription = get_prescription(prescription_id)
    return _detail_response(prescription)


def _detail_response(prescription):
    prescription = (
        Prescription.objects
        .prefetch_related('items', 'rounds__lines__prescribed_item')
        .get(pk=prescription.pk)
    )
    return {
        "success": True,
        "data": serialize_prescription(prescription, dispensed_quantities(prescription)),
    }


def list_prescriptions(status=None, search=None, page=1, limit=DEFAULT_PAGE_SIZE):
    """
    处方列表：按状态 / 关键字过滤，按创建时间倒序分页
    """
    lifecycle.expire_overdue()

    try:
        page = max(1, int(page))
        limit = min(MAX_PAGE_SIZE, max(1, int(limit)))
    except (TypeError, ValueError):
        raise ValidationError(
            message="page and limit must be integers",
            detail={"errors": [{"field": "page/limit", "message": "必须是整数"}]},
        )

    queryset = Prescription.objects.prefetch_related('items').order_by('-created_at', '-id')
    if status and status != 'all':
        if status not in PrescriptionStatus.values:
            raise ValidationError(
                message=f"Unknown status: {status}",
                detail={"errors": [{"field": "status", "message": "未知状态"}]},
            )
        queryset = queryset.filter(status=status)
    if search:
        queryset = queryset.filter(
            Q(prescription_number__icontains=search)
            | Q(patient_name__icontains=search)
            | Q(prescriber_name__icontains=search)
        )

    total = queryset.count()
    offset = (page - 1) * limit
    return {
        "success": True,
        "data": {
            "prescriptions": [
                serialize_prescription_summary(p) for p in queryset[offset:offset + limit]
            ],
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
            "current_page": page,
        },
    }


def prescription_stats(period_days=7):
    """
    统计：各状态数量、统计周期内收入、发药最多的 5 种药
    """
    lifecycle.expire_overdue()

    try:
        period_days = min(MAX_STATS_PERIOD_DAYS, max(1, int(period_days)))
    except (TypeError, ValueError):
        raise ValidationError(
            message="period must be an integer",
            detail={"errors": [{"field": "period", "message": "必须是整数"}]},
        )
    since = timezone.now() - timedelta(days=period_days)

    counts = {choice.value: 0 for choice in PrescriptionStatus}
    for row in Prescription.objects.values('status').annotate(count=Count('id')):
        counts[row['status']] = row['count']

    rounds = FulfillmentRound.objects.filter(created_at__gte=since)
    revenue = rounds.aggregate(total=Sum('total'))['total'] or 0

    top_medications = (
        LineOutcome.objects
        .filter(quantity_dispensed__gt=0)
        .values('prescribed_item__medication_name')
        .annotate(count=Count('id'), quantity=Sum('quantity_dispensed'))
        .order_by('-count', 'prescribed_item__medication_name')[:5]
    )

    return {
        "success": True,
        "data": {
            "period_days": period_days,
            "total_prescriptions": sum(counts.values()),
            "status_counts": counts,
            "rounds_in_period": rounds.count(),
            "revenue_in_period": f"{revenue:.2f}",
            "top_medications": [
                {
                    "medication_name": row['prescribed_item__medication_name'],
                    "count": row['count'],
                    "quantity_dispensed": row['quantity'],
                }
                for row in top_medications
            ],
        },
    }


# ---------------------------------------------------------------------------
# 库存检索 / 候选匹配
# ---------------------------------------------------------------------------

def search_inventory(q=None, category=None, catalog=None):
    catalog = catalog or get_catalog()
    entries = catalog.list(search=(q or '').strip() or None, category=category)
    return {
        "success": True,
        "data": {"results": [serialize_inventory_entry(e) for e in entries[:INVENTORY_SEARCH_LIMIT]]},
    }


def line_candidates(prescription_id, item_id, q, catalog=None):
    """某一行药品的库存候选（药师每次输入都重新调用）"""
    prescription = get_prescription(prescription_id)
    item = prescription.items.filter(id=item_id).first()
    if item is None:
        raise BlockError(
            message="Prescribed item not found",
            code="LINE_NOT_FOUND",
            detail={"line_id": item_id},
            http_status=404,
        )
    catalog = catalog or get_catalog()
    candidates = find_candidates(PrescribedItemInfo.from_model(item), q or '', catalog.list())
    return {
        "success": True,
        "data": {
            "line_id": item.id,
            "medication_name": item.medication_name,
            "results": [serialize_inventory_entry(e) for e in candidates],
        },
    }


# ---------------------------------------------------------------------------
# 发药草稿
# ---------------------------------------------------------------------------

def start_draft(prescription, dispensed=None):
    """
    本轮草稿：每个还有剩余数量的药品一行，数量上限为剩余数量
    """
    remaining = remaining_quantities(prescription, dispensed)
    return [
        new_draft(PrescribedItemInfo.from_model(item, quantity_prescribed=remaining[item.id]))
        for item in prescription.items.all()
        if remaining[item.id] > 0
    ]


def _apply_line(draft, line, catalog):
    """把请求里的一行（来源 + 数量 + 单价）回放到草稿上"""
    kind = line['source_kind']
    quantity = line.get('quantity_dispensed')
    unit_price = line.get('unit_price')

    if kind == SourceKind.UNRESOLVED:
        return draft
    if kind == SourceKind.UNAVAILABLE:
        return resolve(draft, MarkUnavailable())

    if kind == SourceKind.INVENTORY_MATCHED:
        entry = catalog.get(line['inventory_ref'])
        if entry is None:
            raise ValidationError(
                message="Inventory item not found",
                code="INVENTORY_NOT_FOUND",
                detail={"line_id": draft.line_id, "inventory_ref": line['inventory_ref']},
            )
        draft = resolve(draft, SelectInventory(entry))
        if not getattr(settings, 'FULFILLMENT_REVALIDATE_STOCK', True):
            draft = replace(draft, available_stock=None)
    else:
        if unit_price is None:
            raise ValidationError(
                message="unit_price is required for manual lines",
                code="UNIT_PRICE_REQUIRED",
                detail={"line_id": draft.line_id, "field": "unit_price"},
            )
        draft = resolve(draft, ManualEntry())

    return resolve(draft, EditQuantityOrPrice(
        quantity=draft.quantity_dispensed if quantity is None else quantity,
        unit_price=draft.unit_price if unit_price is None else unit_price,
    ))


def build_draft(prescription, lines, catalog=None, dispensed=None):
    """
    请求行 → LineDraft 列表
    库存匹配的行按当前库存重新校验；客户端带的 status 必须与推导结果一致
    """
    catalog = catalog or get_catalog()
    item_ids = {item.id for item in prescription.items.all()}
    drafts = {d.line_id: d for d in start_draft(prescription, dispensed)}

    result = []
    for line in lines:
        line_id = line['line_id']
        if line_id not in item_ids:
            raise BlockError(
                message="Prescribed item not found",
                code="LINE_NOT_FOUND",
                detail={"line_id": line_id},
                http_status=404,
            )
        if line_id not in drafts:
            raise ValidationError(
                message="Item has already been fully dispensed",
                code="ITEM_ALREADY_FILLED",
                detail={"line_id": line_id},
            )
        if line.get('status') == LineStatus.PENDING:
            raise IncompleteDraft(
                message=f"{drafts[line_id].item.medication_name} has not been resolved",
                detail={"line_id": line_id, "medication_name": drafts[line_id].item.medication_name},
            )

        draft = _apply_line(drafts[line_id], line, catalog)
        if line.get('notes'):
            draft = replace(draft, notes=line['notes'])
        if line.get('status') and line['status'] != draft.status:
            raise ValidationError(
                message=f"Line status {line['status']} does not match derived status {draft.status}",
                code="STATUS_MISMATCH",
                detail={"line_id": line_id, "status": line['status'], "derived_status": str(draft.status)},
            )
        result.append(draft)
    return result


# ---------------------------------------------------------------------------
# 提交
# ---------------------------------------------------------------------------

def _check_preconditions(prescription, expected_version):
    if expected_version is not None and expected_version != prescription.version:
        raise ConcurrentModification(
            detail={
                "prescription_id": prescription.pk,
                "expected_version": expected_version,
                "current_version": prescription.version,
            },
        )
    lifecycle.ensure_fillable(prescription)


def _commit(prescription, draft_lines, expected_total=None, dispensed_by="", notes="", dispensed=None):
    """
    校验草稿覆盖度 → 汇总 → 原子写入（状态 + 金额 + 轮次 + 行结果）
    任何一步失败都不改变数据库
    """
    items = {item.id: item for item in prescription.items.all()}
    if dispensed is None:
        dispensed = dispensed_quantities(prescription)
    remaining = remaining_quantities(prescription, dispensed)

    lines = []
    seen = set()
    for line in draft_lines:
        if line.line_id not in items:
            raise BlockError(
                message="Prescribed item not found",
                code="LINE_NOT_FOUND",
                detail={"line_id": line.line_id},
                http_status=404,
            )
        if line.line_id in seen:
            raise ValidationError(
                message="Each prescribed item may appear only once",
                code="DUPLICATE_LINE",
                detail={"line_id": line.line_id},
            )
        seen.add(line.line_id)
        if line.status == LineStatus.PENDING:
            raise IncompleteDraft(
                message=f"{line.item.medication_name} has not been resolved",
                detail={"line_id": line.line_id, "medication_name": line.item.medication_name},
            )
        if line.quantity_dispensed < 0 or line.unit_price < 0:
            raise OutOfRange(detail={"line_id": line.line_id})
        if line.unit_price > MAX_UNIT_PRICE or line.line_total > MAX_AMOUNT:
            raise OutOfRange(
                message="unit_price or line_total is too large",
                detail={"line_id": line.line_id, "unit_price": str(line.unit_price)},
            )
        if line.quantity_dispensed > remaining[line.line_id]:
            raise ExceedsPrescribed(
                message=f"{line.item.medication_name}: cannot dispense more than prescribed",
                detail={
                    "line_id": line.line_id,
                    "value": line.quantity_dispensed,
                    "quantity_remaining": remaining[line.line_id],
                },
            )
        # 行状态按本轮剩余数量推导
        lines.append(replace(line, item=replace(line.item, quantity_prescribed=remaining[line.line_id])))

    for item_id, item in items.items():
        if remaining[item_id] > 0 and item_id not in seen:
            raise IncompleteDraft(
                message=f"{item.medication_name} has not been resolved",
                detail={"line_id": item_id, "medication_name": item.medication_name},
            )

    summary = aggregate(lines)

    if expected_total is not None and to_money(expected_total, "total_amount") != summary.total:
        raise ValidationError(
            message="Submitted total does not match computed total",
            code="TOTAL_MISMATCH",
            detail={"submitted": str(to_money(expected_total, "total_amount")), "computed": str(summary.total)},
        )

    total_amount = prescription.total_amount + summary.total
    if total_amount > MAX_AMOUNT:
        raise OutOfRange(
            message=f"total_amount cannot exceed {MAX_AMOUNT}",
            detail={"field": "total_amount", "value": str(total_amount)},
        )

    this_round = {line.line_id: line.quantity_dispensed for line in lines}
    overall = combine_statuses(
        (
            status_for_quantity(dispensed.get(item_id, 0) + this_round.get(item_id, 0), item.quantity_prescribed)
            for item_id, item in items.items()
        ),
        dispensed_any=True,
    )

    fields = {
        "total_amount": total_amount,
        "filled_by": dispensed_by or prescription.filled_by,
    }
    if overall == PrescriptionStatus.FILLED:
        fields["filled_date"] = timezone.now()

    with transaction.atomic():
        lifecycle.apply_transition(prescription, overall, **fields)
        fulfillment_round = FulfillmentRound.objects.create(
            prescription=prescription,
            number=FulfillmentRound.objects.filter(prescription=prescription).count() + 1,
            dispensed_by=dispensed_by,
            notes=notes,
            subtotal=summary.subtotal,
            tax=summary.tax,
            total=summary.total,
            resulting_status=overall,
        )
        LineOutcome.objects.bulk_create([
            LineOutcome(
                fulfillment_round=fulfillment_round,
                prescribed_item_id=line.line_id,
                source_kind=line.source_kind,
                inventory_item_id=line.inventory_ref,
                quantity_dispensed=line.quantity_dispensed,
                unit_price=line.unit_price,
                line_total=line.line_total,
                status=line.status,
                notes=line.notes,
            )
            for line in lines
        ])

    FILL_COMMITTED.labels(status=str(overall)).inc()
    FILL_AMOUNT.inc(float(summary.total))
    logger.info(
        "Prescription %s round %d committed: %s, total %s",
        prescription.prescription_number,
        fulfillment_round.number,
        overall,
        summary.total,
    )
    return prescription


def submit(prescription_id, draft_lines, expected_version=None, expected_total=None, dispensed_by="", notes=""):
    """
    提交一轮发药草稿，成功返回更新后的 Prescription
    expected_version：客户端读到的版本号，不一致抛 ConcurrentModification
    expected_total：客户端算出的合计，与服务端不一致抛 TOTAL_MISMATCH
    """
    prescription = get_prescription(prescription_id)
    _check_preconditions(prescription, expected_version)
    return _commit(prescription, draft_lines, expected_total, dispensed_by, notes)


def fill_prescription(prescription_id, data, catalog=None):
    """
    HTTP 入口：data 已经过 validate_fill_request
    """
    prescription = get_prescription(prescription_id)
    _check_preconditions(prescription, data.get('version'))
    dispensed = dispensed_quantities(prescription)
    drafts = build_draft(prescription, data['lines'], catalog=catalog, dispensed=dispensed)
    prescription = _commit(
        prescription,
        drafts,
        expected_total=data.get('total_amount'),
        dispensed_by=data.get('dispensed_by', ''),
        notes=data.get('notes', ''),
        dispensed=dispensed,
    )
    return _detail_response(prescription)


# ---------------------------------------------------------------------------
# 生命周期
# ---------------------------------------------------------------------------

def cancel_prescription(prescription_id, reason=""):
    prescription = get_prescription(prescription_id)
    lifecycle.cancel(prescription, reason)
    return _detail_response(prescription)


def ready_for_delivery(prescription_id):
    prescription = get_prescription(prescription_id)
    lifecycle.mark_ready_for_delivery(prescription)
    return _detail_response(prescription)


def delivered(prescription_id):
    prescription = get_prescription(prescription_id)
    lifecycle.mark_delivered(prescription)
    return _detail_response(prescription)
