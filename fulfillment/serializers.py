"""
数据校验和格式转换（前端 ↔ 后端）
金额统一输出为两位小数字符串
"""
import json
from datetime import datetime
from decimal import Decimal, InvalidOperation

from pharmacy_fill.exceptions import ValidationError

from .lifecycle import TERMINAL_STATUSES
from .models import LineStatus, SourceKind

SOURCE_KINDS = {choice.value for choice in SourceKind}
LINE_STATUSES = {choice.value for choice in LineStatus}

ISSUE_REQUIRED_FIELDS = ["patient_name", "prescriber_name", "items"]
ITEM_REQUIRED_FIELDS = ["medication_name", "dosage", "quantity_prescribed"]
ITEM_OPTIONAL_STRINGS = ["generic_name", "strength", "frequency", "duration", "instructions"]


def parse_json_body(body):
    """
    解析 POST body (JSON) -> dict
    JSON 格式错误时抛出 ValidationError
    """
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(
            message="Invalid JSON format",
            code="INVALID_JSON",
            detail={"error": str(e)},
        )
    if not isinstance(data, dict):
        raise ValidationError(
            message="请求体必须是 JSON 对象",
            code="INVALID_REQUEST",
            detail={"errors": [{"field": "_", "message": "请求体必须是 JSON 对象"}]},
        )
    return data


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value):
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            Decimal(value)
        except InvalidOperation:
            return False
        return True
    return False


def _parse_date(value, field, errors):
    """YYYY-MM-DD → date；格式不对时记录错误返回 None"""
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        errors.append({"field": field, "message": "日期格式应为 YYYY-MM-DD"})
        return None
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        errors.append({"field": field, "message": "日期格式应为 YYYY-MM-DD"})
        return None


def _first(data, *keys):
    """兼容 camelCase / snake_case 两种字段名"""
    for key in keys:
        if key in data:
            return data[key]
    return None


# ---------------------------------------------------------------------------
# 开具处方
# ---------------------------------------------------------------------------

def validate_issue_prescription_data(data):
    """
    校验开具处方的请求数据，返回规范化后的 dict
    失败时抛出 ValidationError，detail 包含所有错误
    """
    errors = []

    for field in ISSUE_REQUIRED_FIELDS:
        if field not in data:
            errors.append({"field": field, "message": "该字段为必填"})
    for field in ("patient_name", "prescriber_name"):
        value = data.get(field)
        if field in data and (not isinstance(value, str) or not value.strip()):
            errors.append({"field": field, "message": f"{field} 不能为空"})

    items = data.get("items")
    if "items" in data and (not isinstance(items, list) or not items):
        errors.append({"field": "items", "message": "至少需要一种药品"})
        items = []

    clean_items = []
    for index, item in enumerate(items or []):
        prefix = f"items[{index}]"
        if not isinstance(item, dict):
            errors.append({"field": prefix, "message": "药品必须是 JSON 对象"})
            continue
        for field in ITEM_REQUIRED_FIELDS:
            if field not in item:
                errors.append({"field": f"{prefix}.{field}", "message": "该字段为必填"})
        for field in ("medication_name", "dosage"):
            value = item.get(field)
            if field in item and (not isinstance(value, str) or not value.strip()):
                errors.append({"field": f"{prefix}.{field}", "message": f"{field} 不能为空"})
        quantity = item.get("quantity_prescribed")
        if "quantity_prescribed" in item and (not _is_int(quantity) or quantity <= 0):
            errors.append({"field": f"{prefix}.quantity_prescribed", "message": "处方数量必须是正整数"})
        substitution = item.get("substitution_allowed", True)
        if not isinstance(substitution, bool):
            errors.append({"field": f"{prefix}.substitution_allowed", "message": "必须是布尔值"})

        clean = {
            "medication_name": str(item.get("medication_name") or "").strip(),
            "dosage": str(item.get("dosage") or "").strip(),
            "quantity_prescribed": quantity,
            "substitution_allowed": substitution,
        }
        for field in ITEM_OPTIONAL_STRINGS:
            clean[field] = str(item.get(field) or "").strip()
        clean_items.append(clean)

    issued_date = _parse_date(data.get("issued_date"), "issued_date", errors)
    valid_until = _parse_date(data.get("valid_until"), "valid_until", errors)
    if issued_date and valid_until and valid_until < issued_date:
        errors.append({"field": "valid_until", "message": "有效期不能早于开具日期"})

    delivery_required = data.get("delivery_required", False)
    if not isinstance(delivery_required, bool):
        errors.append({"field": "delivery_required", "message": "必须是布尔值"})
        delivery_required = False
    delivery_address = str(data.get("delivery_address") or "").strip()
    if delivery_required and not delivery_address:
        errors.append({"field": "delivery_address", "message": "需要配送时必须填写配送地址"})

    if errors:
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )

    return {
        "prescription_number": str(data.get("prescription_number") or "").strip(),
        "patient_name": data["patient_name"].strip(),
        "prescriber_name": data["prescriber_name"].strip(),
        "issued_date": issued_date,
        "valid_until": valid_until,
        "delivery_required": delivery_required,
        "delivery_address": delivery_address,
        "notes": str(data.get("notes") or "").strip(),
        "items": clean_items,
    }


# ---------------------------------------------------------------------------
# 发药提交
# ---------------------------------------------------------------------------

def validate_fill_request(data):
    """
    校验 fill 请求：
    {lines: [{lineId, sourceKind, inventoryRef?, quantityDispensed, unitPrice, status?, notes?}],
     totalAmount?, version?, notes?, dispensedBy?}
    只做格式校验，数量 / 单价的业务边界由 drafting 负责
    """
    errors = []
    lines = data.get("lines")
    if not isinstance(lines, list):
        errors.append({"field": "lines", "message": "lines 必须是数组"})
        lines = []

    clean_lines = []
    for index, line in enumerate(lines):
        prefix = f"lines[{index}]"
        if not isinstance(line, dict):
            errors.append({"field": prefix, "message": "行必须是 JSON 对象"})
            continue

        line_id = _first(line, "lineId", "line_id")
        if not _is_int(line_id):
            errors.append({"field": f"{prefix}.lineId", "message": "lineId 必须是整数"})

        source_kind = _first(line, "sourceKind", "source_kind")
        if source_kind not in SOURCE_KINDS:
            errors.append({
                "field": f"{prefix}.sourceKind",
                "message": f"sourceKind 必须是 {sorted(SOURCE_KINDS)} 之一",
            })

        inventory_ref = _first(line, "inventoryRef", "inventory_ref")
        if source_kind == SourceKind.INVENTORY_MATCHED and not _is_int(inventory_ref):
            errors.append({"field": f"{prefix}.inventoryRef", "message": "库存匹配时 inventoryRef 必填"})

        quantity = _first(line, "quantityDispensed", "quantity_dispensed")
        if quantity is not None and not _is_int(quantity):
            errors.append({"field": f"{prefix}.quantityDispensed", "message": "quantityDispensed 必须是整数"})

        unit_price = _first(line, "unitPrice", "unit_price")
        if unit_price is not None and not _is_number(unit_price):
            errors.append({"field": f"{prefix}.unitPrice", "message": "unitPrice 必须是数字"})

        status = line.get("status")
        if status is not None and status not in LINE_STATUSES:
            errors.append({
                "field": f"{prefix}.status",
                "message": f"status 必须是 {sorted(LINE_STATUSES)} 之一",
            })

        clean_lines.append({
            "line_id": line_id,
            "source_kind": source_kind,
            "inventory_ref": inventory_ref if source_kind == SourceKind.INVENTORY_MATCHED else None,
            "quantity_dispensed": quantity,
            "unit_price": unit_price,
            "status": status,
            "notes": str(line.get("notes") or ""),
        })

    total_amount = _first(data, "totalAmount", "total_amount")
    if total_amount is not None and not _is_number(total_amount):
        errors.append({"field": "totalAmount", "message": "totalAmount 必须是数字"})

    version = data.get("version")
    if version is not None and not _is_int(version):
        errors.append({"field": "version", "message": "version 必须是整数"})

    if errors:
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )

    return {
        "lines": clean_lines,
        "total_amount": total_amount,
        "version": version,
        "notes": str(data.get("notes") or ""),
        "dispensed_by": str(_first(data, "dispensedBy", "dispensed_by") or ""),
    }


# ---------------------------------------------------------------------------
# 输出
# ---------------------------------------------------------------------------

def money(value):
    return f"{Decimal(value):.2f}"


def serialize_inventory_entry(entry):
    return {
        "id": entry.id,
        "name": entry.name,
        "generic_name": entry.generic_name,
        "quantity_on_hand": entry.quantity_on_hand,
        "unit_price": money(entry.unit_price),
        "unit": entry.unit,
        "category": entry.category,
    }


def serialize_line_outcome(outcome):
    return {
        "line_id": outcome.prescribed_item_id,
        "medication_name": outcome.prescribed_item.medication_name,
        "source_kind": outcome.source_kind,
        "inventory_ref": outcome.inventory_item_id,
        "quantity_dispensed": outcome.quantity_dispensed,
        "unit_price": money(outcome.unit_price),
        "line_total": money(outcome.line_total),
        "status": outcome.status,
        "notes": outcome.notes,
    }


def serialize_round(fulfillment_round):
    return {
        "number": fulfillment_round.number,
        "dispensed_by": fulfillment_round.dispensed_by,
        "notes": fulfillment_round.notes,
        "subtotal": money(fulfillment_round.subtotal),
        "tax": money(fulfillment_round.tax),
        "total": money(fulfillment_round.total),
        "resulting_status": fulfillment_round.resulting_status,
        "created_at": fulfillment_round.created_at.isoformat(),
        "lines": [serialize_line_outcome(o) for o in fulfillment_round.lines.all()],
    }


def serialize_prescribed_item(item, dispensed=0):
    return {
        "id": item.id,
        "medication_name": item.medication_name,
        "generic_name": item.generic_name,
        "strength": item.strength,
        "dosage": item.dosage,
        "frequency": item.frequency,
        "duration": item.duration,
        "quantity_prescribed": item.quantity_prescribed,
        "quantity_dispensed": dispensed,
        "quantity_remaining": max(0, item.quantity_prescribed - dispensed),
        "instructions": item.instructions,
        "substitution_allowed": item.substitution_allowed,
    }


def serialize_prescription_summary(prescription):
    """列表用：不带轮次明细"""
    return {
        "id": prescription.id,
        "prescription_number": prescription.prescription_number,
        "patient_name": prescription.patient_name,
        "prescriber_name": prescription.prescriber_name,
        "status": prescription.status,
        "total_amount": money(prescription.total_amount),
        "issued_date": prescription.issued_date.isoformat(),
        "valid_until": prescription.valid_until.isoformat() if prescription.valid_until else None,
        "item_count": len(prescription.items.all()),
        "created_at": prescription.created_at.isoformat(),
    }


def serialize_prescription(prescription, dispensed=None):
    """详情：处方药品（含累计发药量）+ 所有发药轮次"""
    dispensed = dispensed or {}
    return {
        "id": prescription.id,
        "prescription_number": prescription.prescription_number,
        "patient_name": prescription.patient_name,
        "prescriber_name": prescription.prescriber_name,
        "issued_date": prescription.issued_date.isoformat(),
        "valid_until": prescription.valid_until.isoformat() if prescription.valid_until else None,
        "delivery_required": prescription.delivery_required,
        "delivery_address": prescription.delivery_address,
        "status": prescription.status,
        "is_terminal": prescription.status in TERMINAL_STATUSES,
        "total_amount": money(prescription.total_amount),
        "notes": prescription.notes,
        "filled_date": prescription.filled_date.isoformat() if prescription.filled_date else None,
        "filled_by": prescription.filled_by,
        "version": prescription.version,
        "items": [
            serialize_prescribed_item(item, dispensed.get(item.id, 0))
            for item in prescription.items.all()
        ],
        "rounds": [serialize_round(r) for r in prescription.rounds.all()],
    }
