"""
发药草稿：每个 PrescribedItem 对应一行 LineDraft
药师在内存里反复选择来源、修改数量和单价，提交前不落库
行状态和行金额都由输入推导，不单独存储
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from pharmacy_fill.exceptions import (
    ExceedsPrescribed,
    InvalidState,
    OutOfRange,
    ValidationError,
)

from .catalog import InventoryEntry
from .models import LineStatus, SourceKind

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# 与 DecimalField 位数一致：单价 max_digits=10，行金额 / 合计 max_digits=12
MAX_UNIT_PRICE = Decimal("99999999.99")
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass(frozen=True)
class PrescribedItemInfo:
    """处方药品（内部标准，只读）"""
    id: int
    medication_name: str
    quantity_prescribed: int
    generic_name: str = ""
    strength: str = ""
    dosage: str = ""
    substitution_allowed: bool = True

    @classmethod
    def from_model(cls, item, quantity_prescribed=None):
        """
        从 PrescribedItem 构造
        quantity_prescribed: 续发轮次传入剩余数量，默认取处方数量
        """
        return cls(
            id=item.id,
            medication_name=item.medication_name,
            quantity_prescribed=(
                item.quantity_prescribed if quantity_prescribed is None else quantity_prescribed
            ),
            generic_name=item.generic_name or "",
            strength=item.strength or "",
            dosage=item.dosage or "",
            substitution_allowed=item.substitution_allowed,
        )


def to_money(value, field_name="unit_price"):
    """转成两位小数的 Decimal；无法解析时抛 ValidationError"""
    if isinstance(value, bool):
        raise ValidationError(
            message=f"{field_name} must be a number",
            detail={"field": field_name},
        )
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            message=f"{field_name} must be a number",
            detail={"field": field_name, "value": str(value)},
        )
    if not amount.is_finite():
        raise ValidationError(
            message=f"{field_name} must be a number",
            detail={"field": field_name, "value": str(value)},
        )
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise OutOfRange(
            message=f"{field_name} is too large",
            detail={"field": field_name, "value": str(value)},
        )


def status_for_quantity(quantity_dispensed, quantity_prescribed):
    """按数量推导：0 → 缺货；不足 → 部分；足量 → 完成"""
    if quantity_dispensed <= 0:
        return LineStatus.OUT_OF_STOCK
    if quantity_dispensed < quantity_prescribed:
        return LineStatus.PARTIALLY_FILLED
    return LineStatus.FILLED


def derive_status(source_kind, quantity_dispensed, quantity_prescribed):
    """行状态：SourceKind + 发药数量的纯函数"""
    if source_kind == SourceKind.UNRESOLVED:
        return LineStatus.PENDING
    if source_kind == SourceKind.UNAVAILABLE:
        return LineStatus.OUT_OF_STOCK
    return status_for_quantity(quantity_dispensed, quantity_prescribed)


@dataclass(frozen=True)
class LineDraft:
    item: PrescribedItemInfo
    source_kind: str = SourceKind.UNRESOLVED
    inventory_ref: Optional[int] = None
    available_stock: Optional[int] = None
    quantity_dispensed: int = 0
    unit_price: Decimal = ZERO
    notes: str = field(default="", compare=False)

    @property
    def line_id(self):
        return self.item.id

    @property
    def line_total(self):
        return self.unit_price * self.quantity_dispensed

    @property
    def status(self):
        return derive_status(self.source_kind, self.quantity_dispensed, self.item.quantity_prescribed)


def new_draft(item: PrescribedItemInfo) -> LineDraft:
    return LineDraft(item=item)


# ---------------------------------------------------------------------------
# 来源选择
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SelectInventory:
    entry: InventoryEntry


@dataclass(frozen=True)
class ManualEntry:
    pass


@dataclass(frozen=True)
class MarkUnavailable:
    pass


@dataclass(frozen=True)
class EditQuantityOrPrice:
    quantity: int
    unit_price: Union[Decimal, str, int, float]


SourceChoice = Union[SelectInventory, ManualEntry, MarkUnavailable, EditQuantityOrPrice]


def resolve(line: LineDraft, choice: SourceChoice) -> LineDraft:
    """
    对一行应用来源选择，返回更新后的 LineDraft
    - SelectInventory：库存匹配，数量取 min(处方数量, 库存)，单价取库存单价
    - ManualEntry：手工录入，数量默认处方数量，单价 0，需再 Edit
    - MarkUnavailable：缺货，数量 0，单价 0
    - EditQuantityOrPrice：仅库存匹配 / 手工录入可改
    """
    if isinstance(choice, SelectInventory):
        entry = choice.entry
        return replace(
            line,
            source_kind=SourceKind.INVENTORY_MATCHED,
            inventory_ref=entry.id,
            available_stock=entry.quantity_on_hand,
            unit_price=to_money(entry.unit_price),
            quantity_dispensed=max(0, min(line.item.quantity_prescribed, entry.quantity_on_hand)),
        )

    if isinstance(choice, ManualEntry):
        return replace(
            line,
            source_kind=SourceKind.MANUAL,
            inventory_ref=None,
            available_stock=None,
            quantity_dispensed=line.item.quantity_prescribed,
            unit_price=ZERO,
        )

    if isinstance(choice, MarkUnavailable):
        return replace(
            line,
            source_kind=SourceKind.UNAVAILABLE,
            inventory_ref=None,
            available_stock=None,
            quantity_dispensed=0,
            unit_price=ZERO,
        )

    if isinstance(choice, EditQuantityOrPrice):
        return _edit(line, choice.quantity, choice.unit_price)

    raise TypeError(f"Unknown source choice: {choice!r}")


def _edit(line, quantity, unit_price):
    if line.source_kind not in (SourceKind.INVENTORY_MATCHED, SourceKind.MANUAL):
        raise InvalidState(
            message="Only inventory-matched or manual lines can be edited",
            detail={"line_id": line.line_id, "source_kind": str(line.source_kind)},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(
            message="quantity_dispensed must be an integer",
            detail={"line_id": line.line_id, "field": "quantity_dispensed"},
        )
    price = to_money(unit_price)

    if quantity < 0:
        raise OutOfRange(
            message="quantity_dispensed cannot be negative",
            detail={"line_id": line.line_id, "field": "quantity_dispensed", "value": quantity},
        )
    if price < 0:
        raise OutOfRange(
            message="unit_price cannot be negative",
            detail={"line_id": line.line_id, "field": "unit_price", "value": str(price)},
        )
    if price > MAX_UNIT_PRICE:
        raise OutOfRange(
            message=f"unit_price cannot exceed {MAX_UNIT_PRICE}",
            detail={"line_id": line.line_id, "field": "unit_price", "value": str(price)},
        )
    if quantity > line.item.quantity_prescribed:
        raise ExceedsPrescribed(
            message=f"{line.item.medication_name}: cannot dispense more than prescribed",
            detail={
                "line_id": line.line_id,
                "field": "quantity_dispensed",
                "value": quantity,
                "quantity_prescribed": line.item.quantity_prescribed,
            },
        )
    if (
        line.source_kind == SourceKind.INVENTORY_MATCHED
        and line.available_stock is not None
        and quantity > line.available_stock
    ):
        raise OutOfRange(
            message=f"Insufficient stock for {line.item.medication_name}",
            detail={
                "line_id": line.line_id,
                "field": "quantity_dispensed",
                "value": quantity,
                "available_stock": line.available_stock,
            },
        )
    if price * quantity > MAX_AMOUNT:
        raise OutOfRange(
            message=f"line_total cannot exceed {MAX_AMOUNT}",
            detail={"line_id": line.line_id, "field": "line_total", "value": str(price * quantity)},
        )
    return replace(line, quantity_dispensed=quantity, unit_price=price)
