import random
from decimal import Decimal

from django.db import models
from django.utils import timezone


class SourceKind(models.TextChoices):
    """行的来源：未处理 / 库存匹配 / 手工录入 / 缺货"""
    UNRESOLVED = 'unresolved', 'Unresolved'
    INVENTORY_MATCHED = 'inventory_matched', 'Inventory matched'
    MANUAL = 'manual', 'Manual'
    UNAVAILABLE = 'unavailable', 'Unavailable'


class LineStatus(models.TextChoices):
    """行状态：由 SourceKind + 发药数量推导，不单独设置"""
    PENDING = 'pending', 'Pending'
    FILLED = 'filled', 'Filled'
    PARTIALLY_FILLED = 'partially_filled', 'Partially filled'
    OUT_OF_STOCK = 'out_of_stock', 'Out of stock'


class PrescriptionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PARTIALLY_FILLED = 'partially_filled', 'Partially filled'
    FILLED = 'filled', 'Filled'
    READY_FOR_DELIVERY = 'ready_for_delivery', 'Ready for delivery'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'
    EXPIRED = 'expired', 'Expired'


"""
InventoryItem字段（库存目录，本模块只读）:
name; generic_name; quantity（库存数量）; unit_price; unit; category; is_active
"""
class InventoryItem(models.Model):
    name = models.CharField(max_length=200)
    generic_name = models.CharField(max_length=200, blank=True)
    quantity = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    unit = models.CharField(max_length=30, blank=True)
    category = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']

    def __str__(self):
        return f"{self.name} ({self.quantity} {self.unit})".strip()


def generate_prescription_number():
    """RX + 日期 + 4 位随机数，如 RX202610181234"""
    return f"RX{timezone.now():%Y%m%d}{random.randint(1000, 9999)}"


"""
Prescription字段:
prescription_number(唯一); patient_name; prescriber_name; issued_date; valid_until
delivery_required; delivery_address; status; total_amount; notes
filled_date; filled_by; version（乐观锁，每次提交 +1）
"""
class Prescription(models.Model):
    prescription_number = models.CharField(max_length=50, unique=True, blank=True)
    patient_name = models.CharField(max_length=200)
    prescriber_name = models.CharField(max_length=200)
    issued_date = models.DateField(default=timezone.localdate)
    valid_until = models.DateField(null=True, blank=True)
    delivery_required = models.BooleanField(default=False)
    delivery_address = models.TextField(blank=True)
    status = models.CharField(
        max_length=30,
        choices=PrescriptionStatus.choices,
        default=PrescriptionStatus.PENDING,
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    filled_date = models.DateTimeField(null=True, blank=True)
    filled_by = models.CharField(max_length=200, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.prescription_number:
            number = generate_prescription_number()
            while Prescription.objects.filter(prescription_number=number).exists():
                number = generate_prescription_number()
            self.prescription_number = number
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.prescription_number} for {self.patient_name} ({self.status})"


"""
PrescribedItem字段（医生开具后不再修改）:
prescription (外键); medication_name; generic_name; strength; dosage; frequency; duration
quantity_prescribed; instructions; substitution_allowed
"""
class PrescribedItem(models.Model):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name='items')
    medication_name = models.CharField(max_length=200)
    generic_name = models.CharField(max_length=200, blank=True)
    strength = models.CharField(max_length=50, blank=True)
    dosage = models.CharField(max_length=100)
    frequency = models.CharField(max_length=100, blank=True)
    duration = models.CharField(max_length=100, blank=True)
    quantity_prescribed = models.PositiveIntegerField()
    instructions = models.TextField(blank=True)
    substitution_allowed = models.BooleanField(default=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.medication_name} x{self.quantity_prescribed}"


"""
FulfillmentRound：每次发药提交生成一条快照，之后不再修改
number（第几轮）; dispensed_by; notes; subtotal; tax; total; resulting_status
"""
class FulfillmentRound(models.Model):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name='rounds')
    number = models.PositiveIntegerField()
    dispensed_by = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    resulting_status = models.CharField(max_length=30, choices=PrescriptionStatus.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['number']
        constraints = [
            models.UniqueConstraint(fields=['prescription', 'number'], name='unique_round_per_prescription'),
        ]

    def __str__(self):
        return f"Round {self.number} of {self.prescription_id}"


"""
LineOutcome：某一轮中某个 PrescribedItem 的发药结果
source_kind; inventory_item（仅库存匹配时）; quantity_dispensed; unit_price; line_total; status
"""
class LineOutcome(models.Model):
    fulfillment_round = models.ForeignKey(FulfillmentRound, on_delete=models.CASCADE, related_name='lines')
    prescribed_item = models.ForeignKey(PrescribedItem, on_delete=models.CASCADE, related_name='outcomes')
    source_kind = models.CharField(max_length=30, choices=SourceKind.choices)
    inventory_item = models.ForeignKey(
        InventoryItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    quantity_dispensed = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=30, choices=LineStatus.choices)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.prescribed_item} -> {self.quantity_dispensed} ({self.status})"
