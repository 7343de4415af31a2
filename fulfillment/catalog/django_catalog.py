"""
Django ORM 实现：读 InventoryItem 表
"""
from django.db.models import Q

from fulfillment.models import InventoryItem

from .base import InventoryCatalog, InventoryEntry


def to_entry(item: InventoryItem) -> InventoryEntry:
    return InventoryEntry(
        id=item.id,
        name=item.name,
        generic_name=item.generic_name or "",
        quantity_on_hand=item.quantity,
        unit_price=item.unit_price,
        unit=item.unit or "",
        category=item.category or "",
    )


class DjangoInventoryCatalog(InventoryCatalog):
    catalog_id = "django"

    def list(self, search=None, category=None):
        queryset = InventoryItem.objects.filter(is_active=True).order_by('name', 'id')
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(generic_name__icontains=search)
            )
        if category and category != 'all':
            queryset = queryset.filter(category=category)
        return [to_entry(item) for item in queryset]

    def get(self, entry_id):
        item = InventoryItem.objects.filter(id=entry_id, is_active=True).first()
        return to_entry(item) if item else None
