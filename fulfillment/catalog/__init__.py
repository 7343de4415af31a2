"""
库存目录（外部协作方）：只读查询接口
"""
from .base import InventoryCatalog, InventoryEntry
from .django_catalog import DjangoInventoryCatalog
from .static_catalog import StaticInventoryCatalog
from .factory import get_catalog, register_catalog

__all__ = [
    "InventoryCatalog",
    "InventoryEntry",
    "DjangoInventoryCatalog",
    "StaticInventoryCatalog",
    "get_catalog",
    "register_catalog",
]
