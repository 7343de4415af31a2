"""
工厂函数：根据配置返回对应库存目录
"""
from typing import Dict, Type

from django.conf import settings

from .base import InventoryCatalog
from .django_catalog import DjangoInventoryCatalog
from .static_catalog import StaticInventoryCatalog

# catalog 标识 -> 实现类
_CATALOG_REGISTRY: Dict[str, Type[InventoryCatalog]] = {
    "django": DjangoInventoryCatalog,
    "static": StaticInventoryCatalog,
}


def get_catalog(name: str | None = None) -> InventoryCatalog:
    """
    返回库存目录实例
    name: 从参数传入，或从 settings.INVENTORY_CATALOG 读取，默认 "django"
    """
    if name is None:
        name = getattr(settings, "INVENTORY_CATALOG", "django")
    catalog_cls = _CATALOG_REGISTRY.get(str(name).lower())
    if catalog_cls is None:
        raise ValueError(f"Unknown inventory catalog: {name}. Known: {list(_CATALOG_REGISTRY.keys())}")
    return catalog_cls()


def register_catalog(name: str, catalog_cls: Type[InventoryCatalog]) -> None:
    """注册新库存目录（可选，用于接入外部库存系统）"""
    _CATALOG_REGISTRY[name.lower()] = catalog_cls
