"""
库存目录抽象：发药模块只读，不写库存
业务代码只依赖此接口，不关心库存来自数据库还是外部系统
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional


@dataclass(frozen=True)
class InventoryEntry:
    """库存条目（内部标准）"""
    id: int
    name: str
    quantity_on_hand: int
    unit_price: Decimal
    generic_name: str = ""
    unit: str = ""
    category: str = ""


class InventoryCatalog(ABC):
    """
    抽象基类：所有库存目录实现的父类
    新增库存来源时只需继承此类并实现 list / get
    """

    catalog_id: str = "unknown"

    @abstractmethod
    def list(self, search: Optional[str] = None, category: Optional[str] = None) -> List[InventoryEntry]:
        """
        按文本 / 分类过滤，返回目录顺序的条目列表
        search 为空时返回全部在售条目
        """
        pass

    @abstractmethod
    def get(self, entry_id: int) -> Optional[InventoryEntry]:
        """按 id 取单个条目，不存在或已下架返回 None"""
        pass
