"""
内存实现：固定条目列表，用于测试和离线演示
"""
from .base import InventoryCatalog


class StaticInventoryCatalog(InventoryCatalog):
    catalog_id = "static"

    def __init__(self, entries=None):
        self._entries = list(entries or [])

    def list(self, search=None, category=None):
        results = self._entries
        if search:
            term = search.lower()
            results = [
                e for e in results
                if term in e.name.lower() or term in (e.generic_name or "").lower()
            ]
        if category and category != 'all':
            results = [e for e in results if e.category == category]
        return list(results)

    def get(self, entry_id):
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None
