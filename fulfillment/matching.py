"""
库存匹配：药师每输入一次就重新过滤一次，无状态
"""
from django.conf import settings

from .catalog import InventoryCatalog

DEFAULT_CANDIDATE_LIMIT = 10


def _overlaps(a, b):
    """两个名字互为子串（空名字不参与）"""
    if not a or not b:
        return False
    return a in b or b in a


def matches(prescribed_item, search_term, entry):
    """
    命中条件（均不区分大小写）：
    1. 库存名 / 通用名包含搜索词
    2. 库存名 / 通用名与处方药名 / 处方通用名互为子串（自动联想）
    """
    term = search_term.lower()
    name = (entry.name or "").lower()
    generic = (entry.generic_name or "").lower()
    if term in name or (generic and term in generic):
        return True

    prescribed_names = [
        (prescribed_item.medication_name or "").lower(),
        (prescribed_item.generic_name or "").lower(),
    ]
    return any(
        _overlaps(candidate, prescribed)
        for candidate in (name, generic)
        for prescribed in prescribed_names
    )


def find_candidates(prescribed_item, search_term, entries, limit=None):
    """
    返回命中的库存条目，保持目录顺序，最多 limit 条（默认 10）
    entries: 条目列表，或 InventoryCatalog（取全部在售条目）
    search_term 为空时返回空列表
    """
    if not search_term or not search_term.strip():
        return []
    if isinstance(entries, InventoryCatalog):
        entries = entries.list()
    if limit is None:
        limit = getattr(settings, "MATCH_CANDIDATE_LIMIT", DEFAULT_CANDIDATE_LIMIT)

    term = search_term.strip()
    results = []
    for entry in entries:
        if matches(prescribed_item, term, entry):
            results.append(entry)
            if len(results) >= limit:
                break
    return results
