"""
Prometheus 指标定义
"""
from prometheus_client import Counter, Histogram

# 业务指标
FILL_COMMITTED = Counter(
    "fulfillment_committed_total",
    "成功提交的发药轮次",
    ["status"],
)
FILL_REJECTED = Counter(
    "fulfillment_rejected_total",
    "被拒绝的发药提交",
    ["code"],
)
FILL_AMOUNT = Counter(
    "fulfillment_amount_total",
    "发药累计金额（含税）",
)
PRESCRIPTION_ISSUED = Counter(
    "prescription_issued_total",
    "开具的处方数",
)
PRESCRIPTION_CANCELLED = Counter(
    "prescription_cancelled_total",
    "取消的处方数",
)
PRESCRIPTION_EXPIRED = Counter(
    "prescription_expired_total",
    "过期的处方数",
)
PRESCRIPTION_TRANSITION = Counter(
    "prescription_transition_total",
    "处方状态流转次数",
    ["source", "target"],
)

# 性能指标（Histogram 自动提供 _count, _sum, _bucket）
API_FILL_DURATION = Histogram(
    "api_fill_prescription_duration_seconds",
    "POST /api/prescriptions/<id>/fill/ 响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)
API_DETAIL_DURATION = Histogram(
    "api_prescription_detail_duration_seconds",
    "GET /api/prescriptions/<id>/ 响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)
API_SEARCH_DURATION = Histogram(
    "api_inventory_search_duration_seconds",
    "库存检索 / 候选匹配响应时间",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0),
)

# 错误指标
HTTP_5XX = Counter("http_5xx_total", "5xx 错误数")
HTTP_4XX = Counter("http_4xx_total", "4xx 错误数", ["code"])
VALIDATION_ERROR = Counter("validation_error_total", "数据格式校验失败次数", ["code"])
BLOCK_ERROR = Counter("block_error_total", "Block 错误次数", ["code"])
