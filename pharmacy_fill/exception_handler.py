"""
统一异常处理：将 BaseAppException 转为统一 JSON 格式
"""
import logging

from django.http import JsonResponse

from .exceptions import BaseAppException

logger = logging.getLogger("fulfillment.errors")


def app_exception_handler(request, exception):
    """
    处理 BaseAppException 及其子类，转为统一 JSON
    其他异常返回 None，交给 Django 默认处理
    """
    if not isinstance(exception, BaseAppException):
        return None

    _record_exception_metric(exception)
    logger.info(
        "%s %s -> %s %s: %s",
        request.method, request.path, exception.http_status, exception.code, exception.message,
    )
    return JsonResponse(
        exception.to_dict(),
        status=exception.http_status,
        json_dumps_params={"ensure_ascii": False},
    )


def _record_exception_metric(exception):
    """记录异常指标（避免循环导入）"""
    from fulfillment.metrics import VALIDATION_ERROR, BLOCK_ERROR, FILL_REJECTED
    from .exceptions import ValidationError, BlockError

    if isinstance(exception, ValidationError):
        VALIDATION_ERROR.labels(code=exception.code).inc()
    elif isinstance(exception, BlockError):
        BLOCK_ERROR.labels(code=exception.code).inc()

    if exception.code in (
        "INCOMPLETE_DRAFT",
        "NOTHING_DISPENSED",
        "OUT_OF_RANGE",
        "EXCEEDS_PRESCRIBED",
        "CONCURRENT_MODIFICATION",
        "TOTAL_MISMATCH",
    ):
        FILL_REJECTED.labels(code=exception.code).inc()
