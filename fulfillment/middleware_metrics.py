"""
Prometheus 指标中间件：记录请求耗时、状态码
"""
import re
import time

from pharmacy_fill.exceptions import BaseAppException

from .metrics import (
    API_DETAIL_DURATION,
    API_FILL_DURATION,
    API_SEARCH_DURATION,
    HTTP_4XX,
    HTTP_5XX,
)

_FILL_PATH = re.compile(r"^/api/prescriptions/\d+/fill/$")
_DETAIL_PATH = re.compile(r"^/api/prescriptions/\d+/$")
_CANDIDATES_PATH = re.compile(r"^/api/prescriptions/\d+/candidates/\d+/$")


class MetricsMiddleware:
    """记录 HTTP 请求指标"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.perf_counter()
        try:
            response = self.get_response(request)
            self._record(request, response.status_code, time.perf_counter() - start)
            return response
        except Exception as exc:
            duration = time.perf_counter() - start
            self._record(request, self._status_from_exception(exc), duration)
            raise

    def _status_from_exception(self, exc):
        if isinstance(exc, BaseAppException):
            return exc.http_status
        return 500

    def _record(self, request, status, duration):
        path = getattr(request, "path", "") or ""
        if status >= 500:
            HTTP_5XX.inc()
        elif status >= 400:
            HTTP_4XX.labels(code=str(status)).inc()

        if request.method == "POST" and _FILL_PATH.match(path):
            API_FILL_DURATION.observe(duration)
        elif request.method == "GET" and _DETAIL_PATH.match(path):
            API_DETAIL_DURATION.observe(duration)
        elif path == "/api/inventory/search/" or _CANDIDATES_PATH.match(path):
            API_SEARCH_DURATION.observe(duration)
