from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from pharmacy_fill.exceptions import BlockError

from . import services
from .serializers import (
    parse_json_body,
    validate_fill_request,
    validate_issue_prescription_data,
)

# View 只负责：检查请求方法 → 解析 / 校验请求体 → 调 services → 包成 JsonResponse
# 业务错误直接 raise，由 AppExceptionMiddleware 统一转成 JSON


def _require_method(request, *methods):
    if request.method not in methods:
        raise BlockError(
            message="Method not allowed",
            code="METHOD_NOT_ALLOWED",
            detail={"allowed": list(methods)},
            http_status=405,
        )


@csrf_exempt
def prescriptions(request):
    """
    GET  /api/prescriptions/?status=&search=&page=&limit=  处方列表
    POST /api/prescriptions/                               开具处方
    """
    _require_method(request, 'GET', 'POST')
    if request.method == 'POST':
        data = validate_issue_prescription_data(parse_json_body(request.body))
        return JsonResponse(services.issue_prescription(data), status=201)

    result = services.list_prescriptions(
        status=request.GET.get('status'),
        search=(request.GET.get('search') or '').strip(),
        page=request.GET.get('page', 1),
        limit=request.GET.get('limit', services.DEFAULT_PAGE_SIZE),
    )
    return JsonResponse(result)


def prescription_stats(request):
    _require_method(request, 'GET')
    return JsonResponse(services.prescription_stats(request.GET.get('period', 7)))


def get_prescription(request, prescription_id):
    _require_method(request, 'GET')
    return JsonResponse(services.get_prescription_detail(prescription_id))


@csrf_exempt
def fill_prescription(request, prescription_id):
    """提交一轮发药：成功 200，业务拒绝 4xx，数据库不变"""
    _require_method(request, 'POST')
    data = validate_fill_request(parse_json_body(request.body))
    return JsonResponse(services.fill_prescription(prescription_id, data))


@csrf_exempt
def cancel_prescription(request, prescription_id):
    _require_method(request, 'POST')
    data = parse_json_body(request.body)
    reason = str(data.get('reason') or '').strip()
    return JsonResponse(services.cancel_prescription(prescription_id, reason))


@csrf_exempt
def ready_for_delivery(request, prescription_id):
    _require_method(request, 'POST')
    return JsonResponse(services.ready_for_delivery(prescription_id))


@csrf_exempt
def delivered(request, prescription_id):
    _require_method(request, 'POST')
    return JsonResponse(services.delivered(prescription_id))


def line_candidates(request, prescription_id, item_id):
    """某行药品的库存候选：?q= 为空时返回空列表"""
    _require_method(request, 'GET')
    return JsonResponse(services.line_candidates(prescription_id, item_id, request.GET.get('q', '')))


def search_inventory(request):
    _require_method(request, 'GET')
    return JsonResponse(services.search_inventory(
        q=request.GET.get('q'),
        category=request.GET.get('category'),
    ))
