from django.http import HttpResponse
from django.views.decorators.cache import never_cache
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from pharmacy_fill.exceptions import BlockError

from . import metrics as fulfillment_metrics  # noqa: F401  注册发药相关指标


@never_cache
def metrics(request):
    """
    GET /metrics?name[]=fulfillment_committed_total
    Prometheus 拉取入口；带 name[] 时只输出指定的样本
    """
    if request.method != 'GET':
        raise BlockError(
            message="Method not allowed",
            code="METHOD_NOT_ALLOWED",
            detail={"allowed": ['GET']},
            http_status=405,
        )
    names = request.GET.getlist('name[]')
    registry = REGISTRY.restricted_registry(names) if names else REGISTRY
    return HttpResponse(generate_latest(registry), content_type=CONTENT_TYPE_LATEST)
