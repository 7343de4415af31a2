from django.contrib import admin
from django.urls import path
from fulfillment import views, views_metrics

# RESTful API：处方查询、发药提交、生命周期流转、库存检索
urlpatterns = [
    path('admin/', admin.site.urls),
    path('metrics', views_metrics.metrics, name='metrics'),
    path('api/prescriptions/', views.prescriptions, name='prescriptions'),
    path('api/prescriptions/stats/', views.prescription_stats, name='prescription_stats'),
    path('api/prescriptions/<int:prescription_id>/', views.get_prescription, name='get_prescription'),
    path('api/prescriptions/<int:prescription_id>/fill/', views.fill_prescription, name='fill_prescription'),
    path('api/prescriptions/<int:prescription_id>/cancel/', views.cancel_prescription, name='cancel_prescription'),
    path(
        'api/prescriptions/<int:prescription_id>/ready-for-delivery/',
        views.ready_for_delivery,
        name='ready_for_delivery',
    ),
    path('api/prescriptions/<int:prescription_id>/delivered/', views.delivered, name='delivered'),
    path(
        'api/prescriptions/<int:prescription_id>/candidates/<int:item_id>/',
        views.line_candidates,
        name='line_candidates',
    ),
    path('api/inventory/search/', views.search_inventory, name='search_inventory'),
]
