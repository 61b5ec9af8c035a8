from django.urls import path
from .views import (
    meter_import_preview, meter_list_create, meter_delete, meter_check, meter_lookup,
    meter_search, meter_all, meter_export, purchase_batch_list, stock_levels,
)

urlpatterns = [
    path('meters/', meter_list_create, name='meter-list-create'),
    path('meters/<int:pk>/', meter_delete, name='meter-delete'),
    path('meters/import/', meter_import_preview, name='meter-import-preview'),
    path('meters/check/', meter_check, name='meter-check'),
    path('meters/lookup/', meter_lookup, name='meter-lookup'),
    path('meters/search/', meter_search, name='meter-search'),
    path('meters/all/', meter_all, name='meter-all'),
    path('meters/export/', meter_export, name='meter-export'),
    path('meters/purchase-batches/', purchase_batch_list, name='purchase-batch-list'),
    path('meters/stock-levels/', stock_levels, name='stock-levels'),
]
