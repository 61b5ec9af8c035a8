from django.urls import path
from .views import (
    sale_create, sale_batch_list, sale_batch_meters,
    transaction_list, transaction_detail, transaction_by_reference,
    sold_meter_lookup, replacement_available, sold_meter_returns,
    faulty_list, faulty_update, replacement_list,
)

urlpatterns = [
    path('sales/', sale_create, name='sale-create'),
    path('sales/batches/', sale_batch_list, name='sale-batch-list'),
    path('sales/batches/<int:pk>/meters/', sale_batch_meters, name='sale-batch-meters'),
    path('sales/transactions/', transaction_list, name='transaction-list'),
    path('sales/transactions/by-reference/', transaction_by_reference, name='transaction-by-reference'),
    path('sales/transactions/<int:pk>/', transaction_detail, name='transaction-detail'),
    path('sales/sold-meters/lookup/', sold_meter_lookup, name='sold-meter-lookup'),
    path('sales/returns/', sold_meter_returns, name='sold-meter-returns'),
    path('sales/faulty/', faulty_list, name='faulty-list'),
    path('sales/faulty/<int:pk>/', faulty_update, name='faulty-update'),
    path('sales/replacements/', replacement_list, name='replacement-list'),
    path('sales/replacements/available/', replacement_available, name='replacement-available'),
]
