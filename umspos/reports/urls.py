from django.urls import path
from . import views

urlpatterns = [
    path('reports/top-sellers/', views.top_sellers, name='report-top-sellers'),
    path('reports/most-selling-product/', views.most_selling_product, name='report-most-selling-product'),
    path('reports/earnings/', views.earnings, name='report-earnings'),
    path('reports/agent-inventory/', views.agent_inventory, name='report-agent-inventory'),
    path('reports/customer-types/', views.customer_types, name='report-customer-types'),
    path('reports/daily/', views.daily_report, name='report-daily'),
    path('reports/time-range/', views.time_range_report, name='report-time-range'),
    path('reports/stock-alerts/', views.stock_alerts, name='report-stock-alerts'),
    path('reports/sales/export/', views.sales_export, name='report-sales-export'),
]
