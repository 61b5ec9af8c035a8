"""
URL configuration for the UMS POS backend.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "UMS POS Admin Panel"
admin.site.site_title = "UMS POS Admin Portal"
admin.site.index_title = "Meter distribution administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('umspos.core.urls')),
    path('api/v1/', include('umspos.meters.urls')),
    path('api/v1/', include('umspos.agents.urls')),
    path('api/v1/', include('umspos.sales.urls')),
    path('api/v1/', include('umspos.notifications.urls')),
    path('api/v1/', include('umspos.reports.urls')),
]
