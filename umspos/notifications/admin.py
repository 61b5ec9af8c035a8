from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'type', 'message', 'created_by', 'created_at']
    list_filter = ['type', 'created_at']
    search_fields = ['message']
    ordering = ['-id']
    readonly_fields = ['created_at']
