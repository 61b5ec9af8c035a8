from django.contrib import admin
from .models import Agent, AgentTransaction


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone_number', 'location', 'county', 'is_active', 'created_at']
    list_filter = ['is_active', 'county']
    search_fields = ['name', 'phone_number', 'location']
    ordering = ['-created_at']


@admin.register(AgentTransaction)
class AgentTransactionAdmin(admin.ModelAdmin):
    list_display = ['agent', 'transaction_type', 'meter_type', 'quantity', 'reference_number', 'performer_name', 'transaction_date']
    list_filter = ['transaction_type', 'meter_type', 'transaction_date']
    search_fields = ['agent__name', 'reference_number']
    readonly_fields = ['transaction_date']
