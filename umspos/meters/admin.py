from django.contrib import admin
from .models import Meter, PurchaseBatch, MinimumStockLevel


@admin.register(Meter)
class MeterAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'type', 'status', 'agent', 'adder_name', 'added_at']
    list_filter = ['type', 'status', 'added_at']
    search_fields = ['serial_number', 'agent__name']
    ordering = ['-added_at']
    readonly_fields = ['added_at', 'updated_at']
    raw_id_fields = ['agent', 'purchase_batch', 'added_by']


@admin.register(PurchaseBatch)
class PurchaseBatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'meter_type', 'quantity', 'unit_cost', 'total_cost', 'purchase_date', 'adder_name']
    list_filter = ['meter_type', 'purchase_date']
    search_fields = ['batch_number']
    readonly_fields = ['total_cost', 'created_at']


@admin.register(MinimumStockLevel)
class MinimumStockLevelAdmin(admin.ModelAdmin):
    list_display = ['meter_type', 'minimum_level', 'updated_by', 'updated_at']
    ordering = ['meter_type']
