from django.contrib import admin
from .models import SalesTransaction, SaleBatch, SoldMeter, FaultyReturn


class SaleBatchInline(admin.TabularInline):
    model = SaleBatch
    extra = 0
    fields = ['meter_type', 'batch_amount', 'unit_price', 'total_price']
    readonly_fields = ['total_price']


@admin.register(SalesTransaction)
class SalesTransactionAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'user_name', 'recipient', 'destination', 'customer_type', 'total_amount', 'sale_date']
    list_filter = ['customer_type', 'sale_date']
    search_fields = ['reference_number', 'recipient', 'destination']
    ordering = ['-sale_date']
    inlines = [SaleBatchInline]


@admin.register(SoldMeter)
class SoldMeterAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'status', 'seller_name', 'recipient', 'unit_price', 'sold_at']
    list_filter = ['status', 'customer_type', 'sold_at']
    search_fields = ['serial_number', 'replacement_serial', 'recipient']
    raw_id_fields = ['meter', 'batch', 'sold_by']


@admin.register(FaultyReturn)
class FaultyReturnAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'meter_type', 'status', 'returner_name', 'returned_at', 'resolved_at']
    list_filter = ['status', 'meter_type']
    search_fields = ['serial_number', 'fault_description']
    raw_id_fields = ['meter', 'sold_meter', 'returned_by', 'resolved_by']
