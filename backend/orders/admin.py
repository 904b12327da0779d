from django.contrib import admin

from .models import Order, ScheduledOrder, ScheduledJob


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "broker_account", "symbol", "side", "quantity", "order_type", "status", "created_at")
    list_filter = ("status", "side", "order_type")
    search_fields = ("symbol", "broker_order_id")


admin.site.register(ScheduledOrder)
admin.site.register(ScheduledJob)
