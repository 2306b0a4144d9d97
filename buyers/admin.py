from django.contrib import admin

from .models import Buyer, BuyerHistory


@admin.register(Buyer)
class BuyerAdmin(admin.ModelAdmin):
    list_display = (
        "full_name",
        "phone",
        "city",
        "property_type",
        "status",
        "owner",
        "updated_at",
    )
    search_fields = ("full_name", "email", "phone")
    list_filter = ("status", "city", "property_type", "timeline")
    ordering = ("-updated_at",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(BuyerHistory)
class BuyerHistoryAdmin(admin.ModelAdmin):
    list_display = ("buyer", "changed_by", "changed_at")
    ordering = ("-changed_at",)
    readonly_fields = ("buyer", "changed_by", "changed_at", "diff")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
