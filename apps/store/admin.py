from django.contrib import admin
from .models import Setting


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ("key", "category", "value", "updated_at")
    list_filter = ("category",)
    search_fields = ("key", "description")
