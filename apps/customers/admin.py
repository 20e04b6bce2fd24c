from django.contrib import admin
from .models import Address


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ('user', 'label', 'full_name', 'city', 'postal_code', 'is_default')
    list_filter = ('city',)
    search_fields = ('user__username', 'full_name', 'postal_code')
