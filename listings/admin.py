from django.contrib import admin
from .models import Listing


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'seller_id', 'price_cents', 'created_at']
    search_fields = ['title', 'seller_id']
    readonly_fields = ['created_at']
