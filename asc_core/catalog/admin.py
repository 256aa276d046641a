# asc_core/catalog/admin.py
from django.contrib import admin

from asc_core.catalog.models import CatalogItem, CatalogSetComponent


class CatalogSetComponentInline(admin.TabularInline):
    model = CatalogSetComponent
    fk_name = "set_item"
    extra = 0
    fields = ("component_item", "quantity")
    raw_id_fields = ("component_item",)


@admin.register(CatalogItem)
class CatalogItemAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "manufacturer", "catalog_number", "requires_sterility", "is_container", "is_active")
    list_filter = ("category", "requires_sterility", "is_container", "is_active")
    search_fields = ("name", "manufacturer", "catalog_number")
    inlines = [CatalogSetComponentInline]
