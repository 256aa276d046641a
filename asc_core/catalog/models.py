# asc_core/catalog/models.py
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from asc_core.common.models import ScopedModel


class CatalogCategory(models.TextChoices):
    INSTRUMENT = "INSTRUMENT", "Instrument"
    IMPLANT = "IMPLANT", "Implant"
    CONSUMABLE = "CONSUMABLE", "Consumable"
    EQUIPMENT = "EQUIPMENT", "Equipment"
    SET = "SET", "Set"


class CatalogItem(ScopedModel):
    """
    A kind of item a case can require. Physical units are InventoryItem rows.
    """
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=16, choices=CatalogCategory.choices, default=CatalogCategory.INSTRUMENT)
    manufacturer = models.CharField(max_length=255, blank=True, default="")
    catalog_number = models.CharField(max_length=64, blank=True, default="")

    requires_sterility = models.BooleanField(default=True)
    # Containers (trays, sets) may hold components
    is_container = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "catalog_item"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "name"]),
            models.Index(fields=["tenant_id", "facility_id", "is_active"]),
        ]

    def __str__(self) -> str:
        return self.name


class CatalogSetComponent(ScopedModel):
    """
    Edge of the set-composition graph: `set_item` contains `quantity` x `component_item`.
    """
    set_item = models.ForeignKey(CatalogItem, on_delete=models.CASCADE, related_name="components")
    component_item = models.ForeignKey(CatalogItem, on_delete=models.PROTECT, related_name="member_of_sets")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    class Meta:
        db_table = "catalog_set_component"
        constraints = [
            models.UniqueConstraint(fields=["set_item", "component_item"], name="uq_catalog_set_component"),
            models.CheckConstraint(condition=~Q(set_item=F("component_item")), name="ck_catalog_set_not_self"),
        ]
