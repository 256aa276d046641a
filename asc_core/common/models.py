# asc_core/common/models.py
from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ScopedModel(TimeStampedModel):
    """
    Enforces tenant + facility scope at the data layer.
    (Middleware enforces request scope; this enforces persistence scope.)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)
    facility_id = models.UUIDField(db_index=True)

    class Meta:
        abstract = True


class AppendOnlyMixin:
    """
    Rows are written once. Updates through save() and deletes through the ORM are refused.

    Nullable foreign keys declared with on_delete=SET_NULL are still cleared by the
    collector (it issues a queryset update, not save()), which is how history rows
    outlive the entity they describe.
    """
    immutable_label = "Record"

    def save(self, *args, **kwargs):
        # UUID PK exists even before first save, so use _state.adding
        if not self._state.adding:
            raise ValidationError(f"{self.immutable_label} is immutable and cannot be modified once created.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{self.immutable_label} is immutable and cannot be deleted.")
