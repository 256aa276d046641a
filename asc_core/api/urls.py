# asc_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from asc_core.attestations.api.views import AttestationViewSet
from asc_core.audit.api.views import AuditEventViewSet
from asc_core.cases.api.views import CaseViewSet
from asc_core.catalog.api.views import CatalogItemViewSet
from asc_core.checklists.api.views import CaseChecklistViewSet
from asc_core.iam.api.auth import LoginView, LogoutView, RefreshView
from asc_core.iam.api.me import MeView
from asc_core.inventory.api.views import DeviceScanView, InventoryEventViewSet, InventoryItemViewSet
from asc_core.preference_cards.api.views import PreferenceCardViewSet
from asc_core.readiness.api.views import DayReadinessView

router = DefaultRouter()

router.register(r"cases", CaseViewSet, basename="cases")
router.register(r"cases/(?P<case_id>[^/.]+)/checklists", CaseChecklistViewSet, basename="case-checklists")
router.register(r"attestations", AttestationViewSet, basename="attestations")
router.register(r"inventory/items", InventoryItemViewSet, basename="inventory-items")
router.register(r"inventory/events", InventoryEventViewSet, basename="inventory-events")
router.register(r"catalog/items", CatalogItemViewSet, basename="catalog-items")
router.register(r"preference-cards", PreferenceCardViewSet, basename="preference-cards")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    # Auth + /me
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("me/", MeView.as_view(), name="me"),

    path("readiness/", DayReadinessView.as_view(), name="readiness-day"),
    path("inventory/device-events/", DeviceScanView.as_view(), name="inventory-device-events"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
