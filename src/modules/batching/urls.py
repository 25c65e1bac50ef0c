"""Batch URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.batching.views import BatchViewSet

router = DefaultRouter(trailing_slash=True)
router.register("batches", BatchViewSet, basename="batch")

urlpatterns = router.urls
