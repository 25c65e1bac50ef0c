"""Batch API views.

Read access for dispatch/UI layers plus the operator commands driving
the batch lifecycle, consolidation and reconciliation.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.batching.filters import BatchFilter
from modules.batching.http import HANDLED_ERRORS, error_response
from modules.batching.models import Batch
from modules.batching.region import normalize_region
from modules.batching.repositories.django_repository import BatchDjangoRepository
from modules.batching.serializers import (
    AssignDriverSerializer,
    BatchDetailSerializer,
    BatchSerializer,
    CancelBatchSerializer,
    ConsolidateSerializer,
)
from modules.batching.services import build_batch_service


class BatchViewSet(GenericViewSet):
    queryset = Batch.objects.none()
    filterset_class = BatchFilter
    ordering_fields = ["created_at", "accumulated_weight", "region_key", "status"]
    ordering = ["created_at", "id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_batch_service()

    def get_queryset(self):
        return BatchDjangoRepository().queryset()

    def _respond(self, batch: Batch) -> Response:
        return Response(BatchDetailSerializer(batch).data)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/batches/?region_key=&status="""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(BatchSerializer(page, many=True).data)
        return Response(BatchSerializer(queryset, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/batches/{pk}/"""
        try:
            batch = self._service.get_batch(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return self._respond(batch)

    @action(detail=False, methods=["get"])
    def monitoring(self, request: Request) -> Response:
        """GET /api/v1/batches/monitoring/

        Open capacity per region and approved orders stuck without a batch.
        """
        snapshot = self._service.monitoring_snapshot()
        return Response(snapshot.model_dump(mode="json"))

    @action(detail=True, methods=["get"], url_path="driver-candidates")
    def driver_candidates(self, request: Request, pk: str | None = None) -> Response:
        try:
            candidates = self._service.driver_candidates(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return Response([c.model_dump(mode="json") for c in candidates])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="dispatch")
    def mark_ready(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/batches/{pk}/dispatch/ (collecting -> ready, manual)."""
        try:
            batch = self._service.dispatch(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return self._respond(batch)

    @action(detail=True, methods=["post"], url_path="assign-driver")
    def assign_driver(self, request: Request, pk: str | None = None) -> Response:
        serializer = AssignDriverSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            batch = self._service.assign_driver(
                pk, serializer.validated_data["driver_id"]
            )
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return self._respond(batch)

    @action(detail=True, methods=["post"], url_path="start-transit")
    def start_transit(self, request: Request, pk: str | None = None) -> Response:
        try:
            batch = self._service.start_transit(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return self._respond(batch)

    @action(detail=True, methods=["post"])
    def deliver(self, request: Request, pk: str | None = None) -> Response:
        try:
            batch = self._service.deliver(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return self._respond(batch)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/batches/{pk}/cancel/

        With ``rebatch: true`` the released orders are queued for
        re-batching once the cancellation commits.
        """
        serializer = CancelBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            batch = self._service.cancel(pk, serializer.validated_data["reason"])
        except HANDLED_ERRORS as exc:
            return error_response(exc)

        if serializer.validated_data["rebatch"]:
            from modules.batching.tasks import rebatch_unassigned

            rebatch_unassigned.delay(batch.region_key)
        return self._respond(batch)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"])
    def consolidate(self, request: Request) -> Response:
        """POST /api/v1/batches/consolidate/

        ``{"region_key": "..."}`` consolidates one region; an empty body
        sweeps every region.
        """
        serializer = ConsolidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        region_key = normalize_region(serializer.validated_data["region_key"])
        try:
            if region_key:
                result = self._service.consolidate(region_key)
            else:
                result = self._service.consolidate_all()
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return Response(result.model_dump(mode="json"), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def reconcile(self, request: Request, pk: str | None = None) -> Response:
        try:
            report = self._service.reconcile(pk)
        except HANDLED_ERRORS as exc:
            return error_response(exc)
        return Response(report.model_dump(mode="json"))
