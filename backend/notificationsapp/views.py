from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.pagination import enveloped
from common.tenancy import get_context
from .serializers import NotificationSerializer, NotificationQuerySerializer
from . import services


class NotificationViewSet(viewsets.ViewSet):
    """
    The caller's own inbox, optionally narrowed to the store in context.

    GET  /notifications/?is_read=false
    GET  /notifications/unread-count/
    POST /notifications/{id}/read/
    POST /notifications/read-all/
    """
    permission_classes = [IsAuthenticated]

    def list(self, request):
        params = NotificationQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        data = params.validated_data
        rows, meta = services.list_notifications(
            request.user.pk,
            store_id=get_context(request).store_id,
            is_read=data.get("is_read"),
            page=data["page"],
            per_page=data["per_page"],
        )
        return enveloped(NotificationSerializer(rows, many=True).data, meta)

    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        return Response({"count": services.get_unread_count(request.user.pk, get_context(request).store_id)})

    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        return Response(NotificationSerializer(services.mark_as_read(pk, request.user.pk)).data)

    @action(detail=False, methods=["post"], url_path="read-all")
    def read_all(self, request):
        updated = services.mark_all_as_read(request.user.pk, get_context(request).store_id)
        return Response({"updated": updated})
