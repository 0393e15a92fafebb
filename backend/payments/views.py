import logging

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import AppError, Forbidden
from common.mixins import TenantScopedModelViewSet
from notificationsapp.dispatch import dispatch_events
from platformapp.permissions import IsStoreAdminOrReadOnly
from .models import Payment, WebhookEvent
from .serializers import PaymentSerializer, PaymentIntentRequestSerializer, RefundRequestSerializer
from . import services

logger = logging.getLogger(__name__)

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"


class PaymentViewSet(TenantScopedModelViewSet):
    """
    GET  /payments/                    store payments (filter: status, order)
    POST /payments/intent/             create a gateway intent for an order
    POST /payments/{id}/refund/        full or partial refund
    """
    queryset = Payment.objects.select_related("order")
    serializer_class = PaymentSerializer
    permission_classes = [IsStoreAdminOrReadOnly]
    http_method_names = ["get", "post", "head", "options"]
    ordering_fields = ("created_at", "amount", "status")
    throttle_scope = None

    def create(self, request, *args, **kwargs):
        raise Forbidden("Payments are created through /payments/intent/")

    @action(detail=False, methods=["post"], permission_classes=[AllowAny], throttle_scope="checkout")
    def intent(self, request):
        store_id = self.require_store_id()
        ser = PaymentIntentRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        result = services.create_payment_intent(
            data["order_id"], data.get("amount"),
            store_id=store_id,
            currency=data.get("currency"),
            customer_id=data.get("customer_id") or None,
            metadata=data.get("metadata"),
        )
        return Response(
            {
                "client_secret": result.client_secret,
                "payment_intent_id": result.payment_intent_id,
                "amount": result.amount,
                "currency": result.currency,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        ser = RefundRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        outcome = services.refund_payment(
            pk,
            store_id=self.require_store_id(),
            amount=ser.validated_data.get("amount"),
            reason=ser.validated_data.get("reason") or None,
        )
        dispatch_events(outcome.events)
        return Response(PaymentSerializer(Payment.objects.get(pk=pk)).data)


class PaymentWebhookView(APIView):
    """
    Gateway callbacks. The raw body is verified against `Stripe-Signature`
    before anything is parsed; unknown event types are acknowledged and ignored.
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = []

    def post(self, request):
        payload = request.body
        signature = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        event = services.verify_webhook_signature(payload, signature)

        event_type = str(event.get("type") or "unknown")
        obj = (event.get("data") or {}).get("object") or {}
        log = WebhookEvent.objects.create(
            event_id=event.get("id"),
            event_type=event_type,
            payload=event,
            signature=signature[:500],
        )

        if event_type not in (SUCCEEDED, FAILED):
            logger.info("Ignoring webhook event %s", event_type)
            return Response({"received": True})

        try:
            if event_type == SUCCEEDED:
                outcome = services.handle_payment_succeeded(obj["id"])
            else:
                err = obj.get("last_payment_error") or {}
                outcome = services.handle_payment_failed(obj["id"], err.get("code"), err.get("message"))
        except AppError as exc:
            WebhookEvent.objects.filter(pk=log.pk).update(error=exc.message)
            raise

        WebhookEvent.objects.filter(pk=log.pk).update(handled=True)
        dispatch_events(outcome.events)
        return Response({"received": True})
