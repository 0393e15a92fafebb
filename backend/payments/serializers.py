from decimal import Decimal

from rest_framework import serializers

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Payment
        fields = ("id", "order", "order_number", "amount", "currency", "status", "method", "gateway",
                  "gateway_payment_id", "refunded_amount", "refunded_at", "failure_code", "failure_message",
                  "created_at", "updated_at")
        read_only_fields = fields


class PaymentIntentRequestSerializer(serializers.Serializer):
    order_id    = serializers.UUIDField()
    amount      = serializers.DecimalField(max_digits=12, decimal_places=2, required=False,
                                          min_value=Decimal("0.01"))
    currency    = serializers.CharField(required=False, max_length=3)
    customer_id = serializers.CharField(required=False, allow_blank=True, max_length=120)
    metadata    = serializers.DictField(child=serializers.CharField(), required=False)


class RefundRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False,
                                      min_value=Decimal("0.01"))
    reason = serializers.CharField(required=False, allow_blank=True, max_length=120)
