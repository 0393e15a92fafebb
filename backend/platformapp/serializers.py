from rest_framework import serializers
from .models import Store, StoreMembership, AuditLog


class StoreSerializer(serializers.ModelSerializer):
    class Meta:
        model = Store
        exclude = ("deleted_at",)
        read_only_fields = ("id", "created_at", "updated_at")


class StoreMembershipSerializer(serializers.ModelSerializer):
    class Meta:
        model = StoreMembership
        fields = ("id", "store", "user", "role", "created_at")
        read_only_fields = ("id", "store", "created_at")


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = ("id", "store", "user_id", "action", "entity_type", "entity_id",
                  "changes", "ip_address", "user_agent", "created_at")
        read_only_fields = fields


class AuditLogQuerySerializer(serializers.Serializer):
    user_id = serializers.UUIDField(required=False)
    entity_type = serializers.CharField(required=False)
    entity_id = serializers.CharField(required=False)
    action = serializers.ChoiceField(choices=AuditLog.ACTIONS, required=False)
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)
    page = serializers.IntegerField(required=False, default=1)
    limit = serializers.IntegerField(required=False, default=50)
