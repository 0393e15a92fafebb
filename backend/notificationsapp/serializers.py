from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ("id", "title", "message", "type", "link_url", "link_text", "is_read", "read_at",
                  "store", "created_at")
        read_only_fields = fields


class NotificationQuerySerializer(serializers.Serializer):
    is_read  = serializers.BooleanField(required=False, allow_null=True, default=None)
    page     = serializers.IntegerField(required=False, default=1)
    per_page = serializers.IntegerField(required=False, default=50)
