from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class UserDetailsSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "full_name", "phone", "is_superuser")
        read_only_fields = ("id", "email", "is_superuser")
