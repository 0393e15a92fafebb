from rest_framework import generics
from rest_framework.permissions import IsAuthenticated

from .serializers import UserDetailsSerializer


class MeView(generics.RetrieveUpdateAPIView):
    """GET/PATCH the authenticated user's profile."""
    serializer_class = UserDetailsSerializer
    permission_classes = (IsAuthenticated,)
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        return self.request.user
