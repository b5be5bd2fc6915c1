import logging

from rest_framework import generics, permissions
from rest_framework_simplejwt.views import TokenObtainPairView

from cores.audit import record_event
from cores.models import AuditLog
from .serializers import CustomTokenObtainPairSerializer, UserSerializer

logger = logging.getLogger(__name__)


class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        user = response.data.get('user') or {}
        if user.get('id'):
            logger.info("login user_id=%s role=%s", user['id'], user.get('role'))
            record_event(AuditLog.Action.LOGIN, actor_id=user['id'])
        return response


class UserProfileView(generics.RetrieveAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user
