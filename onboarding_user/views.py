# onboarding_user/views.py
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import UserSerializer


class CurrentUserView(APIView):
    """
    The signed-in portal user and the role that scopes every other endpoint.
    """

    def get(self, request):
        return Response({'data': UserSerializer(request.user).data})
