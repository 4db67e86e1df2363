from rest_framework.views import APIView
from rest_framework.response import Response


class PingView(APIView):
    """Health check endpoint"""
    def get(self, request):
        return Response({"message": "Bang"})
