import logging

import jwt
from django.http import JsonResponse

from marketplace.jwt_utils import validate_jwt_token

logger = logging.getLogger(__name__)


class JWTAuthMiddleware:
    """
    Resolve the calling user from a ``Bearer`` token issued by the auth provider.

    On success ``request.user_id`` carries the token's ``sub`` claim. Requests
    without a valid token get a 401 unless the path is exempt.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.exempt_urls = [
            '/ping/',
            '/admin/',
            '/static/',
        ]

    def __call__(self, request):
        request.user_id = None

        if self._is_exempt_url(request.path):
            return self.get_response(request)

        auth_header = request.META.get('HTTP_AUTHORIZATION', '')
        if not auth_header.startswith('Bearer '):
            return JsonResponse({'error': 'Authentication required'}, status=401)

        token = auth_header.split(' ', 1)[1].strip()
        try:
            payload = validate_jwt_token(token)
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected bearer token: {e}")
            return JsonResponse({'error': str(e)}, status=401)

        user_id = payload.get('sub')
        if not user_id:
            return JsonResponse({'error': 'Token has no subject'}, status=401)

        request.user_id = user_id
        return self.get_response(request)

    def _is_exempt_url(self, path):
        """Check if the URL path is exempt from authentication"""
        for exempt_url in self.exempt_urls:
            if path.startswith(exempt_url):
                return True
        return False
