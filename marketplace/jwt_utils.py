"""
JWT helpers for the marketplace service.

Tokens are issued by the external auth provider; this module only verifies
them and pulls the user id out of the ``sub`` claim. ``generate_token`` exists
for tests and local tooling.
"""

import time

import jwt
from django.conf import settings


class JWTManager:
    """
    Signs and verifies HS256 (or configured algorithm) tokens.
    """

    def _get_secret(self):
        return getattr(settings, 'JWT_SECRET', 'test_jwt_secret_key')

    def _get_algorithm(self):
        return getattr(settings, 'JWT_ALGORITHM', 'HS256')

    def generate_token(self, user_id, expires_in_hours=24, **claims):
        """
        Generate a JWT token for the given user.

        Args:
            user_id (str): The user ID stored in ``sub``
            expires_in_hours (int): Token lifetime in hours

        Returns:
            str: Encoded JWT
        """
        now = int(time.time())
        payload = {
            'sub': user_id,
            'iat': now,
            'exp': now + (expires_in_hours * 3600),
        }
        payload.update(claims)
        return jwt.encode(payload, self._get_secret(), algorithm=self._get_algorithm())

    def validate_token(self, token):
        """
        Validate a JWT token and return its payload.

        Raises:
            jwt.InvalidTokenError: If the token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                self._get_secret(),
                algorithms=[self._get_algorithm()]
            )
        except jwt.ExpiredSignatureError:
            raise jwt.InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")

    def extract_user_id(self, token):
        """Return the ``sub`` claim of a valid token, or None."""
        try:
            payload = self.validate_token(token)
        except jwt.InvalidTokenError:
            return None
        return payload.get('sub')


_jwt_manager = None


def _get_jwt_manager():
    """Get the global JWT manager instance, creating it if needed."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def generate_test_token(user_id, expires_in_hours=24):
    """Generate a test JWT token for the given user ID."""
    return _get_jwt_manager().generate_token(user_id, expires_in_hours)


def validate_jwt_token(token):
    """Validate a JWT token and return the payload."""
    return _get_jwt_manager().validate_token(token)


def get_user_id_from_token(token):
    """Extract user ID from JWT token."""
    return _get_jwt_manager().extract_user_id(token)
