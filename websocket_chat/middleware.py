import logging
import time
from urllib.parse import parse_qs

from channels.middleware import BaseMiddleware
from django.conf import settings
from django.core.cache import cache

from marketplace.jwt_utils import get_user_id_from_token

logger = logging.getLogger(__name__)

AUTH_FAILED = 4001
RATE_LIMITED = 4029


def token_from_scope(scope):
    query_params = parse_qs(scope.get('query_string', b'').decode())
    return query_params.get('token', [None])[0]


async def reject(send, code, reason):
    await send({'type': 'websocket.close', 'code': code, 'reason': reason})


class WebSocketAuthMiddleware(BaseMiddleware):
    """
    Authenticates websocket handshakes from the ``?token=<jwt>`` query
    parameter and limits how often one user may open connections.

    Accepted connections carry ``scope['user_id']``; everything else is closed
    before it reaches the consumer.
    """

    async def __call__(self, scope, receive, send):
        token = token_from_scope(scope)
        if not token:
            await reject(send, AUTH_FAILED, 'Authentication token required')
            return

        user_id = get_user_id_from_token(token)
        if not user_id:
            logger.warning("Rejected websocket connection with invalid token")
            await reject(send, AUTH_FAILED, 'Invalid authentication token')
            return

        if not await self.allow_connection(user_id):
            logger.warning(f"Websocket rate limit exceeded for {user_id}")
            await reject(send, RATE_LIMITED, 'Rate limit exceeded')
            return

        scope['user_id'] = user_id
        scope['authenticated'] = True
        return await super().__call__(scope, receive, send)

    async def allow_connection(self, user_id):
        """Count the attempt in the user's current one-minute window"""
        key = f"websocket_rate_limit:{user_id}"
        now = int(time.time())

        window = await cache.aget(key)
        if window is None or now - window['window_start'] >= 60:
            window = {'count': 0, 'window_start': now}

        if window['count'] >= settings.WEBSOCKET_RATE_LIMIT:
            return False

        window['count'] += 1
        await cache.aset(key, window, 60)
        return True


class WebSocketSecurityMiddleware(BaseMiddleware):
    """Puts the configured websocket limits into the scope for the consumer"""

    async def __call__(self, scope, receive, send):
        scope['max_message_size'] = settings.WEBSOCKET_MAX_MESSAGE_SIZE
        scope['connection_timeout'] = settings.WEBSOCKET_CONNECTION_TIMEOUT
        scope['heartbeat_interval'] = settings.WEBSOCKET_HEARTBEAT_INTERVAL
        return await super().__call__(scope, receive, send)
