import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from dmessages.exceptions import MessagingError
from dmessages.store import MessageStore
from listings.resolver import resolve_item
from users.resolver import resolve_users
from .aggregator import aggregate
from .serializers import ConversationSerializer

logger = logging.getLogger(__name__)


class ConversationListView(APIView):
    """List the caller's conversations, most recent first"""
    store_class = MessageStore

    def get(self, request):
        user_id = getattr(request, 'user_id', None)
        if not user_id:
            return Response({'error': 'Authentication required'}, status=status.HTTP_401_UNAUTHORIZED)

        try:
            messages = self.store_class().list_messages_for_user(user_id)
            conversations = aggregate(messages, user_id, resolve_users, resolve_item)
        except MessagingError as e:
            return Response({'error': str(e)}, status=e.status_code)

        logger.info(f"Returning {len(conversations)} conversations for user {user_id}")

        serializer = ConversationSerializer(conversations, many=True, context={'request': request})
        return Response({
            'user_id': user_id,
            'results': serializer.data,
            'total_count': len(conversations),
        })
