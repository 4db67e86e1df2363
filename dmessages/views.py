import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from conversations.identity import derive_conversation_id
from users.resolver import resolve_users
from .exceptions import MessagingError
from .serializers import MarkReadSerializer, MessageSerializer, SendMessageSerializer
from .store import MessageStore

logger = logging.getLogger(__name__)


def error_response(error):
    return Response({'error': str(error)}, status=error.status_code)


def authentication_required():
    return Response({'error': 'Authentication required'}, status=status.HTTP_401_UNAUTHORIZED)


class MessageListCreateView(APIView):
    """
    GET  /messages/?conversation_id=<id>  -> thread for the conversation's participant pair
    POST /messages/                       -> send a message
    """
    store_class = MessageStore

    def get(self, request):
        user_id = getattr(request, 'user_id', None)
        if not user_id:
            return authentication_required()

        conversation_id = request.GET.get('conversation_id')
        if not conversation_id:
            return Response({
                'error': 'conversation_id query parameter is required',
                'example': 'GET /messages/?conversation_id=<conversation_id>'
            }, status=status.HTTP_400_BAD_REQUEST)

        limit = request.GET.get('limit')
        try:
            limit = int(limit) if limit else None
        except ValueError:
            return Response({'error': 'limit must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
        if limit is not None and limit < 1:
            return Response({'error': 'limit must be positive'}, status=status.HTTP_400_BAD_REQUEST)

        store = self.store_class()
        try:
            pair = store.participants_for(conversation_id, user_id)
            # No rows yet means a conversation nobody has written to
            messages = store.list_messages_between(*pair, limit=limit) if pair else []
            users = resolve_users(pair) if pair else {}
        except MessagingError as e:
            return error_response(e)

        serializer = MessageSerializer(messages, many=True, context={'request': request, 'users': users})
        return Response({
            'conversation_id': conversation_id,
            'results': serializer.data,
            'total_count': len(messages),
        })

    def post(self, request):
        user_id = getattr(request, 'user_id', None)
        if not user_id:
            return authentication_required()

        serializer = SendMessageSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        item_id = data.get('item_id') or None
        store = self.store_class()
        try:
            conversation_id = derive_conversation_id(user_id, data['receiver_id'], item_id)
            message = store.insert_message(
                sender_id=user_id,
                receiver_id=data['receiver_id'],
                content=data['content'],
                conversation_id=conversation_id,
                item_id=item_id,
            )
            users = resolve_users({message.sender_id, message.receiver_id})
        except MessagingError as e:
            logger.warning(f"Send from {user_id} failed: {e}")
            return error_response(e)

        response_serializer = MessageSerializer(message, context={'request': request, 'users': users})
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class MarkReadView(APIView):
    """Mark every message addressed to the caller in a conversation as read"""
    store_class = MessageStore

    def post(self, request):
        user_id = getattr(request, 'user_id', None)
        if not user_id:
            return authentication_required()

        serializer = MarkReadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            updated = self.store_class().mark_read(serializer.validated_data['conversation_id'], user_id)
        except MessagingError as e:
            return error_response(e)

        return Response({'success': True, 'messages_marked_read': updated})


class UnreadCountView(APIView):
    store_class = MessageStore

    def get(self, request):
        user_id = getattr(request, 'user_id', None)
        if not user_id:
            return authentication_required()

        try:
            count = self.store_class().count_unread(user_id)
        except MessagingError as e:
            return error_response(e)

        return Response({'unread_count': count})
