import uuid

from django.utils.dateparse import parse_datetime
from rest_framework import serializers

from users.resolver import unknown_user
from .models import Message


class MessageSerializer(serializers.ModelSerializer):
    """
    Message with ``sender``/``receiver`` display blocks.

    Pass the resolved users as ``context['users']``; ids missing from it
    render as ``Unknown User``.
    """
    sender = serializers.SerializerMethodField()
    receiver = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = ['id', 'sender_id', 'receiver_id', 'content', 'conversation_id',
                  'item_id', 'created_at', 'read', 'sender', 'receiver']
        read_only_fields = fields

    def _user(self, user_id):
        return self.context.get('users', {}).get(user_id) or unknown_user(user_id)

    def get_sender(self, obj):
        return self._user(obj.sender_id)

    def get_receiver(self, obj):
        return self._user(obj.receiver_id)


class SendMessageSerializer(serializers.Serializer):
    """Shape of a send request; content rules are enforced by the store."""
    receiver_id = serializers.CharField(max_length=100)
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)
    item_id = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)


class MarkReadSerializer(serializers.Serializer):
    conversation_id = serializers.CharField(max_length=100)


def message_to_payload(message):
    """Plain dict form of a message for channel-layer events."""
    return {
        'id': str(message.id),
        'sender_id': message.sender_id,
        'receiver_id': message.receiver_id,
        'content': message.content,
        'conversation_id': message.conversation_id,
        'item_id': message.item_id,
        'created_at': message.created_at.isoformat(),
        'read': bool(message.read),
    }


def message_from_payload(data):
    """Rebuild an unsaved Message from :func:`message_to_payload` output."""
    return Message(
        id=uuid.UUID(str(data['id'])),
        sender_id=data['sender_id'],
        receiver_id=data['receiver_id'],
        content=data['content'],
        conversation_id=data['conversation_id'],
        item_id=data.get('item_id'),
        created_at=parse_datetime(data['created_at']),
        read=bool(data.get('read', False)),
    )
