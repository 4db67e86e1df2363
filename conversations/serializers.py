from django.conf import settings
from rest_framework import serializers


def preview(content, length=None):
    length = length or getattr(settings, 'MESSAGING_PREVIEW_LENGTH', 100)
    return content[:length] + '...' if len(content) > length else content


class ConversationSerializer(serializers.Serializer):
    """Read-only view of an aggregated Conversation"""
    id = serializers.CharField()
    participants = serializers.ListField(child=serializers.DictField())
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.IntegerField()
    item = serializers.DictField(allow_null=True)
    updated_at = serializers.DateTimeField()

    def get_last_message(self, obj):
        """Get only the last message preview (not full message)"""
        message = obj.last_message
        if message is None:
            return None
        people = {participant['id']: participant for participant in obj.participants}
        return {
            'id': str(message.id),
            'sender_id': message.sender_id,
            'receiver_id': message.receiver_id,
            'conversation_id': message.conversation_id,
            'content': preview(message.content),
            'created_at': serializers.DateTimeField().to_representation(message.created_at),
            'read': message.read,
            'sender': people.get(message.sender_id),
            'receiver': people.get(message.receiver_id),
        }
