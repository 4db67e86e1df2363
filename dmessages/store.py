"""
Persistence boundary for direct messages.

MessageStore is the only code that reads or writes the ``messages`` table.
Database failures surface as StoreError; bad input is rejected with
ValidationError before any query runs.
"""

import html
import logging

import bleach
from django.db import DatabaseError
from django.db.models import Q

from users.models import User
from .exceptions import AccessError, NotFoundError, StoreError, ValidationError
from .models import Message
from .signals import messages_read

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 100


def clean_content(content):
    """
    Strip markup and surrounding whitespace; reject content that ends up empty.

    The result is plain text: characters bleach escapes are turned back.
    """
    if not isinstance(content, str):
        raise ValidationError("Message content must be text")

    sanitized = html.unescape(bleach.clean(content, tags=[], attributes={}, strip=True)).strip()
    if not sanitized:
        raise ValidationError("Message content cannot be empty")
    return sanitized


def clean_user_id(value, field='user_id'):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} cannot be empty")
    value = value.strip()
    if len(value) > MAX_ID_LENGTH:
        raise ValidationError(f"{field} cannot exceed {MAX_ID_LENGTH} characters")
    return value


def clean_participants(sender_id, receiver_id):
    sender_id = clean_user_id(sender_id, 'sender_id')
    receiver_id = clean_user_id(receiver_id, 'receiver_id')
    if sender_id == receiver_id:
        raise ValidationError("Cannot send message to yourself")
    return sender_id, receiver_id


def between(user_a, user_b):
    return Q(sender_id=user_a, receiver_id=user_b) | Q(sender_id=user_b, receiver_id=user_a)


class MessageStore:
    """
    Store adapter over the Django ORM.
    """

    def insert_message(self, sender_id, receiver_id, content, conversation_id, item_id=None):
        """
        Append a message and return the saved row.

        Raises:
            ValidationError: blank content, self-messaging or malformed ids
            NotFoundError: either user has no ``users`` row
            StoreError: the database write failed
        """
        sender_id, receiver_id = clean_participants(sender_id, receiver_id)
        content = clean_content(content)
        if not conversation_id:
            raise ValidationError("conversation_id is required")
        item_id = str(item_id) if item_id not in (None, '') else None

        try:
            known = set(
                User._default_manager.filter(
                    user_id__in=[sender_id, receiver_id]
                ).values_list('user_id', flat=True)
            )
            missing = {sender_id, receiver_id} - known
            if missing:
                raise NotFoundError(f"Unknown user(s): {', '.join(sorted(missing))}")

            message = Message._default_manager.create(
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                conversation_id=conversation_id,
                item_id=item_id,
            )
        except DatabaseError as e:
            logger.error(f"Failed to insert message {sender_id} -> {receiver_id}: {e}")
            raise StoreError("Failed to send message") from e

        logger.info(f"Message {message.id} stored in conversation {conversation_id}")
        return message

    def list_messages_between(self, user_a, user_b, limit=None):
        """
        All messages between two users in ascending ``created_at`` order,
        whatever ``conversation_id`` they were stored under.

        With ``limit`` only the most recent ``limit`` messages are returned,
        still oldest first.
        """
        try:
            queryset = Message._default_manager.filter(between(user_a, user_b))
            if limit:
                messages = list(queryset.order_by('-created_at', '-id')[:limit])
                messages.reverse()
            else:
                messages = list(queryset.order_by('created_at', 'id'))
        except DatabaseError as e:
            logger.error(f"Failed to list messages between {user_a} and {user_b}: {e}")
            raise StoreError("Failed to fetch messages") from e
        return messages

    def list_messages_for_user(self, user_id):
        """Every message the user sent or received, newest first."""
        try:
            return list(
                Message._default_manager.filter(
                    Q(sender_id=user_id) | Q(receiver_id=user_id)
                ).order_by('-created_at', '-id')
            )
        except DatabaseError as e:
            logger.error(f"Failed to list messages for {user_id}: {e}")
            raise StoreError("Failed to fetch conversations") from e

    def participants_for(self, conversation_id, user_id):
        """
        Return the sorted participant pair behind ``conversation_id``.

        None means no message carries that id yet (a brand-new conversation).

        Raises:
            AccessError: messages exist under the id but ``user_id`` is not a participant
        """
        try:
            queryset = Message._default_manager.filter(conversation_id=conversation_id)
            sample = queryset.filter(
                Q(sender_id=user_id) | Q(receiver_id=user_id)
            ).values('sender_id', 'receiver_id').first()
            if sample is None and queryset.exists():
                raise AccessError("Access denied to this conversation")
        except DatabaseError as e:
            logger.error(f"Failed to look up conversation {conversation_id}: {e}")
            raise StoreError("Failed to fetch messages") from e

        if sample is None:
            return None
        return tuple(sorted((sample['sender_id'], sample['receiver_id'])))

    def mark_read(self, conversation_id, receiver_id):
        """
        Mark every unread message addressed to ``receiver_id`` in the
        conversation as read. Returns the number of messages changed; calling
        it again is a no-op that returns 0.

        All messages between the pair are covered, including ones stored under
        an older conversation id.
        """
        pair = self.participants_for(conversation_id, receiver_id)
        if pair is None:
            return 0
        sender_id = pair[0] if pair[1] == receiver_id else pair[1]
        return self.mark_read_between(receiver_id, sender_id)

    def mark_read_between(self, reader_id, other_id):
        """
        Mark every unread message from ``other_id`` to ``reader_id`` as read,
        whatever conversation id it was stored under. Returns the number of
        messages changed.
        """
        reader_id, other_id = clean_participants(reader_id, other_id)

        try:
            unread = list(
                Message._default_manager.filter(
                    sender_id=other_id, receiver_id=reader_id, read=False
                )
            )
            if not unread:
                return 0
            updated = Message._default_manager.filter(
                pk__in=[message.pk for message in unread], read=False
            ).update(read=True)
        except DatabaseError as e:
            logger.error(f"Failed to mark messages from {other_id} read for {reader_id}: {e}")
            raise StoreError("Failed to mark messages as read") from e

        for message in unread:
            message.read = True

        logger.info(f"Marked {updated} message(s) from {other_id} read for {reader_id}")
        messages_read.send(sender=Message, messages=unread, receiver_id=reader_id)
        return updated

    def count_unread(self, user_id):
        """Unread messages addressed to the user across all conversations."""
        try:
            return Message._default_manager.filter(receiver_id=user_id, read=False).count()
        except DatabaseError as e:
            logger.error(f"Failed to count unread messages for {user_id}: {e}")
            raise StoreError("Failed to fetch unread count") from e
