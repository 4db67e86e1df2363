import uuid

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Message(models.Model):
    """
    A directed message between two users.

    Rows are append-only; ``read`` is the only field that changes after
    creation and it only ever goes from False to True.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sender_id = models.CharField(max_length=100)
    receiver_id = models.CharField(max_length=100)
    content = models.TextField()
    conversation_id = models.CharField(max_length=100, db_index=True)
    item_id = models.CharField(max_length=100, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    read = models.BooleanField(default=False)

    class Meta:
        db_table = 'messages'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['sender_id', 'receiver_id'], name='messages_pair_idx'),
            models.Index(fields=['receiver_id', 'read'], name='messages_unread_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(sender_id=F('receiver_id')),
                name='messages_no_self_message',
            ),
        ]

    @property
    def participant_pair(self):
        """The two participants in canonical (sorted) order."""
        return tuple(sorted((self.sender_id, self.receiver_id)))

    def involves(self, user_id):
        return user_id in (self.sender_id, self.receiver_id)

    def other_participant(self, user_id):
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def __str__(self):
        return f"{self.sender_id} to {self.receiver_id}: {self.content[:40]}..."
