import copy

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from dmessages.models import Message
from dmessages.signals import messages_read
from .notifier import INSERT, UPDATE, publish_message_event


@receiver(post_save, sender=Message)
def publish_message_created(sender, instance: Message, created: bool, **kwargs):
    """
    Publish an INSERT event for a newly stored message once the transaction commits.
    """
    if created and not kwargs.get('raw', False):
        transaction.on_commit(lambda: publish_message_event(INSERT, instance))


@receiver(messages_read)
def publish_messages_read(sender, messages, **kwargs):
    """
    Publish one UPDATE event per message flipped to read by a bulk update.

    ``old`` is the same message with ``read=False``.
    """
    changes = []
    for message in messages:
        old = copy.copy(message)
        old.read = False
        changes.append((message, old))

    def publish():
        for new, old in changes:
            publish_message_event(UPDATE, new, old)

    transaction.on_commit(publish)
