"""
Realtime change notifications over the Channels layer.

Every stored message change is published to a per-user group for both
participants. Subscribers get MessageEvent objects; delivery is at-least-once
and unordered relative to store responses, so consumers de-duplicate by
message id and treat events as a cue to refresh.
"""

import asyncio
import contextlib
import hashlib
import inspect
import logging
import re
from dataclasses import dataclass
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from dmessages.models import Message
from dmessages.serializers import message_from_payload, message_to_payload

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
EVENT_TYPES = (INSERT, UPDATE)

MESSAGE_EVENT = 'message.event'

_GROUP_SAFE = re.compile(r'^[a-zA-Z0-9\-_.]{1,60}$')


def user_group_name(user_id):
    """Channels group carrying one user's message events."""
    if _GROUP_SAFE.match(user_id):
        return f"messages.user.{user_id}"
    return f"messages.user.{hashlib.sha1(user_id.encode('utf-8')).hexdigest()}"


@dataclass
class MessageEvent:
    event_type: str
    new: Message
    old: Optional[Message] = None


def encode_event(event_type, new, old=None):
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type {event_type!r}")
    return {
        'type': MESSAGE_EVENT,
        'event_type': event_type,
        'new': message_to_payload(new),
        'old': message_to_payload(old) if old is not None else None,
    }


def decode_event(payload):
    event_type = payload['event_type']
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type {event_type!r}")
    old = payload.get('old')
    return MessageEvent(
        event_type=event_type,
        new=message_from_payload(payload['new']),
        old=message_from_payload(old) if old else None,
    )


def publish_message_event(event_type, new, old=None, channel_layer=None):
    """
    Send an event to both participants' groups. Called from sync code
    (signal receivers); failures are logged, never raised to the writer.
    """
    layer = channel_layer or get_channel_layer()
    if layer is None:
        logger.warning("No channel layer configured, dropping message event")
        return

    event = encode_event(event_type, new, old)
    for user_id in {new.sender_id, new.receiver_id}:
        try:
            async_to_sync(layer.group_send)(user_group_name(user_id), event)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} for message {new.id} to {user_id}: {e}")


class Subscription:
    """Handle returned by ChannelLayerNotifier.subscribe"""

    def __init__(self, channel_layer, group, channel, task):
        self.channel_layer = channel_layer
        self.group = group
        self.channel = channel
        self.task = task
        self.closed = False

    async def unsubscribe(self):
        if self.closed:
            return
        self.closed = True
        self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task
        await self.channel_layer.group_discard(self.group, self.channel)
        logger.info(f"Unsubscribed {self.channel} from {self.group}")


class ChannelLayerNotifier:
    """
    Subscribe to one user's message events on a channel layer.
    """

    def __init__(self, channel_layer=None):
        self.channel_layer = channel_layer or get_channel_layer()

    async def subscribe(self, user_id, on_event):
        """
        Start delivering the user's events to ``on_event`` (sync or async
        callable taking a MessageEvent). Returns a Subscription.
        """
        group = user_group_name(user_id)
        channel = await self.channel_layer.new_channel()
        await self.channel_layer.group_add(group, channel)
        task = asyncio.create_task(self._listen(channel, on_event))
        logger.info(f"Subscribed {channel} to {group}")
        return Subscription(self.channel_layer, group, channel, task)

    async def _listen(self, channel, on_event):
        while True:
            payload = await self.channel_layer.receive(channel)
            if payload.get('type') != MESSAGE_EVENT:
                continue

            try:
                event = decode_event(payload)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed message event on {channel}: {e}")
                continue

            try:
                result = on_event(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Message event handler failed for {event.new.id}")
