"""
Derive conversation summaries from raw message rows.

Messages are grouped by their participant pair rather than by the stored
``conversation_id``: older rows may carry a key from a previous derivation
scheme, and a pair must still show up as a single conversation.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from users.resolver import unknown_user

logger = logging.getLogger(__name__)


def recency_key(message):
    """Sort key for "most recent": ``created_at``, then the greater id on ties."""
    return (message.created_at, str(message.id))


@dataclass
class ParticipantGroup:
    participants: tuple
    last_message: object
    unread_count: int = 0
    conversation_ids: set = field(default_factory=set)
    message_count: int = 0
    item_message: Optional[object] = None


@dataclass
class Conversation:
    id: str
    participants: List[Dict]
    last_message: object
    unread_count: int
    updated_at: datetime
    item: Optional[Dict] = None
    conversation_ids: List[str] = field(default_factory=list)

    def other_participant(self, user_id):
        for participant in self.participants:
            if participant['id'] != user_id:
                return participant['id']
        return None


def group_by_participants(messages, current_user_id):
    """
    Partition messages into one group per participant pair, most recent first.
    """
    groups = {}
    for message in messages:
        if not message.involves(current_user_id):
            logger.debug(f"Skipping message {message.id}: {current_user_id} is not a participant")
            continue

        pair = message.participant_pair
        group = groups.get(pair)
        if group is None:
            group = groups[pair] = ParticipantGroup(participants=pair, last_message=message)
        elif recency_key(message) > recency_key(group.last_message):
            group.last_message = message

        group.message_count += 1
        group.conversation_ids.add(message.conversation_id)
        if message.receiver_id == current_user_id and not message.read:
            group.unread_count += 1
        if message.item_id and (
            group.item_message is None or recency_key(message) > recency_key(group.item_message)
        ):
            group.item_message = message

    for group in groups.values():
        if len(group.conversation_ids) > 1:
            logger.debug(
                f"Conversation for {'|'.join(group.participants)} spans "
                f"{', '.join(sorted(group.conversation_ids))} ({group.message_count} messages)"
            )

    return sorted(groups.values(), key=lambda g: recency_key(g.last_message), reverse=True)


def participant_ids(groups):
    return {user_id for group in groups for user_id in group.participants}


def item_ids(groups):
    return {group.item_message.item_id for group in groups if group.item_message}


def build_conversations(groups, users, items=None):
    items = items or {}
    conversations = []
    for group in groups:
        last_message = group.last_message
        conversations.append(Conversation(
            id=last_message.conversation_id,
            participants=[users.get(user_id) or unknown_user(user_id) for user_id in group.participants],
            last_message=last_message,
            unread_count=group.unread_count,
            updated_at=last_message.created_at,
            item=items.get(group.item_message.item_id) if group.item_message else None,
            conversation_ids=sorted(group.conversation_ids),
        ))
    return conversations


def aggregate(messages, current_user_id, resolve_users, resolve_item=None):
    """
    Build the user's conversation list from their messages.

    Args:
        messages: every message the user sent or received, in any order
        current_user_id: whose view is being built (drives unread counts)
        resolve_users: callable taking a set of ids, returning ``{id: summary}``
        resolve_item: optional callable taking an item id, returning a summary or None

    Returns:
        list[Conversation], one per other participant, most recent first
    """
    groups = group_by_participants(messages, current_user_id)
    users = resolve_users(participant_ids(groups)) if groups else {}
    items = {}
    if resolve_item is not None:
        for item_id in item_ids(groups):
            items[item_id] = resolve_item(item_id)
    return build_conversations(groups, users, items)


async def aggregate_async(messages, current_user_id, resolve_users, resolve_item=None):
    """Same as :func:`aggregate` with awaitable resolvers."""
    groups = group_by_participants(messages, current_user_id)
    users = await resolve_users(participant_ids(groups)) if groups else {}
    items = {}
    if resolve_item is not None:
        for item_id in item_ids(groups):
            items[item_id] = await resolve_item(item_id)
    return build_conversations(groups, users, items)
