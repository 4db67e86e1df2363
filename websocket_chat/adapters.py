"""
Async facades over the ORM-backed store and resolvers, for use from the
messaging session inside a websocket consumer.
"""

from channels.db import database_sync_to_async

from dmessages.store import MessageStore
from listings.resolver import resolve_item
from users.resolver import resolve_users


class AsyncMessageStore:

    def __init__(self, store=None):
        self.store = store or MessageStore()

    async def insert_message(self, sender_id, receiver_id, content, conversation_id, item_id=None):
        return await database_sync_to_async(self.store.insert_message)(
            sender_id, receiver_id, content, conversation_id, item_id
        )

    async def list_messages_between(self, user_a, user_b, limit=None):
        return await database_sync_to_async(self.store.list_messages_between)(user_a, user_b, limit)

    async def list_messages_for_user(self, user_id):
        return await database_sync_to_async(self.store.list_messages_for_user)(user_id)

    async def participants_for(self, conversation_id, user_id):
        return await database_sync_to_async(self.store.participants_for)(conversation_id, user_id)

    async def mark_read(self, conversation_id, receiver_id):
        return await database_sync_to_async(self.store.mark_read)(conversation_id, receiver_id)

    async def mark_read_between(self, reader_id, other_id):
        return await database_sync_to_async(self.store.mark_read_between)(reader_id, other_id)

    async def count_unread(self, user_id):
        return await database_sync_to_async(self.store.count_unread)(user_id)


class UserDirectory:
    """User and item lookups for conversation summaries"""

    async def resolve_users(self, user_ids):
        return await database_sync_to_async(resolve_users)(set(user_ids))

    async def resolve_item(self, item_id):
        return await database_sync_to_async(resolve_item)(item_id)
