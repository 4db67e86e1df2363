"""
Per-connection messaging state.

MessagingSession owns the conversation list, the open thread and its message
buffer for one user. All mutations go through its methods; the store, the
user directory and the notifier are passed in so the session itself does no
I/O of its own.
"""

import inspect
import logging
from enum import Enum

from conversations.aggregator import aggregate_async, recency_key
from conversations.identity import derive_conversation_id
from dmessages.exceptions import MessagingError, StoreError, ValidationError
from .notifier import INSERT, UPDATE

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = 'idle'
    LOADING_CONVERSATIONS = 'loading_conversations'
    READY = 'ready'
    OPENING_CONVERSATION = 'opening_conversation'
    CONVERSATION_OPEN = 'conversation_open'


# Arguments passed to on_change
CONVERSATIONS_CHANGED = 'conversations'
MESSAGES_CHANGED = 'messages'


async def _emit(callback, *args):
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class MessagingSession:
    """
    Client-side controller for one user's messaging view.

    Args:
        user_id: the signed-in user
        store: async store adapter (see websocket_chat.adapters.AsyncMessageStore)
        directory: async ``resolve_users``/``resolve_item`` provider
        notifier: optional realtime notifier with ``subscribe(user_id, on_event)``
        on_change: called with ``(session, CONVERSATIONS_CHANGED | MESSAGES_CHANGED)``
        on_notify: called with a Message that arrived outside the open thread
        on_error: called with the StoreError behind a degraded operation
    """

    def __init__(self, user_id, store, directory, notifier=None,
                 on_change=None, on_notify=None, on_error=None):
        self.user_id = user_id
        self.store = store
        self.directory = directory
        self.notifier = notifier
        self.on_change = on_change
        self.on_notify = on_notify
        self.on_error = on_error

        self.state = SessionState.IDLE
        self.conversations = []
        self.open_conversation_id = None
        self.open_participant_id = None
        self.open_item_id = None
        self.messages = []
        self.last_error = None

        self._loaded = False
        self._loads_in_flight = 0
        self._load_generation = 0
        self._open_generation = 0
        self._sending = 0
        self._subscription = None

    @property
    def is_loading(self):
        return self._loads_in_flight > 0 or self.state is SessionState.OPENING_CONVERSATION

    @property
    def is_sending(self):
        return self._sending > 0

    @property
    def unread_count(self):
        return sum(conversation.unread_count for conversation in self.conversations)

    def conversation_id_for(self, other_user_id, item_id=None):
        return derive_conversation_id(self.user_id, other_user_id, item_id)

    async def start(self):
        """Subscribe to realtime events and load the conversation list."""
        if self.notifier is not None and self._subscription is None:
            self._subscription = await self.notifier.subscribe(self.user_id, self.handle_event)
        await self.load_conversations()

    async def stop(self):
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None

    async def load_conversations(self):
        """
        Refresh the conversation list. Returns True when the result was applied.

        A failure keeps the previous list and is reported through ``on_error``.
        Only the most recently started load may apply its result.
        """
        self._load_generation += 1
        generation = self._load_generation
        self._loads_in_flight += 1
        if self.state in (SessionState.IDLE, SessionState.READY):
            self.state = SessionState.LOADING_CONVERSATIONS

        try:
            messages = await self.store.list_messages_for_user(self.user_id)
            conversations = await aggregate_async(
                messages, self.user_id, self.directory.resolve_users, self.directory.resolve_item
            )
        except StoreError as e:
            self._finish_load()
            await self._report(e)
            return False

        if generation != self._load_generation:
            self._finish_load()
            logger.debug(f"Discarding stale conversation list for {self.user_id}")
            return False

        self.conversations = conversations
        self._loaded = True
        self._finish_load()
        logger.info(f"Loaded {len(conversations)} conversations for {self.user_id}, {self.unread_count} unread")
        await _emit(self.on_change, self, CONVERSATIONS_CHANGED)
        return True

    def _finish_load(self):
        self._loads_in_flight -= 1
        if self._loads_in_flight == 0 and self.state is SessionState.LOADING_CONVERSATIONS:
            self.state = self._resting_state()

    async def open_conversation(self, conversation_id, other_user_id=None, item_id=None):
        """
        Load the thread behind ``conversation_id`` into the message buffer.

        The thread is every message between the two participants, whatever
        key they were stored under. An id with no messages opens as an empty
        thread. If another open is requested before this one finishes, this
        one's result is dropped. Returns True when the result was applied.

        Raises:
            ValidationError: empty conversation id
            AccessError: the user is not a participant
        """
        if not conversation_id:
            raise ValidationError("conversation_id is required")

        snapshot = self._snapshot()
        self._open_generation += 1
        generation = self._open_generation
        self.open_conversation_id = conversation_id
        self.open_item_id = item_id
        self.state = SessionState.OPENING_CONVERSATION

        try:
            if other_user_id is None:
                other_user_id = self._participant_from_list(conversation_id)
            if other_user_id is None:
                pair = await self.store.participants_for(conversation_id, self.user_id)
                if pair is not None:
                    other_user_id = pair[0] if pair[1] == self.user_id else pair[1]
            if other_user_id is None:
                messages = []
            else:
                messages = await self.store.list_messages_between(self.user_id, other_user_id)
        except StoreError as e:
            if generation == self._open_generation:
                self._restore(snapshot)
            await self._report(e)
            return False
        except MessagingError:
            if generation == self._open_generation:
                self._restore(snapshot)
            raise

        if generation != self._open_generation:
            logger.debug(f"Discarding stale open of {conversation_id} for {self.user_id}")
            return False

        self.open_participant_id = other_user_id
        self.messages = sorted(messages, key=recency_key)
        self.state = SessionState.CONVERSATION_OPEN
        logger.info(f"Opened conversation {conversation_id} for {self.user_id} ({len(self.messages)} messages)")
        await _emit(self.on_change, self, MESSAGES_CHANGED)
        return True

    async def open_conversation_with_user(self, other_user_id, item_id=None):
        """Open the conversation with another user, creating nothing until the first send."""
        if other_user_id == self.user_id:
            raise ValidationError("Cannot open a conversation with yourself")
        conversation_id = self.conversation_id_for(other_user_id, item_id)
        return await self.open_conversation(conversation_id, other_user_id=other_user_id, item_id=item_id)

    def close_conversation(self):
        self._open_generation += 1
        self._clear_open()
        self.state = self._resting_state()

    async def send_message(self, receiver_id, content, item_id=None):
        """
        Send a message and return the stored row.

        Nothing is appended to the open thread unless the store accepted the
        message. The conversation list is refreshed after every successful send.

        Raises:
            ValidationError: blank content or sending to yourself (before any I/O)
            StoreError: the store failed; also reported through ``on_error``
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content cannot be empty")
        if not isinstance(receiver_id, str) or not receiver_id.strip():
            raise ValidationError("receiver_id cannot be empty")
        if receiver_id == self.user_id:
            raise ValidationError("Cannot send message to yourself")

        conversation_id = self.conversation_id_for(receiver_id, item_id)

        self._sending += 1
        try:
            message = await self.store.insert_message(
                self.user_id, receiver_id, content, conversation_id, item_id
            )
        except StoreError as e:
            await self._report(e)
            raise
        finally:
            self._sending -= 1

        if self.open_conversation_id is None and message.conversation_id == conversation_id:
            self._open_generation += 1
            self.open_conversation_id = message.conversation_id
            self.open_participant_id = receiver_id
            self.open_item_id = item_id
            self.messages = []
            self.state = SessionState.CONVERSATION_OPEN

        if self._belongs_to_open(message):
            self._merge(message)
            await _emit(self.on_change, self, MESSAGES_CHANGED)

        await self.load_conversations()
        return message

    async def mark_read(self, conversation_id=None):
        """
        Mark the conversation (the open one by default) read for this user.
        Returns the number of messages changed.
        """
        conversation_id = conversation_id or self.open_conversation_id
        if not conversation_id:
            raise ValidationError("conversation_id is required")

        # The open key may have no rows of its own (new item thread, drifted
        # history), so resolve the other participant and mark by pair.
        if conversation_id == self.open_conversation_id and self.open_participant_id is not None:
            other_user_id = self.open_participant_id
        else:
            other_user_id = self._participant_from_list(conversation_id)

        try:
            if other_user_id is not None:
                updated = await self.store.mark_read_between(self.user_id, other_user_id)
            else:
                updated = await self.store.mark_read(conversation_id, self.user_id)
        except StoreError as e:
            await self._report(e)
            return 0

        is_open = (
            self.state is SessionState.CONVERSATION_OPEN
            and self.open_participant_id is not None
            and other_user_id == self.open_participant_id
        )
        if updated and is_open:
            for message in self.messages:
                if message.sender_id == other_user_id and message.receiver_id == self.user_id:
                    message.read = True
            await _emit(self.on_change, self, MESSAGES_CHANGED)

        await self.load_conversations()
        return updated

    async def handle_event(self, event):
        """
        Apply a realtime event.

        INSERTs for the open thread are merged into the buffer; INSERTs
        addressed to this user elsewhere trigger ``on_notify``. UPDATEs patch
        the buffered copy. Every event refreshes the conversation list.
        """
        message = event.new
        if event.event_type == INSERT:
            if self._belongs_to_open(message):
                self._merge(message)
                await _emit(self.on_change, self, MESSAGES_CHANGED)
            elif message.receiver_id == self.user_id:
                await _emit(self.on_notify, message)
        elif event.event_type == UPDATE:
            if self._patch(message):
                await _emit(self.on_change, self, MESSAGES_CHANGED)
        else:
            logger.warning(f"Ignoring unknown event type {event.event_type!r}")
            return

        await self.load_conversations()

    def _belongs_to_open(self, message):
        if self.state is not SessionState.CONVERSATION_OPEN or self.open_conversation_id is None:
            return False
        if message.conversation_id == self.open_conversation_id:
            return True
        if self.open_participant_id is None:
            return False
        return message.participant_pair == tuple(sorted((self.user_id, self.open_participant_id)))

    def _merge(self, message):
        """Insert or replace by id, keeping ascending order."""
        messages = [m for m in self.messages if m.id != message.id]
        messages.append(message)
        self.messages = sorted(messages, key=recency_key)

    def _patch(self, message):
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                self.messages[index] = message
                return True
        return False

    def _participant_from_list(self, conversation_id):
        for conversation in self.conversations:
            if conversation.id == conversation_id or conversation_id in conversation.conversation_ids:
                return conversation.other_participant(self.user_id)
        return None

    def _resting_state(self):
        return SessionState.READY if self._loaded else SessionState.IDLE

    def _clear_open(self):
        self.open_conversation_id = None
        self.open_participant_id = None
        self.open_item_id = None
        self.messages = []

    def _snapshot(self):
        return (self.state, self.open_conversation_id, self.open_participant_id,
                self.open_item_id, list(self.messages))

    def _restore(self, snapshot):
        state, conversation_id, participant_id, item_id, messages = snapshot
        if state is SessionState.CONVERSATION_OPEN:
            self.open_conversation_id = conversation_id
            self.open_participant_id = participant_id
            self.open_item_id = item_id
            self.messages = messages
            self.state = state
        else:
            self._clear_open()
            self.state = self._resting_state()

    async def _report(self, error):
        self.last_error = error
        logger.warning(f"Messaging session for {self.user_id}: {error}")
        await _emit(self.on_error, error)
