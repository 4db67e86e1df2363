import asyncio
import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.core.cache import cache

from conversations.serializers import ConversationSerializer
from dmessages.exceptions import MessagingError, StoreError
from dmessages.serializers import MessageSerializer
from users.resolver import unknown_user
from .adapters import AsyncMessageStore, UserDirectory
from .notifier import ChannelLayerNotifier
from .session import CONVERSATIONS_CHANGED, MessagingSession

logger = logging.getLogger(__name__)


class MessagingConsumer(AsyncWebsocketConsumer):
    """
    WebSocket front end for one user's MessagingSession.

    Client frames are commands (``{"type": "send_message", ...}``); server
    frames push the conversation list, the open thread, notifications and
    errors. Commands run as tasks so a slow open never holds up later frames.
    """
    store_class = AsyncMessageStore
    directory_class = UserDirectory
    notifier_class = ChannelLayerNotifier

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = None
        self.session = None
        self.heartbeat_task = None
        self.command_tasks = set()

    async def connect(self):
        """Handle WebSocket connection: authenticate, then start the session"""
        self.user_id = self.scope.get('user_id')
        if not self.user_id:
            await self.close(code=4001)
            return

        await self.accept()

        self.session = MessagingSession(
            self.user_id,
            store=self.store_class(),
            directory=self.directory_class(),
            notifier=self.notifier_class(self.channel_layer),
            on_change=self.push_change,
            on_notify=self.push_notification,
            on_error=self.push_store_error,
        )
        await self.session.start()

        self.heartbeat_task = asyncio.create_task(self.heartbeat_loop())
        await self.store_connection()
        logger.info(f"WebSocket connected for user {self.user_id}")

    async def disconnect(self, code):
        """Handle WebSocket disconnection and cleanup"""
        if self.heartbeat_task:
            self.heartbeat_task.cancel()

        for task in list(self.command_tasks):
            task.cancel()

        if self.session is not None:
            await self.session.stop()
            await self.remove_connection()
            logger.info(f"WebSocket disconnected for user {self.user_id} (code {code})")

    async def receive(self, text_data=None, bytes_data=None):
        """Handle incoming WebSocket commands"""
        if text_data is None:
            await self.send_error("Binary frames are not supported")
            return

        if len(text_data) > self.scope.get('max_message_size', settings.WEBSOCKET_MAX_MESSAGE_SIZE):
            await self.send_error("Message too large")
            return

        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON format")
            return

        if not isinstance(data, dict):
            await self.send_error("Invalid command format")
            return

        message_type = data.get('type')

        if message_type == 'load_conversations':
            self.run_command(self.session.load_conversations())
        elif message_type == 'open_conversation':
            self.run_command(self.handle_open_conversation(data))
        elif message_type == 'open_conversation_with_user':
            self.run_command(self.handle_open_conversation_with_user(data))
        elif message_type == 'close_conversation':
            await self.handle_close_conversation()
        elif message_type == 'send_message':
            self.run_command(self.handle_send_message(data))
        elif message_type == 'mark_read':
            self.run_command(self.handle_mark_read(data))
        elif message_type == 'unread_count':
            await self.send_json({
                'type': 'unread_count',
                'unread_count': self.session.unread_count
            })
        elif message_type == 'heartbeat':
            await self.handle_heartbeat()
        else:
            await self.send_error("Unknown message type")

    def run_command(self, coroutine):
        task = asyncio.create_task(self.guarded(coroutine))
        self.command_tasks.add(task)
        task.add_done_callback(self.command_tasks.discard)
        return task

    async def guarded(self, coroutine):
        """Turn messaging errors raised by a command into error frames"""
        try:
            await coroutine
        except StoreError:
            # Already pushed through on_error
            pass
        except MessagingError as e:
            await self.send_error(str(e))
        except Exception:
            logger.exception(f"Command failed for user {self.user_id}")
            await self.send_error("Internal server error")

    async def handle_open_conversation(self, data):
        conversation_id = data.get('conversation_id')
        if not conversation_id:
            await self.send_error("Conversation ID required")
            return
        await self.session.open_conversation(conversation_id)

    async def handle_open_conversation_with_user(self, data):
        other_user_id = data.get('user_id')
        if not other_user_id:
            await self.send_error("User ID required")
            return
        await self.session.open_conversation_with_user(other_user_id, data.get('item_id') or None)

    async def handle_close_conversation(self):
        conversation_id = self.session.open_conversation_id
        self.session.close_conversation()
        await self.send_json({
            'type': 'conversation_closed',
            'conversation_id': conversation_id
        })

    async def handle_send_message(self, data):
        message = await self.session.send_message(
            data.get('receiver_id'),
            data.get('content'),
            data.get('item_id') or None,
        )
        await self.send_json({
            'type': 'message_sent',
            'client_id': data.get('client_id'),
            'message': self.serialize_messages([message])[0]
        })

    async def handle_mark_read(self, data):
        conversation_id = data.get('conversation_id') or self.session.open_conversation_id
        updated = await self.session.mark_read(conversation_id)
        await self.send_json({
            'type': 'marked_read',
            'conversation_id': conversation_id,
            'messages_marked_read': updated
        })

    async def handle_heartbeat(self):
        """Handle heartbeat messages"""
        await self.send_json({
            'type': 'heartbeat_response',
            'timestamp': asyncio.get_event_loop().time()
        })

    async def push_change(self, session, what):
        if what == CONVERSATIONS_CHANGED:
            await self.send_json({
                'type': 'conversations',
                'results': ConversationSerializer(session.conversations, many=True).data,
                'unread_count': session.unread_count
            })
        else:
            await self.send_json({
                'type': 'conversation_opened',
                'conversation_id': session.open_conversation_id,
                'participant_id': session.open_participant_id,
                'item_id': session.open_item_id,
                'messages': self.serialize_messages(session.messages)
            })

    async def push_notification(self, message):
        sender = self.known_users().get(message.sender_id) or unknown_user(message.sender_id)
        await self.send_json({
            'type': 'notification',
            'text': f"New message from {sender['name']}",
            'message': self.serialize_messages([message])[0]
        })

    async def push_store_error(self, error):
        await self.send_error(str(error))

    def known_users(self):
        return {
            participant['id']: participant
            for conversation in self.session.conversations
            for participant in conversation.participants
        }

    def serialize_messages(self, messages):
        return MessageSerializer(messages, many=True, context={'users': self.known_users()}).data

    async def send_json(self, content):
        await self.send(text_data=json.dumps(content))

    async def send_error(self, message):
        """Send error message to client"""
        await self.send_json({
            'type': 'error',
            'message': message
        })

    async def heartbeat_loop(self):
        """Send periodic heartbeat to keep connection alive"""
        while True:
            try:
                await asyncio.sleep(self.scope.get('heartbeat_interval', settings.WEBSOCKET_HEARTBEAT_INTERVAL))
                await self.send_json({
                    'type': 'heartbeat',
                    'timestamp': asyncio.get_event_loop().time()
                })
            except asyncio.CancelledError:
                break

    async def store_connection(self):
        """Record the live connection in the cache"""
        await cache.aset(f"websocket_connection:{self.user_id}", {
            'channel_name': self.channel_name,
            'connected_at': asyncio.get_event_loop().time()
        }, self.scope.get('connection_timeout', settings.WEBSOCKET_CONNECTION_TIMEOUT))

    async def remove_connection(self):
        await cache.adelete(f"websocket_connection:{self.user_id}")
