from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from conversations.identity import derive_conversation_id
from dmessages.exceptions import StoreError
from dmessages.models import Message
from listings.models import Listing
from marketplace.jwt_utils import generate_test_token
from users.models import User


class ConversationListViewTest(TestCase):
    def setUp(self):
        """Set up users, a listing and a few threads"""
        User.objects.create(user_id='alice', user_name='Alice')
        User.objects.create(user_id='bob', user_name='Bob', avatar_url='https://img.example.com/bob.png')
        User.objects.create(user_id='carol', user_name='Carol')
        self.listing = Listing.objects.create(
            seller_id='bob', title='Desk lamp', image_urls=['https://img.example.com/lamp.png'], price_cents=1500
        )

        self.now = timezone.now()
        self.url = reverse('conversations:conversation-list')
        self.client = APIClient()
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {generate_test_token('alice')}")

    def send(self, sender, receiver, minutes_ago, content='hello', read=False, item_id=None, conversation_id=None):
        return Message.objects.create(
            sender_id=sender,
            receiver_id=receiver,
            content=content,
            conversation_id=conversation_id or derive_conversation_id(sender, receiver, item_id),
            item_id=item_id,
            created_at=self.now - timedelta(minutes=minutes_ago),
            read=read,
        )

    def test_requires_authentication(self):
        response = APIClient().get(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_empty_list(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user_id'], 'alice')
        self.assertEqual(response.data['results'], [])
        self.assertEqual(response.data['total_count'], 0)

    def test_conversations_ordered_by_latest_message(self):
        self.send('alice', 'bob', 30)
        self.send('carol', 'alice', 10)
        self.send('bob', 'alice', 5, content='newest')

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['results']
        self.assertEqual(len(results), 2)
        self.assertEqual(results[0]['last_message']['content'], 'newest')
        self.assertEqual(results[0]['id'], derive_conversation_id('alice', 'bob'))
        self.assertEqual(results[1]['last_message']['sender_id'], 'carol')

    def test_participants_and_unread(self):
        self.send('bob', 'alice', 3)
        self.send('bob', 'alice', 2)
        self.send('alice', 'bob', 1)

        result = self.client.get(self.url).data['results'][0]

        self.assertEqual(result['unread_count'], 2)
        names = {participant['id']: participant['name'] for participant in result['participants']}
        self.assertEqual(names, {'alice': 'Alice', 'bob': 'Bob'})
        self.assertEqual(result['last_message']['sender']['name'], 'Alice')
        self.assertEqual(result['last_message']['receiver']['avatar_url'], 'https://img.example.com/bob.png')

    def test_drifted_rows_show_as_one_conversation(self):
        self.send('bob', 'alice', 20, conversation_id='conv_legacy')
        self.send('alice', 'bob', 1)

        results = self.client.get(self.url).data['results']

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]['unread_count'], 1)

    def test_last_message_preview_is_truncated(self):
        self.send('bob', 'alice', 1, content='x' * 150)

        preview = self.client.get(self.url).data['results'][0]['last_message']['content']

        self.assertEqual(preview, 'x' * 100 + '...')

    def test_item_summary(self):
        self.send('alice', 'bob', 2, item_id=str(self.listing.pk))

        result = self.client.get(self.url).data['results'][0]

        self.assertEqual(result['item'], {
            'id': str(self.listing.pk),
            'title': 'Desk lamp',
            'image_urls': ['https://img.example.com/lamp.png'],
            'price_cents': 1500,
        })

    def test_missing_user_rendered_as_unknown(self):
        self.send('alice', 'ghost', 1)

        result = self.client.get(self.url).data['results'][0]

        ghost = [participant for participant in result['participants'] if participant['id'] == 'ghost'][0]
        self.assertEqual(ghost['name'], 'Unknown User')
        self.assertIsNone(ghost['avatar_url'])

    @patch('conversations.views.MessageStore.list_messages_for_user')
    def test_store_failure_returns_503(self, mock_list):
        mock_list.side_effect = StoreError("Failed to fetch conversations")

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['error'], 'Failed to fetch conversations')
