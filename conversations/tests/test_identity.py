import uuid

from django.test import SimpleTestCase

from conversations.identity import conversation_seed, derive_conversation_id
from dmessages.exceptions import ValidationError


class DeriveConversationIdTest(SimpleTestCase):

    def test_order_of_participants_does_not_matter(self):
        """Both sides of a thread compute the same key."""
        self.assertEqual(
            derive_conversation_id('alice', 'bob'),
            derive_conversation_id('bob', 'alice'),
        )

    def test_order_does_not_matter_with_item(self):
        self.assertEqual(
            derive_conversation_id('alice', 'bob', '42'),
            derive_conversation_id('bob', 'alice', '42'),
        )

    def test_item_scoped_key_differs_from_general_key(self):
        self.assertNotEqual(
            derive_conversation_id('alice', 'bob'),
            derive_conversation_id('alice', 'bob', '42'),
        )

    def test_different_items_get_different_keys(self):
        self.assertNotEqual(
            derive_conversation_id('alice', 'bob', '42'),
            derive_conversation_id('alice', 'bob', '43'),
        )

    def test_different_pairs_get_different_keys(self):
        self.assertNotEqual(
            derive_conversation_id('alice', 'bob'),
            derive_conversation_id('alice', 'carol'),
        )

    def test_key_is_deterministic_uuid(self):
        key = derive_conversation_id('alice', 'bob')
        self.assertEqual(key, derive_conversation_id('alice', 'bob'))
        self.assertEqual(uuid.UUID(key).version, 5)

    def test_empty_item_is_general_conversation(self):
        self.assertEqual(
            derive_conversation_id('alice', 'bob', ''),
            derive_conversation_id('alice', 'bob'),
        )

    def test_seed_format(self):
        self.assertEqual(conversation_seed('bob', 'alice'), 'alice|bob')
        self.assertEqual(conversation_seed('bob', 'alice', 7), 'alice|bob|item:7')

    def test_blank_user_id_rejected(self):
        with self.assertRaises(ValidationError):
            derive_conversation_id('', 'bob')
        with self.assertRaises(ValidationError):
            derive_conversation_id('alice', '   ')
        with self.assertRaises(ValidationError):
            derive_conversation_id(None, 'bob')
