from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from dmessages.exceptions import StoreError
from users.models import User
from users.resolver import resolve_users, unknown_user


class ResolveUsersTest(TestCase):
    def setUp(self):
        """Set up test users"""
        User.objects.create(user_id='alice', user_name='Alice', avatar_url='https://img.example.com/a.png')
        User.objects.create(user_id='bob', user_name='')

    def test_known_users(self):
        users = resolve_users({'alice'})
        self.assertEqual(users, {
            'alice': {'id': 'alice', 'name': 'Alice', 'avatar_url': 'https://img.example.com/a.png'}
        })

    def test_missing_user_gets_placeholder(self):
        users = resolve_users(['alice', 'ghost'])
        self.assertEqual(users['ghost'], unknown_user('ghost'))
        self.assertEqual(users['alice']['name'], 'Alice')

    def test_blank_name_shows_as_unknown(self):
        self.assertEqual(resolve_users({'bob'})['bob']['name'], 'Unknown User')

    def test_single_query(self):
        with self.assertNumQueries(1):
            resolve_users({'alice', 'bob', 'ghost'})

    def test_empty_input(self):
        with self.assertNumQueries(0):
            self.assertEqual(resolve_users(set()), {})

    def test_database_error(self):
        with patch.object(User.objects, 'filter', side_effect=DatabaseError("gone")):
            with self.assertRaises(StoreError):
                resolve_users({'alice'})
