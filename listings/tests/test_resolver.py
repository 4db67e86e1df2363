from django.test import TestCase

from listings.models import Listing
from listings.resolver import resolve_item


class ResolveItemTest(TestCase):
    def setUp(self):
        """Set up a listing"""
        self.listing = Listing.objects.create(
            seller_id='bob',
            title='Road bike',
            image_urls=['https://img.example.com/bike-1.png', 'https://img.example.com/bike-2.png'],
            price_cents=25000,
        )

    def test_existing_listing(self):
        self.assertEqual(resolve_item(str(self.listing.pk)), {
            'id': str(self.listing.pk),
            'title': 'Road bike',
            'image_urls': ['https://img.example.com/bike-1.png', 'https://img.example.com/bike-2.png'],
            'price_cents': 25000,
        })

    def test_integer_id(self):
        self.assertEqual(resolve_item(self.listing.pk)['title'], 'Road bike')

    def test_missing_listing(self):
        self.assertIsNone(resolve_item(str(self.listing.pk + 1000)))

    def test_empty_or_malformed_id(self):
        with self.assertNumQueries(0):
            self.assertIsNone(resolve_item(None))
            self.assertIsNone(resolve_item(''))
            self.assertIsNone(resolve_item('not-a-number'))
