import logging

from django.db import DatabaseError

from dmessages.exceptions import StoreError
from .models import Listing

logger = logging.getLogger(__name__)


def item_summary(listing):
    return {
        'id': str(listing.pk),
        'title': listing.title,
        'image_urls': list(listing.image_urls or []),
        'price_cents': listing.price_cents,
    }


def resolve_item(item_id):
    """
    Look up the listing a conversation is about.

    Returns ``{id, title, image_urls, price_cents}`` or None when the id is
    empty, malformed, or the listing no longer exists.
    """
    if item_id in (None, ''):
        return None

    try:
        pk = int(item_id)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric item id {item_id!r}")
        return None

    try:
        listing = Listing._default_manager.filter(pk=pk).first()
    except DatabaseError as e:
        logger.error(f"Failed to resolve item {item_id}: {e}")
        raise StoreError("Failed to resolve item") from e

    return item_summary(listing) if listing else None
