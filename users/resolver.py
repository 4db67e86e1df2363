"""
Batch lookup of display data for message participants.
"""

import logging

from django.db import DatabaseError

from dmessages.exceptions import StoreError
from .models import User

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = 'Unknown User'


def unknown_user(user_id):
    """Placeholder used when a participant has no ``users`` row."""
    return {'id': user_id, 'name': UNKNOWN_USER_NAME, 'avatar_url': None}


def user_summary(user):
    return {
        'id': user.user_id,
        'name': user.user_name or UNKNOWN_USER_NAME,
        'avatar_url': user.avatar_url or None,
    }


def resolve_users(user_ids):
    """
    Resolve a set of user ids to ``{id, name, avatar_url}`` dicts in one query.

    Ids without a matching user map to the ``Unknown User`` placeholder instead
    of failing the whole batch.
    """
    ids = {str(user_id) for user_id in user_ids if user_id}
    if not ids:
        return {}

    try:
        users = User._default_manager.filter(user_id__in=ids).only(
            'user_id', 'user_name', 'avatar_url'
        )
        found = {user.user_id: user_summary(user) for user in users}
    except DatabaseError as e:
        logger.error(f"Failed to resolve users {sorted(ids)}: {e}")
        raise StoreError("Failed to resolve users") from e

    missing = ids - found.keys()
    if missing:
        logger.debug(f"No user record for {sorted(missing)}")

    return {user_id: found.get(user_id) or unknown_user(user_id) for user_id in ids}
