"""
Stable conversation keys.

A conversation key is derived from the unordered pair of participants plus an
optional item (listing) id, so both sides of a thread compute the same key
without coordinating.
"""

import uuid

from dmessages.exceptions import ValidationError

# Fixed namespace for uuid5; changing it changes every derived key.
CONVERSATION_NAMESPACE = uuid.UUID('6b0f3c52-8f8e-4f65-9a57-2d3c1d1f6e41')


def _check_user_id(value, field):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    return value.strip()


def conversation_seed(user_a, user_b, item_id=None):
    """Canonical seed string: ``lo|hi`` or ``lo|hi|item:<id>``."""
    low, high = sorted((_check_user_id(user_a, 'user_a'), _check_user_id(user_b, 'user_b')))
    seed = f"{low}|{high}"
    if item_id not in (None, ''):
        seed = f"{seed}|item:{item_id}"
    return seed


def derive_conversation_id(user_a, user_b, item_id=None):
    """
    Derive the conversation key for two users and an optional item.

    The result does not depend on argument order, and a general conversation
    never shares a key with an item-scoped one.
    """
    return str(uuid.uuid5(CONVERSATION_NAMESPACE, conversation_seed(user_a, user_b, item_id)))
