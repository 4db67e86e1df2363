from django.dispatch import Signal

# Sent by MessageStore.mark_read after a bulk read-state update, which bypasses
# post_save. Arguments: ``messages`` (the rows, already flipped to read=True)
# and ``receiver_id``.
messages_read = Signal()
