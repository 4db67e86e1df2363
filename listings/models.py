from django.db import models


class Listing(models.Model):
    """A product listing as seen by the messaging layer (read-only here)."""
    seller_id = models.CharField(max_length=100, db_index=True)
    title = models.CharField(max_length=255)
    image_urls = models.JSONField(default=list, blank=True)
    price_cents = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'listings'

    def __str__(self):
        return f"{self.title} ({self.price_cents}c)"
