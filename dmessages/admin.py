from django.contrib import admin
from .models import Message


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'conversation_id', 'sender_id', 'receiver_id', 'content_preview', 'created_at', 'read']
    list_filter = ['read', 'created_at']
    search_fields = ['content', 'sender_id', 'receiver_id', 'conversation_id']
    readonly_fields = ['id', 'sender_id', 'receiver_id', 'content', 'conversation_id', 'item_id', 'created_at']

    @admin.display(description='Content Preview')
    def content_preview(self, obj):
        return obj.content[:50] + "..." if len(obj.content) > 50 else obj.content
