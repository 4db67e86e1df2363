from django.urls import path
from .views import MessageListCreateView, MarkReadView, UnreadCountView

app_name = 'dmessages'

urlpatterns = [
    path('', MessageListCreateView.as_view(), name='message-list-create'),
    path('mark-read/', MarkReadView.as_view(), name='message-mark-read'),
    path('unread-count/', UnreadCountView.as_view(), name='message-unread-count'),
]
