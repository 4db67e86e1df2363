from django.apps import AppConfig


class WebsocketChatConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'websocket_chat'

    def ready(self) -> None:
        """
        Connect the receivers that publish message changes to the channel layer.
        """
        import websocket_chat.signals  # noqa: F401
