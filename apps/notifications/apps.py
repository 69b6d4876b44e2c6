from django.apps import AppConfig  # type: ignore


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.notifications"
    label = "notifications"

    def ready(self) -> None:
        from shared.application.message_bus import message_bus

        from .services import register_subscribers

        register_subscribers(message_bus)
