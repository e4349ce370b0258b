from django.apps import AppConfig


class StreamerAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'streamer'
    verbose_name = 'CDC Streamer'
