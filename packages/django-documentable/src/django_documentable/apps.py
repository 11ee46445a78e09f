"""Django app configuration for django-documentable."""

from django.apps import AppConfig


class DjangoDocumentableConfig(AppConfig):
    """App configuration for django-documentable."""

    name = 'django_documentable'
    verbose_name = 'Django Documentable'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from .signals import connect_owner_signals

        connect_owner_signals()
