"""Configuration helpers for django-documentable.

All settings can be overridden in your Django settings.py.

Example:
    # settings.py
    DOCUMENTABLE_UPLOADER = 'myproject.uploads.S3Uploader'
    DOCUMENTABLE_THUMBNAIL = {'square': 120, 'type': 'webp'}
"""

from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import ConfigurationError


DEFAULT_UPLOADER = 'django_documentable.uploads.DefaultUploader'
DEFAULT_THUMBNAIL_PROVIDER = 'django_documentable.display.StaticThumbnailProvider'
DEFAULT_THUMBNAIL_URL = 'documentable/no-image.png'

# Thumbnail rendering parameters, merged under each slot's thumbnail_options
THUMBNAIL_DEFAULTS = {
    'width': 200,
    'height': 200,
    'crop': True,
    'quality': 70,        # 0-100, used by jpeg/webp
    'compression': 7,     # 0-9, used by png
    'background_color': 'FFF',
    'background_alpha': 0,
    'type': 'png',
}


def get_setting(name: str, default=None):
    """Get a setting with DOCUMENTABLE_ prefix."""
    return getattr(settings, f"DOCUMENTABLE_{name}", default)


def thumbnail_options(overrides: dict | None = None) -> dict:
    """Return thumbnail parameters: defaults, then settings, then overrides."""
    options = dict(THUMBNAIL_DEFAULTS)
    options.update(get_setting('THUMBNAIL', {}) or {})
    options.update(overrides or {})
    return options


def first_slot_only() -> bool:
    """Legacy mode: stop reconciling after the first slot that had files."""
    return bool(get_setting('FIRST_SLOT_ONLY', False))


def lock_owner() -> bool:
    """Lock the owner row while a slot is reconciled."""
    return bool(get_setting('LOCK_OWNER', True))


def _load(dotted_path: str, base_class):
    try:
        cls = import_string(dotted_path)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import '{dotted_path}': {e}")

    if not isinstance(cls, type) or not issubclass(cls, base_class):
        raise ConfigurationError(
            f"'{dotted_path}' must be a subclass of {base_class.__name__}"
        )
    return cls()


@lru_cache(maxsize=None)
def get_uploader():
    """Return the process-wide upload collaborator."""
    from .uploads import BaseUploader

    return _load(get_setting('UPLOADER', DEFAULT_UPLOADER), BaseUploader)


@lru_cache(maxsize=None)
def get_default_thumbnail_provider():
    """Return the process-wide default thumbnail provider."""
    from .display import BaseThumbnailProvider

    return _load(
        get_setting('DEFAULT_THUMBNAIL_PROVIDER', DEFAULT_THUMBNAIL_PROVIDER),
        BaseThumbnailProvider,
    )


def clear_cache():
    """Forget loaded collaborators. Useful for testing."""
    get_uploader.cache_clear()
    get_default_thumbnail_provider.cache_clear()
