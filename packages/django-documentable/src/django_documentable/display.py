"""Display helpers: the first image of a slot, with fallbacks."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from django.forms.utils import flatatt
from django.templatetags.static import static
from django.utils.html import format_html

from . import conf
from .resolver import resolve


@dataclass
class RenderedImage:
    """An image URL plus HTML attributes, renderable as an ``<img>`` tag."""

    url: str
    attrs: dict = field(default_factory=dict)

    def __html__(self):
        return str(format_html('<img src="{}"{}>', self.url, flatatt(self.attrs)))

    def __str__(self):
        return self.__html__()


class BaseThumbnailProvider(ABC):
    """Renders the image shown when a slot has nothing to show."""

    @abstractmethod
    def render(self, attrs: dict) -> RenderedImage:
        raise NotImplementedError


class StaticThumbnailProvider(BaseThumbnailProvider):
    """Placeholder image from DOCUMENTABLE_DEFAULT_THUMBNAIL_URL.

    Relative paths are served from STATIC_URL.
    """

    def __init__(self, url=None):
        self.url = url or conf.get_setting('DEFAULT_THUMBNAIL_URL', conf.DEFAULT_THUMBNAIL_URL)

    def render(self, attrs):
        url = self.url
        if not url.startswith(('/', 'http://', 'https://', 'data:')):
            url = static(url)
        return RenderedImage(url, dict(attrs))


class DocumentDisplay:
    """
    Read-only accessor for the first document of a slot.

    The default provider is injected once; see get_default_display().
    """

    def __init__(self, default_provider: BaseThumbnailProvider):
        self.default_provider = default_provider

    def first_attachment(self, owner, slot: str, attrs=None, default=None, original: bool = False):
        """
        Render the first document of a slot.

        Args:
            owner: Documentable model instance
            slot: Slot name
            attrs: HTML attributes for the image
            default: Returned as-is when the slot has no usable document
            original: Use the stored file instead of its thumbnail

        Returns:
            RenderedImage, ``default``, or the default provider's image
        """
        attrs = dict(attrs or {})
        doc = resolve(owner, slot).first()
        if doc is not None:
            url = doc.get_uri(original=original)
            if url is not None:
                return RenderedImage(url, attrs)

        if default is not None:
            return default
        return self.default_provider.render(attrs)

    def thumbnail(self, owner, slot, attrs=None, default=None):
        return self.first_attachment(owner, slot, attrs, default, original=False)

    def image(self, owner, slot, attrs=None, default=None):
        return self.first_attachment(owner, slot, attrs, default, original=True)


def get_default_display() -> DocumentDisplay:
    return DocumentDisplay(conf.get_default_thumbnail_provider())


def get_thumbnail(owner, slot, attrs=None, default=None):
    """Thumbnail of the first document of a slot."""
    return get_default_display().thumbnail(owner, slot, attrs, default)


def get_image(owner, slot, attrs=None, default=None):
    """Original image of the first document of a slot."""
    return get_default_display().image(owner, slot, attrs, default)
