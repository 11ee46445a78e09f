"""Slot declarations and the owner capability interface.

Owners declare their attachment points with ``DocumentSlot`` and mix in
``DocumentableMixin``:

    from django_documentable.slots import DocumentSlot, DocumentableMixin

    class Product(DocumentableMixin, models.Model):
        name = models.CharField(max_length=100)

        avatar = DocumentSlot(tag="AVATAR", thumbnail=True)
        gallery = DocumentSlot(multiple=True)
        manuals = DocumentSlot(multiple=True, via="catalog.ProductDocument")

    product.avatar = [uploaded_file]
    product.save()          # post_save reconciles the slot
    product.avatar          # -> [<Document ...>]
"""

import re
import dataclasses
from dataclasses import dataclass, field
from os import PathLike
from typing import Any, Optional, Union

from django.apps import apps
from django.core.exceptions import FieldDoesNotExist
from django.core.files import File

from .exceptions import ConfigurationError


# Characters used to decorate table names (quoting, deferred prefixes)
TABLE_DECORATION_RE = re.compile(r'[`"\[\]{}%]')


def unquote_table_name(name: str) -> str:
    """Strip quoting and placeholder characters from a table name."""
    return TABLE_DECORATION_RE.sub('', name or '')


@dataclass(frozen=True)
class Direct:
    """The document row stores the owner's table and id."""


@dataclass(frozen=True)
class ViaJoin:
    """Documents are reached through a join model."""

    model: type
    owner_field: str
    document_field: str = 'document'

    @property
    def table_name(self) -> str:
        return unquote_table_name(self.model._meta.db_table)


DIRECT = Direct()

AddressingMode = Union[Direct, ViaJoin]


@dataclass
class SlotConfig:
    """Declared options for one attachment slot of an owner type."""

    name: str = ''
    tag: Optional[str] = None
    multiple: bool = False
    replace: bool = False
    thumbnail: bool = False
    thumbnail_options: dict = field(default_factory=dict)
    unzip: Union[bool, list] = False
    mimetypes: Optional[list] = None
    max_size: Optional[int] = None
    extensions: Optional[list] = None
    via: Any = None
    via_field: Optional[str] = None

    _addressing: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    @property
    def effective_tag(self) -> str:
        return self.tag or self.name

    @property
    def replaces(self) -> bool:
        """True when a new upload supersedes the current documents."""
        return not self.multiple or self.replace

    @property
    def unzip_enabled(self) -> bool:
        # A single slot keeps exactly one document, so archives stay whole
        return self.multiple and bool(self.unzip)

    @property
    def is_via(self) -> bool:
        return self.via is not None

    def merged(self, **overrides) -> "SlotConfig":
        """Return a copy with per-call option overrides applied."""
        return dataclasses.replace(self, **overrides)

    def addressing_for(self, owner_model) -> AddressingMode:
        """Return the addressing mode for owners of ``owner_model``.

        Resolved on first use (join model labels need a ready app registry)
        and cached per owner model.
        """
        if self.via is None:
            return DIRECT

        key = owner_model._meta.label
        mode = self._addressing.get(key)
        if mode is None:
            join_model = self._join_model()
            mode = ViaJoin(
                model=join_model,
                owner_field=find_owner_field(join_model, owner_model, self.via_field),
            )
            self._addressing[key] = mode
        return mode

    def _join_model(self):
        if isinstance(self.via, str):
            try:
                return apps.get_model(self.via)
            except (LookupError, ValueError) as e:
                raise ConfigurationError(f"Slot '{self.name}': unknown join model '{self.via}': {e}")
        return self.via


def find_owner_field(join_model, owner_model, declared: Optional[str] = None) -> str:
    """
    Find the join model's foreign key to the owner.

    Resolution order:
    1. The declared ``via_field``
    2. A field named after the owner model (column ``<model_name>_id``)
    3. The only foreign key pointing at the owner's class
    """
    opts = join_model._meta
    try:
        document_field = opts.get_field('document')
    except FieldDoesNotExist:
        document_field = None
    if document_field is None or not document_field.many_to_one:
        raise ConfigurationError(
            f"Join model {opts.label} must declare a 'document' foreign key"
        )

    foreign_keys = [
        f for f in opts.get_fields()
        if f.many_to_one and f.concrete and f.name != 'document'
    ]

    if declared:
        for f in foreign_keys:
            if f.name == declared:
                return f.name
        raise ConfigurationError(f"Join model {opts.label} has no foreign key '{declared}'")

    conventional = owner_model._meta.model_name
    for f in foreign_keys:
        if f.name == conventional:
            return f.name

    matches = [
        f for f in foreign_keys
        if isinstance(f.related_model, type) and issubclass(owner_model, f.related_model)
    ]
    if len(matches) == 1:
        return matches[0].name

    raise ConfigurationError(
        f"Cannot find the foreign key from {opts.label} to {owner_model._meta.label}; "
        f"set via_field on the slot"
    )


class DocumentSlot:
    """
    Declares an attachment slot on a documentable model.

    Assigning files binds them as pending uploads for the next save.
    Reading returns the documents reconciled by the last save, or a
    rank-ordered queryset of the attached documents.
    """

    def __init__(self, tag=None, **options):
        self.config = SlotConfig(tag=tag, **options)

    def __set_name__(self, owner, name):
        if not self.config.name:
            self.config.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        reconciled = instance.__dict__.get('_documentable_reconciled', {})
        if self.config.name in reconciled:
            return reconciled[self.config.name]

        from .resolver import resolve
        return resolve(instance, self.config.name)

    def __set__(self, instance, value):
        instance.bind_uploads(self.config.name, value)


class DocumentableMixin:
    """
    Capability interface for models that accept document attachments.

    Provides the owner identity (``pk`` and an unquoted table name), the
    pending uploads bound for the current save, and shortcuts to the
    attachment services.

    Slot names are accepted as constructor keywords and bound as pending
    uploads, so ``Product.objects.create(name="Lamp", gallery=[file])``
    attaches the files on insert.
    """

    def __init__(self, *args, **kwargs):
        pending = {}
        if kwargs:
            slots = self.documentable_slots()
            pending = {name: kwargs.pop(name) for name in list(kwargs) if name in slots}
        super().__init__(*args, **kwargs)
        for slot, files in pending.items():
            self.bind_uploads(slot, files)

    @classmethod
    def documentable_slots(cls) -> dict:
        """Return ``{slot name: SlotConfig}`` for every declared slot."""
        slots = {}
        for klass in reversed(cls.__mro__):
            for value in vars(klass).values():
                if isinstance(value, DocumentSlot):
                    slots[value.config.name] = value.config
        return slots

    @classmethod
    def get_slot_config(cls, slot: str) -> Optional[SlotConfig]:
        return cls.documentable_slots().get(slot)

    def documentable_table_name(self) -> str:
        return unquote_table_name(self._meta.db_table)

    # Pending uploads

    def bind_uploads(self, slot: str, files) -> None:
        """Bind uploaded files (or paths) to a slot for the next save."""
        pending = self.__dict__.setdefault('_documentable_pending', {})
        if files is None:
            pending.pop(slot, None)
            return
        if isinstance(files, (File, str, PathLike)):
            files = [files]
        pending[slot] = files

    def pending_uploads(self, slot: str):
        return self.__dict__.get('_documentable_pending', {}).get(slot)

    def clear_pending_uploads(self, slot: str) -> None:
        self.__dict__.get('_documentable_pending', {}).pop(slot, None)

    def set_reconciled(self, slot: str, documents: list) -> None:
        self.__dict__.setdefault('_documentable_reconciled', {})[slot] = documents

    def forget_reconciled(self, slot: Optional[str] = None) -> None:
        """Drop the reconciled list of a slot (or of all slots) so reads resolve again."""
        reconciled = self.__dict__.get('_documentable_reconciled', {})
        if slot is None:
            reconciled.clear()
        else:
            reconciled.pop(slot, None)

    # Shortcuts

    def get_docs(self, slot: Optional[str] = None):
        """Documents of a slot, or every document of this owner."""
        from .resolver import resolve, resolve_all

        if slot is None:
            return resolve_all(self)
        return resolve(self, slot)

    def get_thumbnail(self, slot: str, attrs=None, default=None):
        from .display import get_thumbnail
        return get_thumbnail(self, slot, attrs, default)

    def get_image(self, slot: str, attrs=None, default=None):
        from .display import get_image
        return get_image(self, slot, attrs, default)

    def copy_docs(self, slot: str, target) -> list:
        from .services import copy_slot
        return copy_slot(self, slot, target)

    def delete_docs(self, slot: str) -> int:
        from .services import delete_slot
        return delete_slot(self, slot)

    def upload_file(self, slot: str, file_or_path, **overrides) -> list:
        from .services import upload_file
        return upload_file(self, slot, file_or_path, **overrides)
