"""Document model for slot attachments."""

from django.db import models

from .exceptions import InvalidOwnerReference
from .slots import unquote_table_name


class DocumentQuerySet(models.QuerySet):
    """Custom queryset for Document model."""

    def for_owner(self, table: str, owner_id, tag=None):
        """Return documents stored directly against an owner row."""
        qs = self.filter(
            owner_table=unquote_table_name(table),
            owner_id=str(owner_id),
        )
        if tag is not None:
            qs = qs.filter(tag=tag)
        return qs.in_slot_order()

    def in_slot_order(self):
        return self.order_by('rank', 'id')

    def unreferenced(self):
        """Exclude documents that a join row still points at."""
        qs = self
        for rel in self.model._meta.related_objects:
            if not (rel.one_to_many or rel.one_to_one):
                continue
            column = rel.field.attname
            referenced = rel.related_model._base_manager.filter(
                **{f"{column}__isnull": False}
            ).values(column)
            qs = qs.exclude(pk__in=referenced)
        return qs

    def next_rank(self) -> int:
        """Return the rank following the highest rank in this queryset."""
        highest = self.aggregate(highest=models.Max('rank'))['highest']
        return 0 if highest is None else highest + 1


class Document(models.Model):
    """
    One stored file attached to an owner under a tag.

    In direct mode ``owner_table``/``owner_id`` identify the owner row.
    In via-table mode ``owner_table`` names the join table and ``owner_id``
    stays blank: owners are found through the join rows.

    Usage:
        from django_documentable.resolver import resolve

        # Documents of a slot, ordered by rank
        docs = resolve(product, "gallery")

        # URL of the stored file or of its thumbnail
        docs[0].get_uri(original=False)
    """

    owner_table = models.CharField(
        max_length=255,
        help_text="Unquoted table name of the owner, or of the join table",
    )
    owner_id = models.CharField(
        max_length=255,
        blank=True,
        default='',
        help_text="ID of the owner row (CharField for UUID support)",
    )
    tag = models.CharField(
        max_length=100,
        help_text="Classification grouping documents of one purpose (e.g. AVATAR)",
    )
    rank = models.IntegerField(
        default=0,
        help_text="Order within the slot, ascending",
    )

    # File storage
    file = models.FileField(
        upload_to='documents/%Y/%m/%d/',
        max_length=500,
        help_text="The uploaded file",
    )
    thumbnail = models.FileField(
        upload_to='documents/thumbnails/%Y/%m/%d/',
        max_length=500,
        blank=True,
        default='',
        help_text="Generated thumbnail (images only)",
    )

    # File metadata
    filename = models.CharField(
        max_length=255,
        help_text="Original filename",
    )
    mimetype = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="MIME content type (e.g., image/png)",
    )
    size = models.PositiveBigIntegerField(
        default=0,
        help_text="File size in bytes",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DocumentQuerySet.as_manager()

    class Meta:
        app_label = 'django_documentable'
        ordering = ['rank', 'id']
        indexes = [
            models.Index(fields=['owner_table', 'owner_id', 'tag'], name='documentable_owner_slot_idx'),
            models.Index(fields=['tag'], name='documentable_tag_idx'),
        ]

    def save(self, *args, **kwargs):
        """Normalize the owner reference and refuse documents without one."""
        self.owner_table = unquote_table_name(self.owner_table)
        if not self.owner_table:
            raise InvalidOwnerReference(self.pk)
        if self.owner_id is None:
            self.owner_id = ''
        self.owner_id = str(self.owner_id)
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False, compact_ranks=True):
        """
        Delete the document.

        With ``compact_ranks`` the remaining documents of the same direct
        slot are renumbered 0..n-1. Pass False when the whole slot is being
        deleted.
        """
        result = super().delete(using=using, keep_parents=keep_parents)
        if compact_ranks and self.owner_id:
            siblings = Document.objects.for_owner(self.owner_table, self.owner_id, self.tag)
            for rank, sibling_id in enumerate(siblings.values_list('pk', flat=True)):
                Document.objects.filter(pk=sibling_id).exclude(rank=rank).update(rank=rank)
        return result

    def __str__(self):
        return f"{self.filename} ({self.tag})"

    @property
    def is_image(self) -> bool:
        return self.mimetype.startswith('image/')

    @property
    def is_direct(self) -> bool:
        return bool(self.owner_id)

    def get_uri(self, original: bool = True):
        """
        Return the URL of the stored file, or of its thumbnail.

        Returns None when the requested variant does not exist.
        """
        stored = self.file if original else self.thumbnail
        if not stored:
            return None
        return stored.url


def discard_stored_file(field_name: str, name: str, storage) -> bool:
    """
    Delete a stored file unless another document still references it.

    Copies share the stored file of their source, so the file goes only
    with its last document.
    """
    if not name or Document.objects.filter(**{field_name: name}).exists():
        return False
    storage.delete(name)
    return True
