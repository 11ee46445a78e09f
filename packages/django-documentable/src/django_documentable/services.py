"""Slot services: copy, delete, reorder and cascade."""
import logging
from typing import Optional

from django.apps import apps
from django.core.exceptions import ValidationError
from django.db import transaction

from . import conf
from .exceptions import NotDocumentableError
from .models import Document, discard_stored_file
from .resolver import join_rows, owner_predicate, resolve, resolve_all, slot_config
from .slots import DocumentableMixin, SlotConfig, ViaJoin, unquote_table_name
from .thumbnails import make_thumbnail

logger = logging.getLogger(__name__)


def detach_documents(owner, config: SlotConfig, document_ids) -> int:
    """
    Remove documents from an owner's slot.

    In via-table mode the owner's join rows go first; a document still
    joined to another owner is kept. Documents are deleted one by one so
    per-row cascades and file cleanup run.

    Returns:
        Number of deleted documents
    """
    owner.forget_reconciled(config.name)
    document_ids = list(document_ids)
    if not document_ids:
        return 0

    mode = config.addressing_for(type(owner))
    if isinstance(mode, ViaJoin):
        join_rows(owner, mode).filter(**{f"{mode.document_field}__in": document_ids}).delete()

    deleted = 0
    for doc in Document.objects.filter(pk__in=document_ids).unreferenced():
        doc.delete(compact_ranks=False)
        deleted += 1
    return deleted


def owner_document_ids(owner) -> list:
    """Snapshot the ids of every document attached to an owner."""
    return list(resolve_all(owner).values_list('pk', flat=True))


def delete_owner_documents(owner, document_ids: Optional[list] = None) -> int:
    """
    Delete the documents of an owner whose row is already gone.

    Args:
        owner: The deleted owner (its pk is still set)
        document_ids: Ids captured before the delete; resolved now if None

    Returns:
        Number of deleted documents
    """
    if document_ids is None:
        document_ids = owner_document_ids(owner)
    owner.forget_reconciled()

    for config in owner.documentable_slots().values():
        if config.is_via:
            join_rows(owner, config.addressing_for(type(owner))).delete()

    deleted = 0
    for doc in Document.objects.filter(pk__in=document_ids).unreferenced():
        doc.delete(compact_ranks=False)
        deleted += 1

    if deleted:
        logger.info(f"Deleted {deleted} documents of {type(owner).__name__} {owner.pk}")
    return deleted


def delete_slot(owner, slot: str) -> int:
    """Delete every document of an owner's slot."""
    config = slot_config(owner, slot)
    if config is None:
        return 0
    return detach_documents(owner, config, resolve(owner, slot).values_list('pk', flat=True))


def _duplicate(doc: Document, owner_table: str, owner_id: str, tag: str, rank: int) -> Document:
    return Document.objects.create(
        owner_table=owner_table,
        owner_id=owner_id,
        tag=tag,
        rank=rank,
        file=doc.file.name,
        thumbnail=doc.thumbnail.name,
        filename=doc.filename,
        mimetype=doc.mimetype,
        size=doc.size,
        metadata=dict(doc.metadata),
    )


@transaction.atomic
def copy_slot(source, slot: str, target) -> list[Document]:
    """
    Attach the documents of ``source``'s slot to ``target``.

    The target's own slot config is used when it declares the slot, else
    the source's. Direct mode duplicates each row (the stored file is
    shared). Via-table mode joins the same document to the target when the
    tags agree, otherwise it joins a duplicate.

    A single target slot receives only the first document, which replaces
    the one it held.

    Returns:
        Documents now attached to the target, in source order

    Raises:
        NotDocumentableError: If target does not accept documents or is unsaved
    """
    if not isinstance(target, DocumentableMixin):
        raise NotDocumentableError(target)
    if target.pk is None:
        raise NotDocumentableError(target, "it must be saved first")

    source_config = slot_config(source, slot)
    if source_config is None:
        return []
    config = target.get_slot_config(slot) or source_config

    mode = config.addressing_for(type(target))
    tag = config.effective_tag
    current = Document.objects.filter(owner_predicate(target, config), tag=tag)
    previous = list(current.values_list('pk', flat=True))
    rank = current.next_rank()

    documents = list(resolve(source, slot))
    if not config.multiple:
        documents = documents[:1]

    attached = []
    for doc in documents:
        if isinstance(mode, ViaJoin):
            if doc.is_direct or doc.tag != tag:
                doc = _duplicate(doc, mode.table_name, '', tag, rank)
            mode.model._default_manager.get_or_create(
                **{mode.document_field: doc, mode.owner_field: target}
            )
        else:
            doc = _duplicate(doc, target.documentable_table_name(), str(target.pk), tag, rank)
        attached.append(doc)
        rank += 1

    if attached and not config.multiple:
        kept = {doc.pk for doc in attached}
        detach_documents(target, config, [pk for pk in previous if pk not in kept])
    target.forget_reconciled(config.name)

    logger.info(
        f"Copied {len(attached)} documents of slot '{slot}' from "
        f"{type(source).__name__} {source.pk} to {type(target).__name__} {target.pk}"
    )
    return attached


def upload_file(owner, slot: str, file_or_path, **overrides) -> list[Document]:
    """
    Attach one file to a slot outside of a save.

    Follows the slot's cardinality like a save would. Option overrides are
    merged over the slot config.

    Raises:
        UploadError: If the file cannot be stored
    """
    from .reconciler import reconcile_slot

    result = reconcile_slot(owner, slot, [file_or_path], **overrides)
    if result.failed:
        raise result.error
    return result.uploaded


@transaction.atomic
def reorder_slot(owner, slot: str, ordered_ids: list) -> None:
    """
    Set ranks from list position.

    Listed documents get ranks 0..k-1; the rest of the slot follows from k
    in its current order. Ids that are not attached to the slot are ignored.
    """
    current = list(resolve(owner, slot).values_list('pk', flat=True))
    if not current:
        return
    attached = {str(pk): pk for pk in current}

    listed = []
    for document_id in ordered_ids:
        pk = attached.get(str(document_id))
        if pk is not None and pk not in listed:
            listed.append(pk)

    order = listed + [pk for pk in current if pk not in listed]
    for rank, pk in enumerate(order):
        Document.objects.filter(pk=pk).exclude(rank=rank).update(rank=rank)
    owner.forget_reconciled(slot)


def regenerate_thumbnails(owner, slot: str) -> int:
    """
    Rebuild the thumbnails of a slot's image documents.

    Slots without thumbnails enabled are left alone. Failures are logged
    and skipped.

    Returns:
        Number of regenerated thumbnails
    """
    config = slot_config(owner, slot)
    if config is None or not config.thumbnail:
        return 0

    options = conf.thumbnail_options(config.thumbnail_options)
    regenerated = 0
    for doc in resolve(owner, slot):
        if not doc.is_image:
            continue
        previous = doc.thumbnail.name
        try:
            with doc.file.open('rb') as handle:
                thumb = make_thumbnail(handle, doc.filename, options)
            doc.thumbnail.save(thumb.name, thumb, save=False)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to regenerate thumbnail for document {doc.pk}: {e}")
            continue
        doc.save(update_fields=['thumbnail', 'updated_at'])
        if previous and previous != doc.thumbnail.name:
            storage = doc.thumbnail.storage
            transaction.on_commit(lambda name=previous: discard_stored_file('thumbnail', name, storage))
        regenerated += 1
    owner.forget_reconciled(slot)
    return regenerated


def bind_request_files(owner, files, prefix: Optional[str] = None) -> list[str]:
    """
    Bind uploaded files (e.g. ``request.FILES``) to an owner's slots.

    Keys are slot names, or ``<prefix>-<slot>`` with a form prefix.

    Returns:
        Names of the slots that received files
    """
    bound = []
    for slot in owner.documentable_slots():
        key = f"{prefix}-{slot}" if prefix else slot
        if hasattr(files, 'getlist'):
            uploaded = files.getlist(key)
        else:
            uploaded = files.get(key)
        if uploaded:
            owner.bind_uploads(slot, list(uploaded) if isinstance(uploaded, (list, tuple)) else [uploaded])
            bound.append(slot)
    return bound


def find_orphan_documents() -> list[Document]:
    """
    Return documents whose owner no longer exists.

    A direct document is orphaned when its owner table is unknown or its
    owner row is gone. A via-table document is orphaned when no join row
    points at it.
    """
    models_by_table = {
        unquote_table_name(model._meta.db_table): model
        for model in apps.get_models()
    }

    orphans = list(Document.objects.filter(owner_id='').unreferenced())

    direct = Document.objects.exclude(owner_id='').order_by('owner_table', 'pk')
    by_table = {}
    for doc in direct:
        by_table.setdefault(doc.owner_table, []).append(doc)

    for table, docs in by_table.items():
        model = models_by_table.get(table)
        if model is None:
            orphans.extend(docs)
            continue

        pk_field = model._meta.pk
        valid = {}
        for doc in docs:
            try:
                valid.setdefault(pk_field.to_python(doc.owner_id), []).append(doc)
            except ValidationError:
                orphans.append(doc)

        existing = set(model._base_manager.filter(pk__in=list(valid)).values_list('pk', flat=True))
        for owner_pk, owner_docs in valid.items():
            if owner_pk not in existing:
                orphans.extend(owner_docs)

    return orphans
