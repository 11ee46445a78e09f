"""Lifecycle hooks binding owners' persistence events to the attachment engine."""
import logging

from django.apps import apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save, pre_delete
from django.dispatch import receiver

from .exceptions import ReconciliationError
from .models import Document, discard_stored_file
from .reconciler import reconcile
from .services import delete_owner_documents, owner_document_ids
from .slots import DocumentableMixin

logger = logging.getLogger(__name__)


def reconcile_owner(sender, instance, raw=False, **kwargs):
    """After create/update, attach the files bound to the owner's slots."""
    if raw:
        return
    results = reconcile(instance)
    failed = [r for r in results if r.failed]
    if failed:
        raise ReconciliationError(results) from failed[0].error


def capture_owner_documents(sender, instance, **kwargs):
    # Join rows may be removed by the ORM cascade before post_delete
    instance._documentable_cascade = owner_document_ids(instance)


def cascade_owner_documents(sender, instance, **kwargs):
    """After the owner row is gone, delete the documents attached to it."""
    document_ids = instance.__dict__.pop('_documentable_cascade', None)
    delete_owner_documents(instance, document_ids)


def connect_owner_signals():
    """Connect the lifecycle hooks for every documentable model."""
    for model in apps.get_models():
        if not issubclass(model, DocumentableMixin):
            continue
        label = model._meta.label_lower
        post_save.connect(reconcile_owner, sender=model, dispatch_uid=f"documentable_save_{label}")
        pre_delete.connect(capture_owner_documents, sender=model, dispatch_uid=f"documentable_capture_{label}")
        post_delete.connect(cascade_owner_documents, sender=model, dispatch_uid=f"documentable_cascade_{label}")
        logger.debug(f"Documentable hooks connected for {label}")


@receiver(post_delete, sender=Document)
def remove_document_files(sender, instance, **kwargs):
    """Once the delete commits, drop stored files no other document uses."""
    for field_name in ('file', 'thumbnail'):
        stored = getattr(instance, field_name)
        if not stored.name:
            continue
        transaction.on_commit(
            lambda field_name=field_name, name=stored.name, storage=stored.storage:
                discard_stored_file(field_name, name, storage)
        )
