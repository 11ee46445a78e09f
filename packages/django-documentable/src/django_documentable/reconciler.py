"""Attachment reconciliation: bring a slot up to date with submitted files."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import transaction

from . import conf
from .exceptions import InvalidSubmissionError, UploadError
from .resolver import resolve, slot_config
from .services import detach_documents

logger = logging.getLogger(__name__)

COMMITTED = "committed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ReconcileResult:
    """Result of reconciling one slot."""

    slot: str
    status: str
    documents: list = field(default_factory=list)
    uploaded: list = field(default_factory=list)
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, slot: str, documents: list, uploaded: list) -> "ReconcileResult":
        return cls(slot=slot, status=COMMITTED, documents=documents, uploaded=uploaded)

    @classmethod
    def skip(cls, slot: str) -> "ReconcileResult":
        return cls(slot=slot, status=SKIPPED)

    @classmethod
    def fail(cls, slot: str, error: Exception, documents: list, uploaded: list) -> "ReconcileResult":
        return cls(slot=slot, status=FAILED, documents=documents, uploaded=uploaded, error=error)

    @property
    def committed(self) -> bool:
        return self.status == COMMITTED

    @property
    def skipped(self) -> bool:
        return self.status == SKIPPED

    @property
    def failed(self) -> bool:
        return self.status == FAILED


def lock_owner_row(owner) -> None:
    """Hold the owner's row lock until the surrounding transaction ends."""
    list(
        type(owner)._base_manager
        .select_for_update()
        .filter(pk=owner.pk)
        .values_list('pk', flat=True)
    )


def reconcile_slot(owner, slot: str, files=None, uploader=None, **overrides) -> ReconcileResult:
    """
    Attach submitted files to an owner's slot.

    Files are uploaded in submission order; a single slot keeps only the
    first one. Once every upload succeeded, a replacing slot (single, or
    ``replace=True``) deletes the documents it held before the call.

    An UploadError stops the remaining files and returns a failed result.
    Documents uploaded before the error stay attached.

    Args:
        owner: Saved documentable model instance
        slot: Slot name
        files: Files or paths to attach; defaults to the owner's pending uploads
        uploader: Upload collaborator; defaults to DOCUMENTABLE_UPLOADER
        **overrides: Per-call slot option overrides

    Returns:
        ReconcileResult (skipped when the slot is unknown or has no files)

    Raises:
        InvalidSubmissionError: If ``files`` is not a list
    """
    config = slot_config(owner, slot)
    if config is None:
        logger.debug(f"No slot '{slot}' on {type(owner).__name__}, skipping")
        return ReconcileResult.skip(slot)
    if overrides:
        config = config.merged(**overrides)

    if files is None:
        files = owner.pending_uploads(slot)
    if files is None:
        return ReconcileResult.skip(slot)
    if not isinstance(files, (list, tuple)):
        raise InvalidSubmissionError(slot, files)
    if not files:
        return ReconcileResult.skip(slot)

    uploader = uploader or conf.get_uploader()
    tag = config.effective_tag
    uploaded = []
    error = None

    with transaction.atomic():
        if conf.lock_owner():
            lock_owner_row(owner)

        previous = list(resolve(owner, slot).values_list('pk', flat=True))
        try:
            for file in files:
                uploaded.extend(uploader.upload(file, owner, tag, config))
                if not config.multiple:
                    # Extra files for a single slot are discarded
                    break
        except UploadError as e:
            # Archive members stored before the failing one stay attached
            uploaded.extend(e.documents)
            error = e
        else:
            if config.replaces:
                kept = {doc.pk for doc in uploaded}
                detach_documents(owner, config, [pk for pk in previous if pk not in kept])

    owner.clear_pending_uploads(slot)
    documents = list(resolve(owner, slot))
    owner.set_reconciled(slot, documents)

    if error is not None:
        logger.warning(
            f"Upload failed for {type(owner).__name__} {owner.pk} slot '{slot}' "
            f"after {len(uploaded)} documents: {error}"
        )
        return ReconcileResult.fail(slot, error, documents, uploaded)

    logger.info(
        f"Reconciled {type(owner).__name__} {owner.pk} slot '{slot}': "
        f"{len(uploaded)} uploaded, {len(documents)} attached"
    )
    return ReconcileResult.ok(slot, documents, uploaded)


def reconcile(owner, uploader=None) -> list[ReconcileResult]:
    """
    Reconcile every declared slot of an owner that has pending uploads.

    With DOCUMENTABLE_FIRST_SLOT_ONLY, stops after the first slot that
    had files.
    """
    results = []
    for slot in owner.documentable_slots():
        result = reconcile_slot(owner, slot, uploader=uploader)
        results.append(result)
        if conf.first_slot_only() and not result.skipped:
            break
    return results
