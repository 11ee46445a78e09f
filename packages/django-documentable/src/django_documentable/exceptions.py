"""Exceptions for django-documentable."""


class DocumentableError(Exception):
    """Base exception for documentable errors."""
    pass


class ConfigurationError(DocumentableError):
    """Raised when a slot, uploader or provider is misconfigured."""
    pass


class InvalidSubmissionError(DocumentableError):
    """Raised when the files submitted for a slot are not a list."""

    def __init__(self, slot: str, value):
        self.slot = slot
        self.value = value
        super().__init__(
            f"Files submitted for slot '{slot}' must be a list, got {type(value).__name__}"
        )


class UploadError(DocumentableError):
    """Raised when a single file cannot be stored.

    ``documents`` holds what was stored before the failure (archive members).
    """

    def __init__(self, filename: str, reason: str, documents=None):
        self.filename = filename
        self.reason = reason
        self.documents = list(documents or [])
        super().__init__(f"Cannot upload '{filename}': {reason}")


class NotDocumentableError(DocumentableError):
    """Raised when a copy target does not support attachments."""

    def __init__(self, target, reason: str = "it is not documentable"):
        self.target = target
        super().__init__(
            f"{type(target).__name__} cannot receive documents: {reason}"
        )


class InvalidOwnerReference(DocumentableError):
    """Raised when saving a document that has no owner reference."""

    def __init__(self, document_id=None):
        self.document_id = document_id
        super().__init__(
            "Documents must reference an owner table. "
            "Attach documents through an uploader rather than creating them directly."
        )


class ReconciliationError(DocumentableError):
    """Raised after an owner save when one or more slots failed to reconcile.

    Documents uploaded before the failure are not rolled back.
    """

    def __init__(self, results):
        self.results = results
        failed = [r for r in results if r.failed]
        message = "Reconciliation failed: " + "; ".join(
            f"{r.slot}: {r.error}" for r in failed
        )
        super().__init__(message)
