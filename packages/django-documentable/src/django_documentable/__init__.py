"""Django documentable - attach files to any model under named slots."""

__version__ = "0.1.0"

__all__ = [
    "Document",
    "DocumentSlot",
    "DocumentableMixin",
    "SlotConfig",
    "ReconcileResult",
]


def __getattr__(name):
    """Lazy imports to prevent AppRegistryNotReady errors."""
    if name == "Document":
        from .models import Document
        return Document
    if name in ("DocumentSlot", "DocumentableMixin", "SlotConfig"):
        from . import slots
        return getattr(slots, name)
    if name == "ReconcileResult":
        from .reconciler import ReconcileResult
        return ReconcileResult
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
