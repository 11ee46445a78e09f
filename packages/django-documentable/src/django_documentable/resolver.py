"""Resolve the documents attached to an owner.

Every read of "what is attached" goes through this module: display,
reconciliation, copy and cascade delete. All functions return lazy,
rank-ordered querysets and never write.
"""

from typing import Optional

from django.db.models import Q

from .models import Document
from .slots import SlotConfig, ViaJoin


def slot_config(owner, slot: Optional[str]) -> Optional[SlotConfig]:
    """Return the owner's config for a slot, or None if it has none."""
    get_config = getattr(owner, 'get_slot_config', None)
    if get_config is None or slot is None:
        return None
    return get_config(slot)


def join_rows(owner, mode: ViaJoin):
    """Return the join rows linking an owner to its documents."""
    return mode.model._default_manager.filter(**{mode.owner_field: owner.pk})


def owner_predicate(owner, config: SlotConfig) -> Q:
    """Return the untagged predicate selecting an owner's documents for a slot."""
    mode = config.addressing_for(type(owner))
    if isinstance(mode, ViaJoin):
        return Q(pk__in=join_rows(owner, mode).values(mode.document_field))
    return Q(
        owner_table=owner.documentable_table_name(),
        owner_id=str(owner.pk),
    )


def resolve(owner, slot: str):
    """
    Return the documents attached to ``owner`` in ``slot``, ordered by rank.

    Unknown slots (and unsaved owners) resolve to an empty queryset so that
    generic code can ask any owner for any slot.
    """
    config = slot_config(owner, slot)
    if config is None or owner.pk is None:
        return Document.objects.none()

    qs = Document.objects.filter(owner_predicate(owner, config))
    tag = config.effective_tag
    if tag is not None:
        qs = qs.filter(tag=tag)
    return qs.in_slot_order()


def resolve_all(owner):
    """Return every document attached to ``owner``, whatever its tag or slot."""
    if owner.pk is None or not hasattr(owner, 'documentable_slots'):
        return Document.objects.none()

    predicate = Q(
        owner_table=owner.documentable_table_name(),
        owner_id=str(owner.pk),
    )
    for config in owner.documentable_slots().values():
        if config.is_via:
            predicate |= owner_predicate(owner, config)
    return Document.objects.filter(predicate).in_slot_order()
