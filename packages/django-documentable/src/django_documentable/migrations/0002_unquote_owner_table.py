# Generated manually for data migration

import re

from django.db import migrations
from django.db.models import Q


DECORATION_RE = re.compile(r'[`"\[\]{}%]')


def unquote_owner_tables(apps, schema_editor):
    """
    Strip quoting and placeholder characters from owner_table.

    Rows written with a decorated table name (e.g. "{{%product}}") are never
    matched by owner lookups, which compare against the unquoted name.
    """
    Document = apps.get_model("django_documentable", "Document")

    decorated = Q()
    for char in '`"[]{}%':
        decorated |= Q(owner_table__contains=char)

    for doc in Document.objects.filter(decorated).only("pk", "owner_table").iterator():
        Document.objects.filter(pk=doc.pk).update(
            owner_table=DECORATION_RE.sub("", doc.owner_table)
        )


class Migration(migrations.Migration):

    dependencies = [
        ("django_documentable", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            unquote_owner_tables,
            migrations.RunPython.noop,
        ),
    ]
