"""
Management command to purge orphaned documents.

Documents reference their owners without foreign keys, so rows can outlive
their owner when it is removed outside the ORM (raw SQL, bulk deletes that
skip signals). This command finds and deletes them.
"""

import json

from django.core.management.base import BaseCommand

from django_documentable.services import find_orphan_documents


class Command(BaseCommand):
    help = "Delete documents whose owner row or join rows no longer exist"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report orphans without deleting them",
        )
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        output_format = options["format"]

        orphans = find_orphan_documents()
        report = [
            {
                "id": doc.pk,
                "owner_table": doc.owner_table,
                "owner_id": doc.owner_id,
                "tag": doc.tag,
                "filename": doc.filename,
            }
            for doc in orphans
        ]

        if not dry_run:
            for doc in orphans:
                doc.delete(compact_ranks=False)

        if output_format == "json":
            self.stdout.write(json.dumps({
                "orphans": len(report),
                "deleted": 0 if dry_run else len(report),
                "documents": report,
            }, indent=2))
            return

        for entry in report:
            self.stdout.write(
                f"{'ORPHAN' if dry_run else 'DELETED'}: #{entry['id']} {entry['filename']} "
                f"({entry['owner_table']}:{entry['owner_id'] or '-'} {entry['tag']})"
            )

        if not report:
            self.stdout.write(self.style.SUCCESS("No orphaned documents"))
        elif dry_run:
            self.stdout.write(self.style.WARNING(f"{len(report)} orphaned documents (dry run)"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Deleted {len(report)} orphaned documents"))
