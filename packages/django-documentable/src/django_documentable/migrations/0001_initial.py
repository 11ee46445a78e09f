# Generated manually for standalone django-documentable package

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Document",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "owner_table",
                    models.CharField(
                        help_text="Unquoted table name of the owner, or of the join table",
                        max_length=255,
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="ID of the owner row (CharField for UUID support)",
                        max_length=255,
                    ),
                ),
                (
                    "tag",
                    models.CharField(
                        help_text="Classification grouping documents of one purpose (e.g. AVATAR)",
                        max_length=100,
                    ),
                ),
                (
                    "rank",
                    models.IntegerField(default=0, help_text="Order within the slot, ascending"),
                ),
                (
                    "file",
                    models.FileField(
                        help_text="The uploaded file",
                        max_length=500,
                        upload_to="documents/%Y/%m/%d/",
                    ),
                ),
                (
                    "thumbnail",
                    models.FileField(
                        blank=True,
                        default="",
                        help_text="Generated thumbnail (images only)",
                        max_length=500,
                        upload_to="documents/thumbnails/%Y/%m/%d/",
                    ),
                ),
                (
                    "filename",
                    models.CharField(help_text="Original filename", max_length=255),
                ),
                (
                    "mimetype",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="MIME content type (e.g., image/png)",
                        max_length=100,
                    ),
                ),
                (
                    "size",
                    models.PositiveBigIntegerField(default=0, help_text="File size in bytes"),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["rank", "id"],
                "indexes": [
                    models.Index(
                        fields=["owner_table", "owner_id", "tag"],
                        name="documentable_owner_slot_idx",
                    ),
                    models.Index(fields=["tag"], name="documentable_tag_idx"),
                ],
            },
        ),
    ]
