"""Tests for slot services: copy, delete, reorder and cascade."""
from unittest import mock

import pytest
from django.db import connection
from django.utils.datastructures import MultiValueDict

from django_documentable.exceptions import NotDocumentableError, UploadError
from django_documentable.models import Document
from django_documentable.reconciler import reconcile_slot
from django_documentable.resolver import resolve, resolve_all
from django_documentable.services import (
    bind_request_files,
    copy_slot,
    delete_owner_documents,
    delete_slot,
    find_orphan_documents,
    regenerate_thumbnails,
    reorder_slot,
    upload_file,
)
from tests.conftest import make_image, make_upload
from tests.testapp.models import Product, ProductDocument


def filenames(documents):
    return [d.filename for d in documents]


@pytest.mark.django_db
class TestCopySlot:
    """Tests for copying a slot's documents to another owner."""

    def test_direct_copy_appends_to_target(self, product, other_product):
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt")])
        reconcile_slot(other_product, "gallery", [make_upload("own.txt")])

        copied = copy_slot(product, "gallery", other_product)

        assert filenames(copied) == ["a.txt", "b.txt"]
        assert filenames(resolve(other_product, "gallery")) == ["own.txt", "a.txt", "b.txt"]
        assert [d.rank for d in resolve(other_product, "gallery")] == [0, 1, 2]

    def test_direct_copy_leaves_source_untouched(self, product, other_product):
        reconcile_slot(product, "gallery", [make_upload("a.txt")])
        source_ids = list(resolve(product, "gallery").values_list("pk", flat=True))

        copied = copy_slot(product, "gallery", other_product)

        assert list(resolve(product, "gallery").values_list("pk", flat=True)) == source_ids
        assert copied[0].pk not in source_ids
        assert copied[0].owner_id == str(other_product.pk)

    def test_copy_uses_target_tag(self, product, supplier):
        """The avatar slot is tagged AVATAR on products, LOGO on suppliers."""
        reconcile_slot(product, "avatar", [make_image()])

        [copied] = copy_slot(product, "avatar", supplier)

        assert copied.tag == "LOGO"
        assert copied.owner_table == "testapp_supplier"
        assert list(resolve(supplier, "avatar")) == [copied]

    def test_via_copy_shares_document(self, product, other_product):
        reconcile_slot(product, "manuals", [make_upload("m.txt")])
        [original] = resolve(product, "manuals")

        [copied] = copy_slot(product, "manuals", other_product)

        assert copied.pk == original.pk
        assert list(resolve(other_product, "manuals")) == [original]
        assert ProductDocument.objects.filter(document=original).count() == 2

    def test_via_copy_is_idempotent(self, product, other_product):
        reconcile_slot(product, "manuals", [make_upload("m.txt")])

        copy_slot(product, "manuals", other_product)
        copy_slot(product, "manuals", other_product)

        assert other_product.productdocument_set.count() == 1

    def test_via_copy_with_different_tag_duplicates(self, product, supplier):
        """Join rows cannot retag a document, so a duplicate is joined."""
        reconcile_slot(product, "manuals", [make_upload("m.txt")])
        [original] = resolve(product, "manuals")

        [copied] = copy_slot(product, "manuals", supplier)

        assert copied.pk != original.pk
        assert copied.tag == "MANUAL"
        assert copied.owner_table == "testapp_suppliermanual"
        assert copied.owner_id == ""
        assert list(resolve(supplier, "manuals")) == [copied]
        assert list(resolve(product, "manuals")) == [original]

    def test_direct_to_via_duplicates(self, product, supplier):
        """Direct documents are never joined, a via-owned copy is made."""
        reconcile_slot(supplier, "catalog", [make_upload("c.txt")])
        [original] = resolve(supplier, "catalog")

        [copied] = copy_slot(supplier, "catalog", product)

        assert copied.pk != original.pk
        assert copied.tag == "CATALOG"
        assert copied.file.name == original.file.name
        assert list(resolve(product, "catalog")) == [copied]
        assert product.productdocument_set.filter(document=copied).exists()

    def test_via_to_direct_duplicates(self, product, supplier):
        reconcile_slot(product, "catalog", [make_upload("c.txt")])

        [copied] = copy_slot(product, "catalog", supplier)

        assert copied.owner_table == "testapp_supplier"
        assert copied.owner_id == str(supplier.pk)
        assert copied.tag == "catalog"

    def test_non_documentable_target(self, product, category):
        reconcile_slot(product, "gallery", [make_upload("a.txt")])

        with pytest.raises(NotDocumentableError):
            copy_slot(product, "gallery", category)

        assert filenames(resolve(product, "gallery")) == ["a.txt"]
        assert Document.objects.count() == 1

    def test_unsaved_target(self, product):
        """Copies need the target's id, so unsaved targets are refused."""
        reconcile_slot(product, "gallery", [make_upload("a.txt")])

        with pytest.raises(NotDocumentableError):
            copy_slot(product, "gallery", Product(name="Draft"))

        assert Document.objects.count() == 1

    def test_single_target_receives_first_document(self, product, supplier):
        """Supplier.banner is single, Product.banner multiple."""
        reconcile_slot(product, "banner", [make_upload("b1.txt"), make_upload("b2.txt")])

        copied = copy_slot(product, "banner", supplier)

        assert filenames(copied) == ["b1.txt"]
        assert filenames(resolve(supplier, "banner")) == ["b1.txt"]

    def test_single_target_document_is_replaced(self, product, supplier):
        reconcile_slot(supplier, "banner", [make_upload("old.txt")])
        [old] = resolve(supplier, "banner")
        reconcile_slot(product, "banner", [make_upload("new.txt")])

        copy_slot(product, "banner", supplier)

        assert filenames(resolve(supplier, "banner")) == ["new.txt"]
        assert not Document.objects.filter(pk=old.pk).exists()

    def test_target_slot_attribute_refreshed(self, product, other_product):
        other_product.gallery = [make_upload("own.txt")]
        other_product.save()
        reconcile_slot(product, "gallery", [make_upload("a.txt")])

        copy_slot(product, "gallery", other_product)

        assert filenames(other_product.gallery) == ["own.txt", "a.txt"]

    def test_unknown_slot_copies_nothing(self, product, other_product):
        assert copy_slot(product, "nonexistent", other_product) == []

    def test_owner_shortcut(self, product, other_product):
        reconcile_slot(product, "gallery", [make_upload("a.txt")])
        product.copy_docs("gallery", other_product)
        assert filenames(other_product.get_docs("gallery")) == ["a.txt"]


@pytest.mark.django_db
class TestDeleteSlot:

    def test_deletes_slot_documents(self, product):
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt")])
        reconcile_slot(product, "avatar", [make_image()])

        assert delete_slot(product, "gallery") == 2

        assert resolve(product, "gallery").count() == 0
        assert resolve(product, "avatar").count() == 1

    def test_via_slot_keeps_shared_documents(self, product, other_product):
        reconcile_slot(product, "manuals", [make_upload("m.txt")])
        copy_slot(product, "manuals", other_product)

        assert product.delete_docs("manuals") == 0

        assert resolve(product, "manuals").count() == 0
        assert resolve(other_product, "manuals").count() == 1

    def test_unknown_slot(self, product):
        assert delete_slot(product, "nonexistent") == 0

    def test_slot_attribute_empty_after_delete(self, product):
        """Deleted documents are not served from the last reconciled list."""
        product.upload_file("gallery", make_upload("a.txt"))
        assert filenames(product.gallery) == ["a.txt"]

        product.delete_docs("gallery")

        assert list(product.gallery) == []


@pytest.mark.django_db
class TestCascadeDelete:
    """Deleting an owner deletes its documents."""

    def test_direct_documents_deleted(self, product, other_product):
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt")])
        reconcile_slot(product, "avatar", [make_image()])
        reconcile_slot(other_product, "gallery", [make_upload("keep.txt")])

        product.delete()

        assert filenames(Document.objects.all()) == ["keep.txt"]

    def test_via_documents_deleted(self, product):
        reconcile_slot(product, "manuals", [make_upload("m1.txt"), make_upload("m2.txt")])

        product.delete()

        assert Document.objects.count() == 0
        assert ProductDocument.objects.count() == 0

    def test_shared_via_documents_kept(self, product, other_product):
        reconcile_slot(product, "manuals", [make_upload("m.txt")])
        copy_slot(product, "manuals", other_product)

        product.delete()

        assert filenames(resolve(other_product, "manuals")) == ["m.txt"]

    def test_owner_without_documents(self, product):
        product.delete()
        assert Document.objects.count() == 0

    def test_delete_owner_documents_resolves_when_not_captured(self, product):
        reconcile_slot(product, "gallery", [make_upload("a.txt")])
        assert delete_owner_documents(product) == 1
        assert resolve_all(product).count() == 0


@pytest.mark.django_db
class TestReorderSlot:

    def test_assigns_ranks_by_position(self, product):
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt"), make_upload("c.txt")])
        a, b, c = resolve(product, "gallery")

        reorder_slot(product, "gallery", [c.pk, a.pk, b.pk])

        assert filenames(resolve(product, "gallery")) == ["c.txt", "a.txt", "b.txt"]

    def test_ignores_foreign_ids(self, product, other_product):
        reconcile_slot(product, "gallery", [make_upload("a.txt")])
        reconcile_slot(other_product, "gallery", [make_upload("x.txt")])
        [foreign] = resolve(other_product, "gallery")

        reorder_slot(product, "gallery", [foreign.pk])

        foreign.refresh_from_db()
        assert foreign.rank == 0
        assert resolve(product, "gallery").get().rank == 0

    def test_partial_list_keeps_ranks_unique(self, product):
        """Unlisted documents follow the listed ones in their previous order."""
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt"), make_upload("c.txt")])
        a, b, c = resolve(product, "gallery")

        reorder_slot(product, "gallery", [c.pk])

        ranked = [(d.filename, d.rank) for d in resolve(product, "gallery")]
        assert ranked == [("c.txt", 0), ("a.txt", 1), ("b.txt", 2)]

    def test_string_ids_and_duplicates(self, product):
        reconcile_slot(product, "gallery", [make_upload("a.txt"), make_upload("b.txt")])
        a, b = resolve(product, "gallery")

        reorder_slot(product, "gallery", [str(b.pk), b.pk, str(a.pk)])

        assert [(d.filename, d.rank) for d in resolve(product, "gallery")] == [("b.txt", 0), ("a.txt", 1)]

    def test_slot_attribute_follows_new_order(self, product):
        product.gallery = [make_upload("a.txt"), make_upload("b.txt")]
        product.save()
        a, b = product.gallery

        reorder_slot(product, "gallery", [b.pk, a.pk])

        assert filenames(product.gallery) == ["b.txt", "a.txt"]


@pytest.mark.django_db
class TestUploadFile:

    def test_appends_to_multiple_slot(self, product):
        product.upload_file("gallery", make_upload("a.txt"))
        product.upload_file("gallery", make_upload("b.txt"))
        assert filenames(resolve(product, "gallery")) == ["a.txt", "b.txt"]

    def test_replaces_single_slot(self, product):
        upload_file(product, "avatar", make_image("one.png"))
        upload_file(product, "avatar", make_image("two.png"))
        assert filenames(resolve(product, "avatar")) == ["two.png"]

    def test_overrides_merged(self, product):
        """Per-call options override the declared slot options."""
        with pytest.raises(UploadError):
            upload_file(product, "gallery", make_upload("big.txt", b"x" * 100), max_size=10)
        assert resolve(product, "gallery").count() == 0

    def test_failure_raises(self, product):
        uploader = mock.Mock()
        uploader.upload.side_effect = UploadError("a.txt", "storage offline")

        with mock.patch("django_documentable.conf.get_uploader", return_value=uploader):
            with pytest.raises(UploadError, match="storage offline"):
                upload_file(product, "gallery", make_upload("a.txt"))


@pytest.mark.django_db
class TestRegenerateThumbnails:

    def test_rebuilds_thumbnails(self, product):
        reconcile_slot(product, "avatar", [make_image()])
        doc = resolve(product, "avatar").get()
        previous = doc.thumbnail.name

        assert regenerate_thumbnails(product, "avatar") == 1

        doc.refresh_from_db()
        assert doc.thumbnail.name
        assert doc.thumbnail.name != previous

    def test_skips_slot_without_thumbnails(self, product):
        reconcile_slot(product, "gallery", [make_image()])
        assert regenerate_thumbnails(product, "gallery") == 0

    def test_skips_non_images(self, product):
        reconcile_slot(product, "avatar", [make_upload("a.txt")])
        assert regenerate_thumbnails(product, "avatar") == 0


@pytest.mark.django_db
class TestBindRequestFiles:

    def test_binds_lists_per_slot(self, product):
        files = MultiValueDict({
            "gallery": [make_upload("a.txt"), make_upload("b.txt")],
            "avatar": [make_image()],
            "unrelated": [make_upload("x.txt")],
        })

        bound = bind_request_files(product, files)

        assert bound == ["avatar", "gallery"]
        assert len(product.pending_uploads("gallery")) == 2

    def test_prefixed_keys(self, product):
        files = MultiValueDict({"product-gallery": [make_upload("a.txt")]})

        assert bind_request_files(product, files, prefix="product") == ["gallery"]

    def test_plain_dict(self, product):
        upload = make_upload()
        bind_request_files(product, {"avatar": upload})
        assert product.pending_uploads("avatar") == [upload]

    def test_bound_files_attached_on_save(self, product):
        bind_request_files(product, MultiValueDict({"gallery": [make_upload("a.txt")]}))
        product.save()
        assert filenames(resolve(product, "gallery")) == ["a.txt"]


@pytest.mark.django_db
class TestFindOrphanDocuments:

    def test_attached_documents_are_not_orphans(self, product):
        reconcile_slot(product, "gallery", [make_upload()])
        reconcile_slot(product, "manuals", [make_upload()])
        assert find_orphan_documents() == []

    def test_missing_owner_row(self, product):
        """Owner removed without signals, e.g. by raw SQL."""
        reconcile_slot(product, "gallery", [make_upload()])
        with connection.cursor() as cursor:
            cursor.execute(f"DELETE FROM {Product._meta.db_table} WHERE id = %s", [product.pk])

        assert filenames(find_orphan_documents()) == ["file.txt"]

    def test_unknown_table(self):
        doc = Document.objects.create(owner_table="gone_table", owner_id="1", tag="x", filename="a.txt")
        assert find_orphan_documents() == [doc]

    def test_invalid_owner_id(self):
        doc = Document.objects.create(owner_table="testapp_product", owner_id="abc", tag="x", filename="a.txt")
        assert find_orphan_documents() == [doc]

    def test_unjoined_via_document(self):
        doc = Document.objects.create(owner_table="testapp_productdocument", tag="manuals", filename="m.txt")
        assert find_orphan_documents() == [doc]
