"""Pytest configuration for django-documentable tests."""

import io
import zipfile

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image


@pytest.fixture(autouse=True)
def reset_collaborators():
    """Forget the uploader/provider loaded from settings between tests."""
    from django_documentable import conf

    conf.clear_cache()
    yield
    conf.clear_cache()


def make_upload(name="file.txt", content=b"hello", content_type="text/plain"):
    return SimpleUploadedFile(name=name, content=content, content_type=content_type)


def make_image(name="photo.png", width=120, height=80, format="PNG", content_type="image/png"):
    img = Image.new("RGB", (width, height), color="red")
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return SimpleUploadedFile(name=name, content=buffer.getvalue(), content_type=content_type)


def make_zip(members, name="bundle.zip"):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for member_name, content in members.items():
            archive.writestr(member_name, content)
    return SimpleUploadedFile(name=name, content=buffer.getvalue(), content_type="application/zip")


@pytest.fixture
def product(db):
    from tests.testapp.models import Product

    return Product.objects.create(name="Lamp")


@pytest.fixture
def other_product(db):
    from tests.testapp.models import Product

    return Product.objects.create(name="Chair")


@pytest.fixture
def supplier(db):
    from tests.testapp.models import Supplier

    return Supplier.objects.create(name="Acme")


@pytest.fixture
def category(db):
    from tests.testapp.models import Category

    return Category.objects.create(name="Lighting")
