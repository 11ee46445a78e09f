"""Upload collaborator: turns uploaded files into Document rows."""
import logging
import mimetypes
import zipfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from os import PathLike
from pathlib import PurePath

from django.core.files import File
from django.core.files.base import ContentFile
from django.db import transaction

from . import conf
from .exceptions import UploadError
from .models import Document
from .resolver import owner_predicate
from .slots import SlotConfig, ViaJoin
from .thumbnails import make_thumbnail

logger = logging.getLogger(__name__)

ZIP_MIMETYPES = ('application/zip', 'application/x-zip-compressed')


def guess_mimetype(file, filename: str) -> str:
    """Prefer the mimetype reported by the upload, else guess from the name."""
    reported = getattr(file, 'content_type', None)
    if reported:
        return reported
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or 'application/octet-stream'


def mimetype_allowed(mimetype: str, allowed) -> bool:
    """Match a mimetype against a csv string or list; ``image/*`` wildcards allowed."""
    if isinstance(allowed, str):
        allowed = [m.strip() for m in allowed.split(',') if m.strip()]
    for pattern in allowed:
        if pattern == mimetype:
            return True
        if pattern.endswith('/*') and mimetype.startswith(pattern[:-1]):
            return True
    return False


@contextmanager
def opened(file_or_path):
    """Yield a Django File for an uploaded file or a filesystem path."""
    if isinstance(file_or_path, (str, PathLike)):
        try:
            handle = open(file_or_path, 'rb')
        except OSError as e:
            raise UploadError(str(file_or_path), f"cannot open file: {e}")
        with handle:
            yield File(handle, name=PurePath(file_or_path).name)
        return
    if not hasattr(file_or_path, 'read'):
        raise UploadError(repr(file_or_path), "not a file or a path")
    if not isinstance(file_or_path, File):
        file_or_path = File(file_or_path)
    yield file_or_path


class BaseUploader(ABC):
    """Abstract upload collaborator.

    Implementations persist one Document per stored file with the owner
    reference, tag and rank set, and raise UploadError on any I/O or
    validation failure.
    """

    @abstractmethod
    def upload(self, file_or_path, owner, tag: str, config: SlotConfig) -> list[Document]:
        """Store a file for an owner's slot.

        Args:
            file_or_path: Uploaded file, file-like object or filesystem path
            owner: Saved documentable model instance
            tag: Tag to store the documents under
            config: Slot options (validation, thumbnail, unzip, addressing)

        Returns:
            Created documents; more than one only when an archive is expanded
        """
        raise NotImplementedError


class DefaultUploader(BaseUploader):
    """Stores files with Django's default storage, thumbnails with Pillow."""

    def upload(self, file_or_path, owner, tag, config):
        with opened(file_or_path) as file:
            filename = PurePath(file.name or 'unnamed').name
            if owner.pk is None:
                raise UploadError(filename, "owner must be saved before attaching documents")

            mimetype = guess_mimetype(file, filename)
            if config.unzip_enabled and self.is_archive(mimetype, filename):
                return self.upload_archive(file, filename, owner, tag, config)

            self.validate(file, filename, mimetype, config)
            return [self.store(file, filename, mimetype, owner, tag, config)]

    def is_archive(self, mimetype: str, filename: str) -> bool:
        return mimetype in ZIP_MIMETYPES or filename.lower().endswith('.zip')

    def validate(self, file, filename: str, mimetype: str, config: SlotConfig) -> None:
        """Check size, mimetype and extension against the slot options."""
        if config.max_size is not None and file.size > config.max_size:
            raise UploadError(filename, f"file is {file.size} bytes, limit is {config.max_size}")

        if config.mimetypes and not mimetype_allowed(mimetype, config.mimetypes):
            raise UploadError(filename, f"mimetype {mimetype} is not accepted")

        if config.extensions:
            extension = PurePath(filename).suffix.lstrip('.').lower()
            accepted = [e.lstrip('.').lower() for e in config.extensions]
            if extension not in accepted:
                raise UploadError(filename, f"extension '{extension}' is not accepted")

    def upload_archive(self, file, filename, owner, tag, config) -> list[Document]:
        """Expand a zip archive, storing each accepted member as a document."""
        wanted = config.unzip if isinstance(config.unzip, (list, tuple)) else None
        documents = []
        try:
            archive = zipfile.ZipFile(file)
        except zipfile.BadZipFile as e:
            raise UploadError(filename, f"invalid archive: {e}")

        with archive:
            try:
                for info in archive.infolist():
                    member = PurePath(info.filename)
                    if info.is_dir() or member.parts[0] == '__MACOSX' or member.name.startswith('.'):
                        continue
                    mimetype = mimetypes.guess_type(member.name)[0] or 'application/octet-stream'
                    if wanted is not None and mimetype not in wanted:
                        continue
                    content = ContentFile(archive.read(info), name=member.name)
                    self.validate(content, member.name, mimetype, config)
                    documents.append(self.store(content, member.name, mimetype, owner, tag, config))
            except UploadError as e:
                e.documents = documents + e.documents
                raise

        logger.info(f"Expanded {filename} into {len(documents)} documents")
        return documents

    @transaction.atomic
    def store(self, file, filename, mimetype, owner, tag, config) -> Document:
        """Persist one document (and its join row in via-table mode)."""
        mode = config.addressing_for(type(owner))
        rank = Document.objects.filter(owner_predicate(owner, config), tag=tag).next_rank()

        if isinstance(mode, ViaJoin):
            owner_table, owner_id = mode.table_name, ''
        else:
            owner_table, owner_id = owner.documentable_table_name(), str(owner.pk)

        doc = Document(
            owner_table=owner_table,
            owner_id=owner_id,
            tag=tag,
            rank=rank,
            filename=filename,
            mimetype=mimetype,
            size=file.size,
        )
        try:
            file.seek(0)
            doc.file.save(filename, file, save=False)
        except OSError as e:
            raise UploadError(filename, f"storage failed: {e}")

        if config.thumbnail and doc.is_image:
            self.attach_thumbnail(doc, file, config)

        doc.save()
        if isinstance(mode, ViaJoin):
            mode.model._default_manager.create(
                **{mode.document_field: doc, mode.owner_field: owner}
            )
        return doc

    def attach_thumbnail(self, doc: Document, file, config: SlotConfig) -> bool:
        """Render and store a thumbnail; failures are logged, not raised."""
        try:
            thumb = make_thumbnail(file, doc.filename, conf.thumbnail_options(config.thumbnail_options))
            doc.thumbnail.save(thumb.name, thumb, save=False)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to generate thumbnail for {doc.filename}: {e}")
            return False
        return True
