"""Thumbnail generation for image documents."""
from io import BytesIO
from pathlib import PurePath
from typing import BinaryIO

from django.core.files.base import ContentFile

PIL_FORMATS = {
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
    'png': 'PNG',
    'webp': 'WEBP',
    'gif': 'GIF',
}


def thumbnail_size(options: dict) -> tuple[int, int]:
    """Return (width, height); ``square`` wins over width/height."""
    if options.get('square'):
        return int(options['square']), int(options['square'])
    return int(options['width']), int(options['height'])


def background(options: dict) -> tuple[int, int, int, int]:
    """
    Return the RGBA background for padded thumbnails.

    ``background_color`` is a 3 or 6 digit hex string. ``background_alpha``
    runs from 0 (opaque) to 100 (transparent).
    """
    color = str(options.get('background_color', 'FFF')).lstrip('#')
    if len(color) == 3:
        color = ''.join(c * 2 for c in color)
    red, green, blue = (int(color[i:i + 2], 16) for i in (0, 2, 4))
    alpha = int(options.get('background_alpha', 0))
    return red, green, blue, round(255 * (100 - alpha) / 100)


def make_thumbnail(file_obj: BinaryIO, filename: str, options: dict) -> ContentFile:
    """
    Render a thumbnail of an image file.

    Args:
        file_obj: File-like object containing image data
        filename: Original filename, used to name the thumbnail
        options: Thumbnail parameters (see conf.THUMBNAIL_DEFAULTS)

    Returns:
        ContentFile named ``<stem>_thumb.<type>``

    Raises:
        OSError: If the file is not a readable image
        ValueError: If the options are invalid
    """
    from PIL import Image, ImageOps

    width, height = thumbnail_size(options)
    output_type = str(options.get('type', 'png')).lower()
    pil_format = PIL_FORMATS.get(output_type)
    if pil_format is None:
        raise ValueError(f"Unsupported thumbnail type: {output_type}")

    file_obj.seek(0)
    img = Image.open(file_obj)
    img = ImageOps.exif_transpose(img).convert('RGBA')
    file_obj.seek(0)

    if options.get('crop', True):
        # Fit the smaller edge in the box, crop the rest
        thumb = ImageOps.fit(img, (width, height), Image.LANCZOS)
    else:
        img.thumbnail((width, height), Image.LANCZOS)
        thumb = Image.new('RGBA', (width, height), background(options))
        offset = ((width - img.width) // 2, (height - img.height) // 2)
        thumb.paste(img, offset, img)

    save_kwargs = {}
    if pil_format in ('JPEG', 'WEBP'):
        save_kwargs['quality'] = int(options.get('quality', 70))
    if pil_format == 'PNG':
        save_kwargs['compress_level'] = int(options.get('compression', 7))
    if pil_format == 'JPEG':
        # No alpha channel in JPEG
        flat = Image.new('RGB', thumb.size, background(options)[:3])
        flat.paste(thumb, mask=thumb.split()[3])
        thumb = flat

    buffer = BytesIO()
    thumb.save(buffer, format=pil_format, **save_kwargs)
    stem = PurePath(filename).stem or 'thumbnail'
    return ContentFile(buffer.getvalue(), name=f"{stem}_thumb.{output_type}")
