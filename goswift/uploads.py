import logging
import os
import re
import uuid
from typing import Iterable

from fastapi import UploadFile

from . import config
from .errors import InvalidArgument

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("image/jpeg", "image/png", "image/jpg", "application/pdf")
PHOTO_TYPES = ("image/jpeg", "image/png", "image/jpg")

_EXT_RE = re.compile(r"^\.[a-z0-9]{1,5}$")


def save_upload(upload: UploadFile, allowed_types: Iterable[str] = DOCUMENT_TYPES) -> str:
    """Store an uploaded file under UPLOAD_DIR and return its generated file name."""
    if upload is None or not upload.filename:
        raise InvalidArgument("No file uploaded")
    if upload.content_type not in tuple(allowed_types):
        raise InvalidArgument("Invalid file type")

    data = upload.file.read(config.MAX_FILE_SIZE + 1)
    if not data:
        raise InvalidArgument("No file uploaded")
    if len(data) > config.MAX_FILE_SIZE:
        raise InvalidArgument("File size exceeds limit")

    ext = os.path.splitext(upload.filename)[1].lower()
    filename = f"{uuid.uuid4().hex}{ext if _EXT_RE.match(ext) else ''}"
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    with open(os.path.join(config.UPLOAD_DIR, filename), "wb") as f:
        f.write(data)
    logger.info("Stored upload %s as %s (%s bytes)", upload.filename, filename, len(data))
    return filename


def discard_upload(filename: str) -> None:
    try:
        os.remove(os.path.join(config.UPLOAD_DIR, filename))
    except FileNotFoundError:
        pass
