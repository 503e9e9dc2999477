# Overview: Service-layer operations for uploads; validates images and stores them on local disk.

import os
import time

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..validation import ValidationError


ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

RECEIPTS = "receipts"
ORDER_RECEIPTS = "order-receipts"
BOARDING_IDS = "boarding-ids"
BOARDING_SIGNATURES = "boarding-signatures"
PRODUCTS = "products"
SUBDIRECTORIES = (RECEIPTS, ORDER_RECEIPTS, BOARDING_IDS, BOARDING_SIGNATURES, PRODUCTS)

PUBLIC_PREFIX = "/uploads/"


def _stream_size(file: FileStorage) -> int:
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def validate_image(file: FileStorage | None) -> str:
    """
    Check presence, MIME type and size. Returns the file extension to use.
    """
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    mimetype = (file.mimetype or "").lower()
    if mimetype not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Invalid file type. Only JPEG, PNG, and WebP images are allowed.")

    max_bytes = current_app.config["MAX_UPLOAD_BYTES"]
    if _stream_size(file) > max_bytes:
        raise ValidationError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")

    return ALLOWED_IMAGE_TYPES[mimetype]


def save_image(file: FileStorage | None, *, subdir: str, prefix: str, owner_id: int) -> str:
    """
    Validate and write an uploaded image.

    The file is named {prefix}_{owner_id}_{unix_ms}.{ext}; the returned
    public URL is what gets persisted on the owning row.
    """
    if subdir not in SUBDIRECTORIES:
        raise ValueError(f"Unknown upload directory: {subdir}")
    ext = validate_image(file)

    directory = os.path.join(current_app.config["UPLOAD_FOLDER"], subdir)
    os.makedirs(directory, exist_ok=True)

    filename = f"{prefix}_{owner_id}_{int(time.time() * 1000)}.{ext}"
    file.save(os.path.join(directory, filename))
    current_app.logger.info("Stored upload %s/%s", subdir, filename)

    return f"{PUBLIC_PREFIX}{subdir}/{filename}"


def delete_upload(url: str | None) -> bool:
    """Remove a previously stored upload. Missing files are ignored."""
    if not url or not url.startswith(PUBLIC_PREFIX):
        return False
    relative = url[len(PUBLIC_PREFIX):]
    root = os.path.abspath(current_app.config["UPLOAD_FOLDER"])
    path = os.path.abspath(os.path.join(root, relative))
    if not path.startswith(root + os.sep):
        return False
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError:
        current_app.logger.warning("Could not remove upload %s", url, exc_info=True)
        return False
    return True
