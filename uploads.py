"""
Image upload handling for pet and product pictures.
"""

import os
import random
import time
from pathlib import Path
from typing import BinaryIO, Optional

import structlog

from config import Settings
from errors import UploadRejected

log = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
KINDS = ("pets", "products")
URL_PREFIX = "/uploads"


def ensure_upload_dirs(settings: Settings) -> None:
    for kind in KINDS:
        os.makedirs(os.path.join(settings.upload_path, kind), exist_ok=True)


def file_url(filename: Optional[str], kind: str = "pets") -> Optional[str]:
    if not filename:
        return None
    return f"{URL_PREFIX}/{kind}/{filename}"


def _unique_name(kind: str, extension: str) -> str:
    field = "petImage" if kind == "pets" else "productImage"
    return f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{extension}"


def save_image(
    stream: BinaryIO,
    original_name: Optional[str],
    content_type: Optional[str],
    kind: str,
    settings: Settings,
) -> str:
    """Validate and store an uploaded image, returning its public URL."""
    if kind not in KINDS:
        raise ValueError(f"Unknown upload kind: {kind}")
    extension = Path(original_name or "").suffix.lower()
    if not (content_type or "").startswith("image/") or extension not in ALLOWED_EXTENSIONS:
        raise UploadRejected("Only image files (jpg, png, gif, webp) are allowed.")

    data = stream.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        limit_mb = settings.max_file_size // (1024 * 1024)
        raise UploadRejected(f"File too large. Maximum size is {limit_mb}MB.")
    if not data:
        raise UploadRejected("Uploaded file is empty.")

    ensure_upload_dirs(settings)
    filename = _unique_name(kind, extension)
    with open(os.path.join(settings.upload_path, kind, filename), "wb") as fh:
        fh.write(data)
    log.info("image_uploaded", kind=kind, filename=filename, size=len(data))
    return file_url(filename, kind)


def delete_image(url: Optional[str], settings: Settings) -> bool:
    """Remove a previously uploaded image. Only files under /uploads are touched."""
    if not url or not url.startswith(URL_PREFIX + "/"):
        return False
    kind, _, filename = url[len(URL_PREFIX) + 1:].partition("/")
    if kind not in KINDS or not filename or "/" in filename or filename.startswith("."):
        return False
    try:
        os.remove(os.path.join(settings.upload_path, kind, filename))
    except FileNotFoundError:
        return False
    log.info("image_deleted", kind=kind, filename=filename)
    return True
