"""
Image attachment helper.

Uploads happen before any database write. Whatever the database stops
referencing is released only after the write commits, and a fresh upload is
released again if the write fails. Releases are best effort: the two stores
share no commit protocol, so a failed delete is logged and otherwise ignored.
"""
import logging
import re
from dataclasses import dataclass, replace
from typing import Optional

from app.services.blob_store import BlobStore


logger = logging.getLogger(__name__)

EXTERNAL_URL = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class ImagePayload:
    """Image as received from the client: raw file bytes, or a data URI / URL."""
    file_bytes: Optional[bytes] = None
    reference: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.file_bytes and not (self.reference or "").strip()


@dataclass
class ImageChange:
    url: Optional[str]
    public_id: Optional[str]
    # Blob uploaded by this change; released if the database write fails
    uploaded_public_id: Optional[str] = None
    # Blob the item stops referencing; released once the write commits
    superseded_public_id: Optional[str] = None
    # False when the item keeps whatever image it has
    replaces: bool = False


def prepare_image(
    blob_store: BlobStore,
    payload: Optional[ImagePayload],
    current_url: Optional[str] = None,
    current_public_id: Optional[str] = None,
) -> ImageChange:
    """
    Resolve the image an item should point to after a create/edit.

    Raises:
        UploadError: the blob store rejected the upload. Nothing has been
            written anywhere when this happens.
    """
    unchanged = ImageChange(url=current_url, public_id=current_public_id)
    if payload is None or payload.is_empty:
        return unchanged

    if payload.file_bytes:
        stored = blob_store.put(payload.file_bytes)
        return ImageChange(
            url=stored.url,
            public_id=stored.public_id,
            uploaded_public_id=stored.public_id,
            superseded_public_id=current_public_id,
            replaces=True,
        )

    reference = payload.reference.strip()
    if reference == current_url:
        return unchanged

    if reference.startswith("data:"):
        stored = blob_store.put(reference)
        return ImageChange(
            url=stored.url,
            public_id=stored.public_id,
            uploaded_public_id=stored.public_id,
            superseded_public_id=current_public_id,
            replaces=True,
        )

    if EXTERNAL_URL.match(reference):
        # Externally hosted images are not owned here: no upload, no blob id
        return ImageChange(
            url=reference, public_id=None, superseded_public_id=current_public_id, replaces=True
        )

    logger.info("Ignoring unsupported image reference %.40r", reference)
    return unchanged


def rebase_image_change(
    change: ImageChange,
    current_url: Optional[str],
    current_public_id: Optional[str],
) -> ImageChange:
    """
    Re-point ``change`` at the item row as read under its lock. A concurrent
    edit may have replaced the image since ``prepare_image`` looked at it.
    """
    if not change.replaces:
        return ImageChange(url=current_url, public_id=current_public_id)
    return replace(change, superseded_public_id=current_public_id)


def release_blob(blob_store: BlobStore, public_id: Optional[str]) -> None:
    if not public_id:
        return
    try:
        blob_store.delete(public_id)
    except Exception:
        logger.warning("Could not delete image %s from blob store", public_id, exc_info=True)


def finish_image_change(blob_store: BlobStore, change: ImageChange) -> None:
    """Call after the database write committed."""
    if change.superseded_public_id and change.superseded_public_id != change.public_id:
        release_blob(blob_store, change.superseded_public_id)


def discard_image_change(blob_store: BlobStore, change: ImageChange) -> None:
    """Call when the database write failed."""
    release_blob(blob_store, change.uploaded_public_id)
