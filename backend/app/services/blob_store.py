"""
Blob store adapters for item images.

The service only needs two operations from the media host: store some bytes
(or a data URI) and get back a public URL plus an opaque id, and delete by id.
"""
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Union

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from app.core.config import Settings
from app.core.errors import UploadError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    url: str
    public_id: str


class BlobStore:
    def put(self, data: Union[bytes, str]) -> StoredBlob:
        raise NotImplementedError

    def delete(self, public_id: str) -> None:
        raise NotImplementedError


class CloudinaryBlobStore(BlobStore):
    def __init__(self, settings: Settings):
        self.folder = settings.cloudinary_folder
        for name in ("cloudinary_cloud_name", "cloudinary_api_key", "cloudinary_api_secret"):
            if not getattr(settings, name):
                logger.warning("[cloudinary] missing setting %s", name.upper())
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )

    def put(self, data: Union[bytes, str]) -> StoredBlob:
        source = BytesIO(data) if isinstance(data, bytes) else data
        try:
            result = cloudinary.uploader.upload(source, folder=self.folder, resource_type="image")
        except CloudinaryError as exc:
            raise UploadError(f"Image upload rejected: {exc}") from exc
        except OSError as exc:
            raise UploadError("Image host unreachable") from exc
        if not result.get("secure_url") or not result.get("public_id"):
            raise UploadError("Image host returned an incomplete response")
        return StoredBlob(url=result["secure_url"], public_id=result["public_id"])

    def delete(self, public_id: str) -> None:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except (CloudinaryError, OSError) as exc:
            raise UploadError(f"Could not delete image {public_id}: {exc}") from exc
        if result.get("result") not in ("ok", "not found"):
            raise UploadError(f"Could not delete image {public_id}: {result}")
